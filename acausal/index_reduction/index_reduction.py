# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

from typing import TYPE_CHECKING

from ..component_library.base import SymKind
from ..error import StructuralReductionError
from ..lazy_loader import LazyLoader
from ..logging import logger, logdata, scope_logging
from ..types import EquationSystem, ReducedSystem, SimplificationOptions
from .alias_elimination import AliasElimination
from .equation_utils import (
    base_var,
    is_jointly_linear,
    linear_coeff,
    lower_derivative_order,
    new_var,
    process_equations,
    solve_linear,
    sort_key,
    var_name,
)
from .graph_utils import (
    augmentpath,
    blt_sort,
    delete_var_nodes_with_zero_A,
    maximum_matching,
    sort_block_by_number_of_eq_derivatives,
)

if TYPE_CHECKING:
    import networkx as nx
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")
    nx = LazyLoader("nx", globals(), "networkx")


class IndexReduction:
    """
    Class to perform index reduction of a DAE system using the Pantelides algorithm
    and the method of dummy derivatives, and to bring the result into semi-explicit
    form.

    Pantelides, C.C., 1988. The consistent initialization of differential-algebraic
    systems. SIAM Journal on scientific and statistical computing, 9(2), pp.213-231.

    Mattsson, S.E. and Söderlind, G., 1993. Index reduction in differential-algebraic
    equations using dummy derivatives. SIAM Journal on Scientific Computing, 14(3).

    The stages (in order):
    - alias elimination.
    - lowering of derivatives of order > 1.
    - structural check: equation count and matching of the extended system.
    - Pantelides algorithm.
    - BLT ordering of the differentiated system and dummy derivative selection.
    - lowering of the remaining derivatives of order > 1.
    - semi-explicit conversion and observed map.

    Parameters:
        system : EquationSystem
            The assembled system, e.g. from DiagramProcessing or
            ReducedSystem.to_equation_system().
        options : SimplificationOptions
    """

    def __init__(
        self, system: EquationSystem, options: SimplificationOptions = None
    ):
        self.system = system
        self.options = SimplificationOptions() if options is None else options
        self.verbose = self.options.verbose

        self.t = system.t
        self.eqs = list(system.exprs)
        self.unknowns = list(system.unknowns)
        self.knowns = dict(system.knowns)
        self.inputs = list(system.inputs)
        self.known_vars = set(system.inputs)
        self.syms = system.syms
        self.ics = dict(system.ics)
        self.ics_weak = dict(system.ics_weak)
        self.observed = dict(system.observed)
        self.taken_names = {var_name(u) for u in self.unknowns} | {
            sym.name for sym in self.syms.values()
        }

    def _log(self, msg, *args, **kwargs):
        if self.verbose:
            logger.info(msg, *args, **kwargs)
        else:
            logger.debug(msg, *args, **kwargs)

    def __call__(self) -> ReducedSystem:
        if self.options.eliminate_aliases:
            self.alias_elimination()
        self.lower_derivative_orders()
        self.check_system()
        self.prepare_pantelides_system()
        self.pantelides(max_steps=self.options.max_pantelides_steps)
        self.make_BLT_graph()
        self.dummy_derivatives()
        self.convert_to_semi_explicit()
        return self.make_reduced_system()

    @scope_logging
    def alias_elimination(self):
        result = AliasElimination(
            self.eqs,
            self.unknowns,
            self.knowns,
            self.inputs,
            self.syms,
            self.ics,
            self.ics_weak,
            observed=self.observed,
        )()
        self.eqs = result.exprs
        self.unknowns = result.unknowns
        self.observed = result.observed
        self.ics = result.ics
        self.ics_weak = result.ics_weak
        self._log(
            "IndexReduction alias elimination left %d equations.",
            len(self.eqs),
            **logdata(n_observed=len(self.observed)),
        )

    @scope_logging
    def lower_derivative_orders(self):
        self.eqs, new_vars, _ = lower_derivative_order(
            self.eqs, self.t, self.known_vars, self.taken_names
        )
        self.unknowns += new_vars
        self.taken_names |= {var_name(v) for v in new_vars}

    @scope_logging
    def check_system(self):
        (
            self.x,
            self.x_dot,
            self.y,
            self.X,
            self.vars_in_eqs,
        ) = process_equations(self.eqs, self.known_vars)

        self.n = len(self.x)
        self.m = len(self.y)

        self.N = self.n + self.m  # number of equations {x_dot, y}
        self.M = 2 * self.n + self.m  # number of variables (x, x_dot, y)

        self._log(
            "IndexReduction input system: %d equations, %d differential and %d "
            "algebraic variables.",
            len(self.eqs),
            self.n,
            self.m,
        )

        self.create_bipartite_graph()
        (
            unmatched_eqs,
            unmatched_vars,
        ) = self.pre_pantelides_structural_singularity_check()

        if self.N != len(self.eqs):
            message = (
                f"Mismatch between the number of equations {len(self.eqs)} and the "
                f"number of unknowns {self.N} ({self.n} differential, {self.m} "
                "algebraic)."
            )
        elif unmatched_eqs or unmatched_vars:
            message = (
                "The system of equations is structurally singular. The DAE system "
                "is ill-posed."
            )
        else:
            return
        raise StructuralReductionError(
            message,
            equations=[self.eqs[i] for i in unmatched_eqs],
            variables=unmatched_vars,
        )

    def create_bipartite_graph(self):
        """
        Create a bipartite graph from the DAE system equations and variables.
        - Equation nodes named by their indices in self.eqs from 0 to N-1.
        - Variable nodes are named by their symbols in self.X.
        """

        self.G = nx.Graph()

        # Add nodes with the bipartite attribute. Equation nodes are bipartite 0, and
        # variable nodes are bipartite 1.
        self.G.add_nodes_from(range(len(self.eqs)), bipartite=0)
        self.G.add_nodes_from(self.X, bipartite=1)

        # Add edges based on variable presence in each equation
        for eq_idx, vars_in_eq in enumerate(self.vars_in_eqs):
            for var in sorted(vars_in_eq, key=sort_key):
                self.G.add_edge(eq_idx, var)

        self.e_nodes = list(range(len(self.eqs)))
        self.v_mapping = {node: idx for idx, node in enumerate(self.X)}

        # Graph to keep track of equation differentiations
        self.eq_diff_graph = nx.DiGraph()
        self.eq_diff_graph.add_nodes_from(self.e_nodes)

    def pre_pantelides_structural_singularity_check(self):
        """
        Check if the DAE system (any index) is structurally singular. This is done
        by adding `n` extra equations relating the differential variables `x`
        to their derivatives `x_dot`. This extended system of `2n+m`
        equations and `2n+m` variables is then analyzed for structural singularity.

        Returns the unmatched equations (indices) and unmatched variables.
        """
        G = self.G.copy()

        # Add `n` extra equations relating the the differential variables to their
        # derivatives
        link_nodes = []
        for idx, x in enumerate(self.x):
            new_eq_idx = len(self.eqs) + idx
            G.add_node(new_eq_idx, bipartite=0)
            G.add_edge(new_eq_idx, x)
            G.add_edge(new_eq_idx, sp.diff(x, self.t))
            link_nodes.append(new_eq_idx)

        mm = maximum_matching(G, self.e_nodes + link_nodes)
        matched_vars = set(mm.values())
        unmatched_eqs = [i for i in self.e_nodes if i not in mm]
        unmatched_vars = [v for v in self.X if v not in matched_vars]
        return unmatched_eqs, unmatched_vars

    def prepare_pantelides_system(self):
        self.Nprime = self.N

        # Create association list
        A = [None] * len(self.X)
        for idx, x in enumerate(self.X):
            dx = sp.diff(x, self.t)
            if dx in self.v_mapping:
                A[idx] = self.v_mapping[dx]
        self.A = A

        self.assign = [None] * len(self.X)
        self.B = [None] * len(self.eqs)

    @scope_logging
    def pantelides(self, max_steps=20):
        """
        Algorithm 4.1 of
        Pantelides, C.C., 1988. The consistent initialization of differential-algebraic
        systems. SIAM Journal on scientific and statistical computing, 9(2), pp.213-231.
        """
        # Steps 1 and 2 are performed in `prepare_pantelides_system`
        # Step 3
        for k in range(self.Nprime):
            i = k
            pathfound = False
            counter_steps = 0
            while not pathfound and (counter_steps < max_steps):
                G = self.G.copy()
                delete_var_nodes_with_zero_A(G, self.A, self.X)
                nx.set_node_attributes(G, "white", "color")
                pathfound, self.assign = augmentpath(
                    G, i, False, self.assign, self.v_mapping
                )
                colored_e_nodes = [
                    n
                    for n, d in G.nodes(data=True)
                    if d["color"] == "red" and d["bipartite"] == 0
                ]
                colored_v_nodes = [
                    n
                    for n, d in G.nodes(data=True)
                    if d["color"] == "red" and d["bipartite"] == 1
                ]

                if not pathfound:
                    # (i)
                    for v_node in colored_v_nodes:
                        j = self.v_mapping[v_node]
                        new_diff_var = sp.diff(self.X[j], self.t)
                        self.X.append(new_diff_var)
                        self.G.add_node(new_diff_var, bipartite=1)
                        self.A.append(None)
                        self.assign.append(None)
                        self.v_mapping[new_diff_var] = len(self.X) - 1
                        self.A[j] = len(self.X) - 1

                    # (ii)
                    for e_node in colored_e_nodes:
                        new_eq_node = len(self.eqs)
                        self.G.add_node(new_eq_node, bipartite=0)
                        self.B.append(None)
                        self.eqs.append(sp.diff(self.eqs[e_node], self.t))
                        self.e_nodes.append(new_eq_node)

                        self.eq_diff_graph.add_node(new_eq_node)
                        self.eq_diff_graph.add_edge(e_node, new_eq_node)

                        for v_node in list(self.G.neighbors(e_node)):
                            j = self.v_mapping[v_node]
                            self.G.add_edge(new_eq_node, v_node)
                            if self.A[j] is not None:
                                self.G.add_edge(new_eq_node, self.X[self.A[j]])

                        self.B[e_node] = new_eq_node

                    # (iii)
                    for v_node in colored_v_nodes:
                        j = self.v_mapping[v_node]
                        self.assign[self.A[j]] = self.B[self.assign[j]]

                    # (iv)
                    i = self.B[i]
                counter_steps += 1

            if not pathfound:
                raise StructuralReductionError(
                    f"Pantelides algorithm exceeded max_pantelides_steps={max_steps} "
                    f"while matching equation {k}.",
                    equations=[self.eqs[k]],
                )

        # Variable to equation matching: index in self.X -> index in self.eqs
        self.matching = {}
        self.reverse_matching = {}

        for idx_var, idx_eq in enumerate(self.assign):
            if idx_eq is not None:
                self.matching[idx_var] = idx_eq
                self.reverse_matching[idx_eq] = idx_var

        self.pantelides_dae_eqs = [
            eq_idx
            for eq_idx in self.eq_diff_graph.nodes()
            if self.eq_diff_graph.out_degree(eq_idx) == 0
        ]

        self.pantelides_dae_reverse_matching = {
            eq_idx: self.reverse_matching[eq_idx] for eq_idx in self.pantelides_dae_eqs
        }

        self._log(
            "Pantelides algorithm completed. Equations (before|after): %d|%d",
            self.Nprime,
            len(self.eqs),
            **logdata(n_vars=len(self.X)),
        )

    @scope_logging
    def make_BLT_graph(self):
        """
        For the atmost index-1 system produced by Pantelides algorith, create a
        Block lower triangular (BLT) ordering. The BLT ordering is a topological
        ordering of the strongly connected components (SCCs) of the directed graph.
        """

        # Create an equation dependency (in terms of matched variables) graph D
        D = nx.DiGraph()
        D.add_nodes_from(self.pantelides_dae_eqs)
        dae_eqs = set(self.pantelides_dae_eqs)

        for eq_parent, idx_matched_var in self.pantelides_dae_reverse_matching.items():
            for eq_child in self.G.neighbors(self.X[idx_matched_var]):
                if eq_child != eq_parent and eq_child in dae_eqs:
                    D.add_edge(eq_parent, eq_child)

        self.eBLT = blt_sort(D)

    def _state_preference(self, var):
        # higher is kept as a state
        base = base_var(var)
        sym = self.syms.get(base)
        if base in self.ics:
            ic_rank = 2
        elif base in self.ics_weak:
            ic_rank = 1
        else:
            ic_rank = 0
        is_var = sym is not None and sym.kind == SymKind.var
        return (ic_rank, is_var)

    def _column_order(self, vars_block):
        return sorted(
            range(len(vars_block)),
            key=lambda j: (
                self._state_preference(self.X[vars_block[j]]),
                sort_key(self.X[vars_block[j]]),
            ),
        )

    @scope_logging
    def dummy_derivatives(self):
        """
        Algorithm in Section 3.1 of
        Mattsson, S.E. and Söderlind, G., 1993. Index reduction in
        differential-algebraic equations using dummy derivatives.
        SIAM Journal on Scientific Computing, 14(3), pp.677-692.

        Columns are ordered by increasing state preference, so the pivots, which
        become dummy derivatives, are taken from variables without initial values
        first.
        """
        self.dummy_vars = {}
        final_dae_eqs_pre_replacement = []

        for unsorted_eq_block in self.eBLT:
            # Step 1
            num_parents, eq_block = sort_block_by_number_of_eq_derivatives(
                self.eq_diff_graph, unsorted_eq_block
            )
            vars_block = [
                self.pantelides_dae_reverse_matching[eq_idx] for eq_idx in eq_block
            ]

            block_replace = {}
            sub_blocks = [eq_block]
            if sum(num_parents) > 0:
                g = sp.Matrix([self.eqs[eq_idx] for eq_idx in eq_block])
                z = sp.Matrix([self.X[var_idx] for var_idx in vars_block])
                G = g.jacobian(z)

            # Step 2
            while sum(num_parents) > 0:
                # Step 3
                m = sum([1 for n in num_parents if n != 0])

                order = self._column_order(vars_block)
                G = G[:, order]
                vars_block = [vars_block[j] for j in order]

                H = G[:m, :]

                # Step 4
                _, pivot_columns = H.rref()
                if len(pivot_columns) != m:
                    raise StructuralReductionError(
                        "Dummy derivative selection failed, the differentiated "
                        "equations are singular in their highest derivatives.",
                        equations=[self.eqs[eq_idx] for eq_idx in eq_block[:m]],
                        variables=[self.X[var_idx] for var_idx in vars_block],
                    )

                # Step 5
                M = H[:, list(pivot_columns)]

                for replacing_eq, replacing_var in zip(
                    eq_block[:m], [vars_block[idx] for idx in pivot_columns]
                ):
                    block_replace[replacing_eq] = replacing_var

                G = M
                eq_block = [
                    list(self.eq_diff_graph.predecessors(eq_idx))[0]
                    for eq_idx in eq_block[:m]
                ]
                vars_block = [self.A.index(vars_block[idx]) for idx in pivot_columns]

                num_parents = [n - 1 for n in num_parents[:m]]

                sub_blocks.append(eq_block)

            # Step 6
            for var_idx in block_replace.values():
                var = self.X[var_idx]
                self.dummy_vars[var] = new_var("d_" + var_name(var), self.t)

            # Gather equations in reverse block order
            for sub_block in reversed(sub_blocks):
                for eq_idx in sub_block:
                    final_dae_eqs_pre_replacement.append(self.eqs[eq_idx])

        # Replace true variables with dummy variables
        final_dae_eqs = [
            eq.xreplace(self.dummy_vars) for eq in final_dae_eqs_pre_replacement
        ]

        self.final_dae_eqs, lowered_vars, self.lowered = lower_derivative_order(
            final_dae_eqs, self.t, self.known_vars, self.taken_names
        )
        self.taken_names |= {var_name(v) for v in lowered_vars}

        (
            self.final_dae_x,
            self.final_dae_x_dot,
            self.final_dae_y,
            _,
            self.final_vars_in_eqs,
        ) = process_equations(self.final_dae_eqs, self.known_vars)

        n_unknowns = len(self.final_dae_x_dot) + len(self.final_dae_y)
        if n_unknowns != len(self.final_dae_eqs):
            raise StructuralReductionError(
                f"Dummy derivative substitution produced {len(self.final_dae_eqs)} "
                f"equations in {n_unknowns} unknowns.",
                equations=self.final_dae_eqs,
            )

        self._log(
            "Dummy derivatives computed: %s",
            sorted((str(d) for d in self.dummy_vars.values())),
            **logdata(n_states=len(self.final_dae_x), n_alg=len(self.final_dae_y)),
        )

    @scope_logging
    def convert_to_semi_explicit(self):
        """
        Convert the final DAE system after dummy derivatives to a semi-explicit form.

        The equations are matched to x_dot and y, preferring matches in which the
        equation is linear in its variable, and sorted into BLT blocks. Blocks are
        solved in order, and every solution is substituted into the later blocks.
        Blocks that cannot be solved explicitly remain as algebraic constraints.
        """
        eqs = self.final_dae_eqs
        states = set(self.final_dae_x)
        x_dot_y = self.final_dae_x_dot + self.final_dae_y
        e_nodes = list(range(len(eqs)))

        G = nx.Graph()
        G.add_nodes_from(e_nodes, bipartite=0)
        G.add_nodes_from(x_dot_y, bipartite=1)
        G_linear = G.copy()
        for eq_idx, vars_in_eq in enumerate(self.final_vars_in_eqs):
            for var in sorted(vars_in_eq - states, key=sort_key):
                G.add_edge(eq_idx, var)
                if linear_coeff(eqs[eq_idx], var) is not None:
                    G_linear.add_edge(eq_idx, var)

        matching = maximum_matching(G_linear, e_nodes)
        if len(matching) < len(eqs):
            matching = maximum_matching(G, e_nodes)
        if len(matching) < len(eqs):
            raise StructuralReductionError(
                "Semi-explicit conversion failed, the reduced system is "
                "structurally singular.",
                equations=[eqs[i] for i in e_nodes if i not in matching],
            )

        D = nx.DiGraph()
        D.add_nodes_from(e_nodes)
        for eq_parent, var in matching.items():
            for eq_child in G.neighbors(var):
                if eq_child != eq_parent:
                    D.add_edge(eq_parent, eq_child)

        solved = {}
        constraints = []
        retained = []
        for block in blt_sort(D):
            block_eqs = [eqs[eq_idx].xreplace(solved) for eq_idx in block]
            block_vars = [matching[eq_idx] for eq_idx in block]
            if len(block) == 1:
                sol = solve_linear(block_eqs[0], block_vars[0])
                if sol is not None:
                    solved[block_vars[0]] = sol
                    continue
            elif self.options.solve_linear_blocks and is_jointly_linear(
                block_eqs, block_vars
            ):
                sol = sp.solve(block_eqs, block_vars, dict=True)
                if len(sol) == 1 and all(v in sol[0] for v in block_vars):
                    solved.update({v: sol[0][v] for v in block_vars})
                    continue
            constraints.extend(block_eqs)
            retained.extend(block_vars)

        # unsolved state derivatives become algebraic variables
        der_vars = {}
        for var in retained:
            if isinstance(var, sp.Derivative):
                der_vars[var] = new_var("der_" + var_name(var.expr), self.t)
        solved = {k: v.xreplace(der_vars) for k, v in solved.items()}

        self.se_x = self.final_dae_x
        self.se_f = [
            solved.get(sp.Derivative(x, self.t), der_vars.get(sp.Derivative(x, self.t)))
            for x in self.se_x
        ]
        self.se_y = [der_vars.get(v, v) for v in retained]
        self.se_g = [g.xreplace(der_vars) for g in constraints]

        solved_y = {k: v for k, v in solved.items() if not isinstance(k, sp.Derivative)}
        observed = {k: v.xreplace(solved_y) for k, v in self.observed.items()}
        observed.update(solved_y)
        self.se_observed = observed

        leftover = set()
        for expr in self.se_f + self.se_g + list(self.se_observed.values()):
            leftover |= expr.atoms(sp.Derivative)
        if leftover:
            raise StructuralReductionError(
                "The reduced system requires time derivatives of inputs.",
                variables=sorted(leftover, key=sort_key),
            )

    def make_reduced_system(self) -> ReducedSystem:
        x_order = sorted(range(len(self.se_x)), key=lambda i: sort_key(self.se_x[i]))
        y_order = sorted(range(len(self.se_y)), key=lambda i: sort_key(self.se_y[i]))
        observed = {
            k: self.se_observed[k] for k in sorted(self.se_observed, key=sort_key)
        }
        self.reduced = ReducedSystem(
            t=self.t,
            states=[self.se_x[i] for i in x_order],
            rhs=[self.se_f[i] for i in x_order],
            algebraic_vars=[self.se_y[i] for i in y_order],
            constraints=list(self.se_g),
            observed=observed,
            knowns=self.knowns,
            inputs=self.inputs,
            ics=self.ics,
            ics_weak=self.ics_weak,
            syms=dict(self.syms),
        )
        self._log(
            "IndexReduction produced %d states and %d algebraic variables.",
            self.reduced.n_ode,
            self.reduced.n_alg,
            **logdata(
                states=[str(x) for x in self.reduced.states],
                n_observed=len(observed),
            ),
        )
        if self.verbose:
            for x, f in zip(self.reduced.states, self.reduced.rhs):
                logger.info("\td/dt %s = %s", x, f)
            for g in self.reduced.constraints:
                logger.info("\t0 = %s", g)
        return self.reduced
