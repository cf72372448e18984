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

from .acausal_diagram import AcausalDiagram
from .component_library.base import EqnEnv, EqnKind, SymKind
from .component_library.registry import ComponentLibrary, default_library
from .connection_graph import ConnectionGraph
from .error import ModelDefinitionError
from .index_reduction.graph_utils import incidence_graph
from .lazy_loader import LazyLoader
from .logging import logger, logdata, scope_logging
from .types import EquationSystem

if TYPE_CHECKING:
    import sympy as sp
    import sympy.core.function as scf
else:
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


class DiagramProcessing:
    """
    This class transforms an AcausalDiagram object into a flat system of
    differential algebraic equations. The output from this class is the input
    for index reduction.

    The stages of diagram_processing (in order):
    - check the components against the library.
    - identify the AcausalDiagram nodes, i.e. the connection classes.
    - generate node potential equations.
    - generate node flow equations.
    - collect the component equations.
    - 'finalize', i.e. drop dead variables, tag equations and build the
        incidence graph.
    """

    def __init__(
        self,
        eqn_env: EqnEnv,
        diagram: AcausalDiagram,
        library: ComponentLibrary = None,
        verbose: bool = False,
    ):
        self.eqn_env = eqn_env
        self.diagram = diagram
        self.library = default_library() if library is None else library
        self.verbose = verbose

        self.reset()

    def reset(self):
        self.connection_graph = ConnectionGraph()
        self.eqs = []  # list of Eqn, in generation order
        self.syms_map = {}  # dict{sympy object: Sym}
        self.params = {}  # dict{param symbol: value}
        self.node_eqs = []
        self.system = None

    def _log(self, msg, *args, **kwargs):
        if self.verbose:
            logger.info(msg, *args, **kwargs)
        else:
            logger.debug(msg, *args, **kwargs)

    def pp_eqs(self):
        for eq_idx, eq in enumerate(self.eqs):
            logger.info("\t%d: %s", eq_idx, eq)

    @scope_logging
    def check_components(self):
        names = {}
        for cmp in self.diagram.comps:
            if cmp not in self.library:
                raise ModelDefinitionError(
                    f"Component {cmp.name} uses template {type(cmp).__name__} "
                    "which is not registered in the component library.",
                    components=[cmp],
                )
            if cmp.name in names:
                raise ModelDefinitionError(
                    f"Two components share the name {cmp.name}.",
                    components=[names[cmp.name], cmp],
                )
            names[cmp.name] = cmp
            cmp.validate(self.eqn_env)

            for sym in cmp.syms:
                if sym.s in self.syms_map and self.syms_map[sym.s] is not sym:
                    raise ModelDefinitionError(
                        f"Symbol {sym.name} is declared by more than one component.",
                        components=[cmp],
                    )
                self.syms_map[sym.s] = sym
                if sym.kind == SymKind.param:
                    self.params[sym.s] = sym.val

        for sym in self.eqn_env.syms:
            self.syms_map[sym.s] = sym
            self.params[sym.s] = sym.val

    @scope_logging
    def identify_nodes(self):
        # every connector gets a record, connected or not, in component order
        for cmp in self.diagram.comps:
            for port_name in cmp.ports:
                self.connection_graph.add_connector(cmp, port_name)

        for group in self.diagram.connections:
            self.connection_graph.connect(group)
        self.node_eqs = self.connection_graph.equations()

        self._log(
            "DiagramProcessing found %d connection classes.",
            len(self.connection_graph.classes()),
            **logdata(n_connectors=len(self.connection_graph)),
        )

    @scope_logging
    def add_node_potential_eqs(self):
        self.eqs += [eq for eq in self.node_eqs if eq.kind == EqnKind.pot]

    @scope_logging
    def add_node_flow_eqs(self):
        self.eqs += [eq for eq in self.node_eqs if eq.kind == EqnKind.flow]

    @scope_logging
    def collect_component_eqs(self):
        for cmp in self.diagram.comps:
            self.eqs += cmp.eqs

    def _used_functions(self, exprs):
        used = set()
        for expr in exprs:
            used |= expr.atoms(scf.AppliedUndef)
        return used

    @scope_logging
    def finalize(self) -> EquationSystem:
        exprs = [eq.expr for eq in self.eqs]
        used = self._used_functions(exprs)

        unknowns = []
        inputs = []
        ics = {}
        ics_weak = {}
        for cmp in self.diagram.comps:
            for sym in cmp.syms:
                if sym.kind == SymKind.param:
                    continue
                if sym.s not in used:
                    logger.debug(
                        "DiagramProcessing dropped dead variable %s.",
                        sym.name,
                        **logdata(component=cmp),
                    )
                    continue
                if sym.kind == SymKind.inp:
                    inputs.append(sym.s)
                    continue
                unknowns.append(sym.s)
                if sym.ic is not None:
                    if sym.ic_fixed:
                        ics[sym.s] = sym.ic
                    else:
                        ics_weak[sym.s] = sym.ic

        self.system = EquationSystem(
            t=self.eqn_env.t,
            eqs=list(self.eqs),
            exprs=exprs,
            unknowns=unknowns,
            knowns=dict(self.params),
            inputs=inputs,
            syms=dict(self.syms_map),
            ics=ics,
            ics_weak=ics_weak,
            tags=[eq.tag for eq in self.eqs],
            incidence=incidence_graph(exprs, unknowns),
            observed={},
        )
        self._log(
            "DiagramProcessing assembled %d equations in %d unknowns.",
            len(exprs),
            len(unknowns),
            **logdata(n_inputs=len(inputs), n_ics=len(ics), n_ics_weak=len(ics_weak)),
        )
        if self.verbose:
            self.pp_eqs()
        return self.system

    def diagram_processing(self) -> EquationSystem:
        self.reset()
        self.check_components()
        self.identify_nodes()
        self.add_node_potential_eqs()
        self.add_node_flow_eqs()
        self.collect_component_eqs()
        return self.finalize()

    # execute compilation
    def __call__(self) -> EquationSystem:
        return self.diagram_processing()
