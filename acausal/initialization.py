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

"""
Consistent initial conditions of a ReducedSystem.

Strong equations (the constraints, the caller's initial values and the
component initial values marked ic_fixed) are always part of the
initialization system. Weak values and zeros fill the remaining degrees of
freedom, one at a time, as long as they raise the structural rank of the
system. The result is solved with scipy.optimize.least_squares.
"""

from typing import TYPE_CHECKING, Callable, Dict

import numpy as np

from .component_library.base import Sym
from .error import InconsistentInitializationError, ModelDefinitionError
from .index_reduction.equation_utils import sort_key
from .index_reduction.graph_utils import maximum_matching
from .lazy_loader import LazyLoader
from .logging import logger, logdata
from .types import InitialConditions, InitializationOptions, ReducedSystem

if TYPE_CHECKING:
    import networkx as nx
    import scipy.optimize as sciopt
    import sympy as sp
    import sympy.core.function as scf
else:
    nx = LazyLoader("nx", globals(), "networkx")
    sciopt = LazyLoader("sciopt", globals(), "scipy.optimize")
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


def input_functions(reduced: ReducedSystem, inputs=None) -> Dict[object, Callable]:
    """Map every input of the reduced system to a callable of time.

    Args:
        inputs: dict{input Sym or variable: callable(t) or constant}.

    Raises:
        ModelDefinitionError: an input of the system has no value.
    """
    given = {}
    for key, value in (inputs or {}).items():
        key = key.s if isinstance(key, Sym) else key
        if callable(value):
            given[key] = value
        else:
            given[key] = lambda t, value=value: value

    funcs = {}
    for u in reduced.inputs:
        if u not in given:
            raise ModelDefinitionError(
                f"No value provided for input {u}.", variables=[u]
            )
        funcs[u] = given[u]
    return funcs


class Initialization:
    def __init__(self, reduced: ReducedSystem, options: InitializationOptions = None):
        self.reduced = reduced
        self.options = InitializationOptions() if options is None else options
        self.unknowns = list(reduced.states) + list(reduced.algebraic_vars)

    def _fixed_subs(self, t0, inputs):
        subs = {k: sp.Float(v) for k, v in self.reduced.knowns.items()}
        for u, func in input_functions(self.reduced, inputs).items():
            subs[u] = sp.Float(float(func(t0)))
        return subs

    def _at_t0(self, expr, fixed_subs):
        # the unknowns are functions of t, only the free t is evaluated at t0
        expr = expr.xreplace(fixed_subs)
        funcs = {u: sp.Dummy() for u in self._unknowns_in(expr)}
        expr = expr.xreplace(funcs).xreplace({self.reduced.t: sp.Float(self.t0)})
        return expr.xreplace({d: u for u, d in funcs.items()})

    def _express(self, key, value, fixed_subs):
        key = key.s if isinstance(key, Sym) else key
        try:
            expr = self.reduced.expression_for(key)
        except ValueError as exc:
            raise InconsistentInitializationError(
                f"Initial value given for {key}, which is not a variable of the model.",
                variables=[key],
            ) from exc
        expr = expr - value
        if expr.has(sp.Derivative):
            raise InconsistentInitializationError(
                f"The initial value of {key} requires the time derivative of an "
                "algebraic variable or an input.",
                variables=[key],
            )
        return key, self._at_t0(expr, fixed_subs)

    def _unknowns_in(self, expr):
        return [u for u in expr.atoms(scf.AppliedUndef) if u in self.unknowns_set]

    def _strong_equations(self, initial_values, fixed_subs):
        eqs = []
        for g in self.reduced.constraints:
            eqs.append(self._at_t0(g, fixed_subs))

        given = dict(initial_values or {})
        given_keys = {k.s if isinstance(k, Sym) else k for k in given}
        for key in sorted(self.reduced.ics, key=sort_key):
            if key not in given_keys:
                given[key] = self.reduced.ics[key]

        for key, value in given.items():
            key, expr = self._express(key, value, fixed_subs)
            if self._unknowns_in(expr):
                eqs.append(expr)
                continue
            residual = float(expr)
            if abs(residual) > self.options.tol:
                raise InconsistentInitializationError(
                    f"Initial value {value} of {key} conflicts with the model, "
                    f"residual {residual}.",
                    variables=[key],
                )
            logger.debug("Initialization: redundant initial value for %s.", key)
        return eqs, given_keys | set(self.reduced.ics)

    def _weak_candidates(self, strong_keys, fixed_subs):
        states = set(self.reduced.states)
        algebraic = set(self.reduced.algebraic_vars)

        def rank(key):
            if key in states:
                return 0
            if key in algebraic:
                return 1
            return 2

        candidates = []
        weak_keys = sorted(
            (k for k in self.reduced.ics_weak if k not in strong_keys),
            key=lambda k: (rank(k), sort_key(k)),
        )
        for key in weak_keys:
            _, expr = self._express(key, self.reduced.ics_weak[key], fixed_subs)
            if self._unknowns_in(expr):
                candidates.append((key, expr))
        for u in self.unknowns:
            candidates.append((u, u))
        return candidates

    def _graph(self, eqs):
        G = nx.Graph()
        G.add_nodes_from(range(len(eqs)), bipartite=0)
        G.add_nodes_from(self.unknowns, bipartite=1)
        for idx, expr in enumerate(eqs):
            for u in sorted(self._unknowns_in(expr), key=sort_key):
                G.add_edge(idx, u)
        return G

    def _guess(self, initial_values):
        guess = {}
        guess.update(self.reduced.ics_weak)
        guess.update(self.reduced.ics)
        for key, value in (initial_values or {}).items():
            guess[key.s if isinstance(key, Sym) else key] = value
        return np.array([float(guess.get(u, 0.0)) for u in self.unknowns])

    def __call__(self, initial_values=None, t0=0.0, inputs=None) -> InitialConditions:
        self.unknowns_set = set(self.unknowns)
        self.t0 = t0
        fixed_subs = self._fixed_subs(t0, inputs)

        eqs, strong_keys = self._strong_equations(initial_values, fixed_subs)
        n_strong = len(eqs)

        G = self._graph(eqs)
        size = len(maximum_matching(G, list(range(len(eqs)))))
        for key, expr in self._weak_candidates(strong_keys, fixed_subs):
            if size == len(self.unknowns):
                break
            idx = len(eqs)
            G.add_node(idx, bipartite=0)
            for u in sorted(self._unknowns_in(expr), key=sort_key):
                G.add_edge(idx, u)
            new_size = len(maximum_matching(G, list(range(idx + 1))))
            if new_size > size:
                eqs.append(expr)
                size = new_size
                logger.debug("Initialization: weak equation 0 = %s accepted.", expr)
            else:
                G.remove_node(idx)

        matching = maximum_matching(G, list(range(len(eqs))))
        if len(matching) < len(self.unknowns):
            raise InconsistentInitializationError(
                "The initialization system is structurally singular.",
                equations=eqs,
            )

        u_sol = self._solve(eqs, matching, self._guess(initial_values))

        values = dict(zip(self.unknowns, u_sol.tolist()))
        u_subs = {self.reduced.t: t0}
        u_subs.update(fixed_subs)
        u_subs.update(values)
        for var, expr in self.reduced.observed.items():
            values[var] = float(expr.xreplace(u_subs))

        n_x = self.reduced.n_ode
        logger.debug(
            "Initialization solved %d equations for %d unknowns.",
            len(eqs),
            len(self.unknowns),
            **logdata(n_strong=n_strong, n_weak=len(eqs) - n_strong),
        )
        return InitialConditions(
            x0=np.array(u_sol[:n_x], dtype=float),
            y0=np.array(u_sol[n_x:], dtype=float),
            values=values,
        )

    def _solve(self, eqs, matching, u0):
        if not self.unknowns:
            return np.zeros(0)

        F = sp.lambdify(self.unknowns, eqs, modules="numpy")
        J = sp.lambdify(
            self.unknowns, sp.Matrix(eqs).jacobian(self.unknowns), modules="numpy"
        )

        def fun(u):
            return np.array(F(*u), dtype=float).ravel()

        def jac(u):
            return np.array(J(*u), dtype=float).reshape(len(eqs), len(u))

        sol = sciopt.least_squares(
            fun,
            u0,
            jac=jac,
            method=self.options.method,
            max_nfev=self.options.max_nfev,
            xtol=1e-12,
            ftol=1e-12,
            gtol=1e-12,
        )
        residual = fun(sol.x)
        bad = [eqs[i] for i in np.flatnonzero(np.abs(residual) > self.options.tol)]
        if bad:
            raise InconsistentInitializationError(
                "Initialization failed, the initial values are contradictory. "
                f"Largest residual {np.max(np.abs(residual))}.",
                equations=bad,
            )

        rows = sorted(matching.keys())
        cols = [self.unknowns.index(matching[r]) for r in rows]
        cond = np.linalg.cond(jac(sol.x)[np.ix_(rows, cols)])
        if not cond < self.options.singular_cond:
            raise InconsistentInitializationError(
                f"Initialization failed, the Jacobian is singular (cond={cond:.3g}).",
                equations=[eqs[r] for r in rows],
            )
        return sol.x
