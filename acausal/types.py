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

from dataclasses import dataclass
from typing import NamedTuple, Optional, TYPE_CHECKING

import numpy as np

from .component_library.base import EqnKind, Eqn, Sym
from .lazy_loader import LazyLoader

if TYPE_CHECKING:
    import networkx as nx
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")


@dataclass
class SimplificationOptions:
    """Options of IndexReduction.

    Attributes:
        max_pantelides_steps (int):
            Bound on the number of augmenting path attempts per equation in the
            Pantelides algorithm.
        eliminate_aliases (bool):
            Run alias/trivial elimination before index reduction.
        solve_linear_blocks (bool):
            Solve BLT blocks of more than one equation when they are linear in
            their matched variables.
        verbose (bool):
            Log stage summaries at info level instead of debug.
    """

    max_pantelides_steps: int = 20
    eliminate_aliases: bool = True
    solve_linear_blocks: bool = True
    verbose: bool = False


@dataclass
class InitializationOptions:
    """Options of Initialization.

    Attributes:
        tol (float):
            Largest accepted absolute residual of the initialization system.
        max_nfev (int):
            Forwarded to scipy.optimize.least_squares.
        method (str):
            Forwarded to scipy.optimize.least_squares.
        singular_cond (float):
            Condition number above which the Jacobian of the matched square
            system is considered singular.
    """

    tol: float = 1e-8
    max_nfev: Optional[int] = None
    method: str = "trf"
    singular_cond: float = 1e12


class EquationSystem(NamedTuple):
    t: "sp.Symbol"  # symbol for time
    eqs: list  # list of Eqn
    exprs: list  # the equations of the system in the '0 = expr' form
    unknowns: list  # variables to solve for, in declaration order
    knowns: dict  # dict{param symbol: value}
    inputs: list  # input variables, functions of time supplied by the caller
    syms: dict  # dict{sympy object: Sym}
    ics: dict  # dict{var:value} for all 'strong' initial conditions
    ics_weak: dict  # dict{var:value} for all 'weak' initial conditions
    tags: list  # 'differential' or 'algebraic', per equation
    incidence: "nx.Graph"  # equations 0..N-1 (bipartite=0), unknowns (bipartite=1)
    observed: dict  # dict{eliminated var: expr}


class InitialConditions(NamedTuple):
    x0: np.ndarray  # initial states, in ReducedSystem.states order
    y0: np.ndarray  # initial algebraic unknowns, in ReducedSystem.algebraic_vars order
    values: dict  # dict{var: value} for every retained and observed variable


class ReducedSystem(NamedTuple):
    """
    Semi-explicit DAE produced by IndexReduction.

    ```
    dx/dt = f(t, x, y, θ, u)
    0 = g(t, x, y, θ, u)
    ```

    together with the observed map, which reconstructs every eliminated
    variable from t, x, y, the parameters θ and the inputs u.
    """

    t: "sp.Symbol"
    states: list  # x
    rhs: list  # f, one per state
    algebraic_vars: list  # y
    constraints: list  # g, one per algebraic variable
    observed: dict  # dict{eliminated var: expr}
    knowns: dict  # θ, dict{param symbol: value}
    inputs: list  # u
    ics: dict
    ics_weak: dict
    syms: dict  # dict{sympy object: Sym} of the declared variables

    @property
    def n_ode(self) -> int:
        return len(self.states)

    @property
    def n_alg(self) -> int:
        return len(self.algebraic_vars)

    @property
    def is_ode(self) -> bool:
        return self.n_alg == 0

    def _as_var(self, var):
        return var.s if isinstance(var, Sym) else var

    def expression_for(self, var):
        """Express a variable, or a time derivative of it, in terms of t, the
        retained unknowns, the parameters and the inputs.

        Raises:
            ValueError: the variable is not part of this system.
        """
        var = self._as_var(var)
        if isinstance(var, sp.Derivative):
            return self.time_derivative(
                self.expression_for(var.expr), order=var.derivative_count
            )
        if var in self.states or var in self.algebraic_vars:
            return var
        if var in self.observed:
            return self.observed[var]
        if var in self.knowns or var in self.inputs:
            return var
        raise ValueError(f"{var} is not a variable of the reduced system.")

    def time_derivative(self, expr, order: int = 1):
        """Total time derivative of expr, with the state derivatives replaced
        by their right hand sides. Derivatives of algebraic variables or inputs
        are left in place."""
        subs = {sp.Derivative(x, self.t): f for x, f in zip(self.states, self.rhs)}
        for _ in range(order):
            expr = sp.diff(expr, self.t).xreplace(subs)
        return expr

    def to_equation_system(self) -> EquationSystem:
        """Returns this system as an EquationSystem, so it can be reduced again."""
        from .index_reduction.graph_utils import incidence_graph

        eqs = [
            Eqn(e=sp.Eq(sp.Derivative(x, self.t), f), kind=EqnKind.comp)
            for x, f in zip(self.states, self.rhs)
        ]
        eqs += [Eqn(e=sp.Eq(0, g), kind=EqnKind.comp) for g in self.constraints]
        exprs = [eq.expr for eq in eqs]
        unknowns = list(self.states) + list(self.algebraic_vars)
        return EquationSystem(
            t=self.t,
            eqs=eqs,
            exprs=exprs,
            unknowns=unknowns,
            knowns=dict(self.knowns),
            inputs=list(self.inputs),
            syms=dict(self.syms),
            ics=dict(self.ics),
            ics_weak=dict(self.ics_weak),
            tags=[eq.tag for eq in eqs],
            incidence=incidence_graph(exprs, unknowns),
            observed=dict(self.observed),
        )
