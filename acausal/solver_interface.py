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

import numpy as np

from .component_library.base import Sym
from .initialization import Initialization, input_functions
from .lazy_loader import LazyLoader
from .logging import logger
from .types import InitializationOptions, ReducedSystem

if TYPE_CHECKING:
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")


class SolverProblem:
    """
    Numerical bundle of a ReducedSystem for an external ODE/DAE solver.

    With s = [x, y] the system reads

        M ds/dt = [f(t, x, y); g(t, x, y)],   M = diag(1, ..., 1, 0, ..., 0)

    - rhs(t, x) is the explicit ODE right hand side, for systems without
      algebraic variables (e.g. scipy.integrate.solve_ivp).
    - residual(t, s, s_dot) is the fully implicit residual, for DAE solvers.
    - observe(var, t, x, y) evaluates any variable of the model on a trajectory.
    """

    def __init__(
        self,
        reduced: ReducedSystem,
        t_span,
        x0: np.ndarray,
        y0: np.ndarray,
        inputs=None,
        values: dict = None,
    ):
        self.reduced = reduced
        self.t_span = tuple(t_span)
        self.x0 = x0
        self.y0 = y0
        self.values = values or {}
        self.states = list(reduced.states)
        self.algebraic_vars = list(reduced.algebraic_vars)

        self._inputs = input_functions(reduced, inputs)
        self._input_vars = list(reduced.inputs)
        self._params = list(reduced.knowns.keys())
        self._param_vals = [float(v) for v in reduced.knowns.values()]
        self._args = (
            [reduced.t]
            + self.states
            + self.algebraic_vars
            + self._input_vars
            + self._params
        )
        self._f = sp.lambdify(self._args, list(reduced.rhs), modules="numpy")
        self._g = sp.lambdify(self._args, list(reduced.constraints), modules="numpy")
        self._observers = {}

        n = reduced.n_ode
        m = reduced.n_alg
        self.mass_matrix = np.diag(np.concatenate([np.ones(n), np.zeros(m)]))

    def _u(self, t):
        return [float(self._inputs[u](t)) for u in self._input_vars]

    def rhs(self, t, x):
        if self.algebraic_vars:
            raise ValueError(
                "rhs() is only available for systems without algebraic variables, "
                "use residual() with a DAE solver."
            )
        return np.array(
            self._f(t, *x, *self._u(t), *self._param_vals), dtype=float
        ).ravel()

    def residual(self, t, s, s_dot):
        n = self.reduced.n_ode
        x, y = s[:n], s[n:]
        args = (t, *x, *y, *self._u(t), *self._param_vals)
        f = np.array(self._f(*args), dtype=float).ravel()
        g = np.array(self._g(*args), dtype=float).ravel()
        return np.concatenate([np.asarray(s_dot[:n], dtype=float) - f, g])

    def _observer(self, var):
        var = var.s if isinstance(var, Sym) else var
        if var not in self._observers:
            expr = self.reduced.expression_for(var)
            if expr.has(sp.Derivative):
                raise ValueError(
                    f"{var} depends on the time derivative of an algebraic variable "
                    "or an input."
                )
            self._observers[var] = sp.lambdify(self._args, expr, modules="numpy")
        return self._observers[var]

    def observe(self, var, t, x, y=None):
        """Evaluate var along a trajectory.

        Args:
            var: Sym, sympy variable, or Derivative of one.
            t: time points, shape (k,).
            x: states, shape (n_ode, k), e.g. solve_ivp(...).y.
            y: algebraic variables, shape (n_alg, k).
        """
        func = self._observer(var)
        t = np.atleast_1d(np.asarray(t, dtype=float))
        x = np.asarray(x, dtype=float).reshape(self.reduced.n_ode, len(t))
        if y is None:
            if self.algebraic_vars:
                raise ValueError("observe() needs the algebraic variables y.")
            y = np.zeros((0, len(t)))
        y = np.asarray(y, dtype=float).reshape(self.reduced.n_alg, len(t))
        u = np.array([self._u(ti) for ti in t], dtype=float).T.reshape(
            len(self._input_vars), len(t)
        )
        out = func(t, *x, *y, *u, *self._param_vals)
        return np.broadcast_to(np.asarray(out, dtype=float), t.shape).copy()


def make_problem(
    reduced: ReducedSystem,
    t_span,
    initial_values=None,
    inputs=None,
    options: InitializationOptions = None,
) -> SolverProblem:
    """Run the initialization of the reduced system and bundle it for a solver."""
    ic = Initialization(reduced, options)(
        initial_values=initial_values, t0=t_span[0], inputs=inputs
    )
    logger.debug("make_problem x0=%s y0=%s", ic.x0, ic.y0)
    return SolverProblem(
        reduced, t_span, ic.x0, ic.y0, inputs=inputs, values=ic.values
    )
