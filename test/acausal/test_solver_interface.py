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

import numpy as np
import pytest
import sympy as sp

from acausal import ModelDefinitionError, ReducedSystem, make_problem


@pytest.fixture
def semi_explicit():
    # x' = -k x + y + u, 0 = y - 2 x, z = x + y
    t = sp.symbols("t", real=True)
    x = sp.Function("x", real=True)(t)
    y = sp.Function("y", real=True)(t)
    z = sp.Function("z", real=True)(t)
    u = sp.Function("u", real=True)(t)
    k = sp.Symbol("k", real=True)
    reduced = ReducedSystem(
        t=t,
        states=[x],
        rhs=[-k * x + y + u],
        algebraic_vars=[y],
        constraints=[y - 2 * x],
        observed={z: x + y},
        knowns={k: 3.0},
        inputs=[u],
        ics={},
        ics_weak={},
        syms={},
    )
    return reduced, t, x, y, z, u


def test_consistent_initial_point(semi_explicit):
    reduced, t, x, y, z, u = semi_explicit
    problem = make_problem(reduced, (0.0, 1.0), {x: 1.0}, inputs={u: lambda t: t})
    assert np.allclose(problem.x0, [1.0])
    assert np.allclose(problem.y0, [2.0])
    assert problem.values[z] == pytest.approx(3.0)
    assert problem.t_span == (0.0, 1.0)


def test_residual_and_mass_matrix(semi_explicit):
    reduced, t, x, y, z, u = semi_explicit
    problem = make_problem(reduced, (0.0, 1.0), {x: 1.0}, inputs={u: lambda t: t})

    assert np.array_equal(problem.mass_matrix, np.diag([1.0, 0.0]))
    s0 = np.concatenate([problem.x0, problem.y0])
    assert np.allclose(problem.residual(0.0, s0, np.array([-1.0, 0.0])), 0.0)
    r = problem.residual(0.5, np.array([1.0, 3.0]), np.zeros(2))
    assert np.allclose(r, [-0.5, 1.0])

    with pytest.raises(ValueError):
        problem.rhs(0.0, problem.x0)


def test_observe(semi_explicit):
    reduced, t, x, y, z, u = semi_explicit
    problem = make_problem(reduced, (0.0, 1.0), {x: 1.0}, inputs={u: 0.5})

    ts = np.array([0.0, 1.0])
    xs = np.array([[1.0, 2.0]])
    ys = np.array([[2.0, 4.0]])
    assert np.allclose(problem.observe(z, ts, xs, ys), [3.0, 6.0])
    assert np.allclose(problem.observe(x, ts, xs, ys), [1.0, 2.0])
    # d/dt x = -k x + y + u
    dx = problem.observe(sp.Derivative(x, t), ts, xs, ys)
    assert np.allclose(dx, [-0.5, -1.5])

    with pytest.raises(ValueError):
        problem.observe(z, ts, xs)


def test_missing_input(semi_explicit):
    reduced, t, x, y, z, u = semi_explicit
    with pytest.raises(ModelDefinitionError, match="No value provided"):
        make_problem(reduced, (0.0, 1.0), {x: 1.0})
