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

from ..lazy_loader import LazyLoader

if TYPE_CHECKING:
    import sympy as sp
    import sympy.core.function as scf
else:
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


def sort_key(var):
    return str(var)


def extract_vars(eq, known_vars):
    """
    Extract variables from equations in their precise form, differentiating between
    non-derivatives and derivatives, and excluding known_vars.

    x(t) + y(t) = 0 -> {}, {x, y}
    x(t).diff(t) + y(t) = 0 -> {dx/dt}, {y}
    x(t).diff(t) + y(t).diff(t) = 0 -> {dx/t, dy/dt}, {}
    x(t) + x(t).diff(t) + y(t) = 0 -> {dx/t}, {x,y}
    x(t) + x(t).diff(t,t) + y(t).diff(t) = 0 -> {d2x/dt2, dy/dt}, {x}

    Parameters
    ----------
    eq : sympy expression
        A sympy expression from which variables need to be extracted
    known_vars : set
        Set of known variables, e.g. inputs

    Returns
    -------
    d_vars : set
        Set of differential variables
    a_vars : set
        Set of algebraic variables
    """

    def is_known(var):
        if var in known_vars:
            return True
        # check if the integrals of the variable are known
        if isinstance(var, sp.Derivative):
            return var.expr in known_vars
        return False

    # Create a dummy equation by replacing all the derivatives
    true_to_dummy = {}
    for der in eq.atoms(sp.Derivative):
        true_to_dummy[der] = sp.Dummy("d_" + str(der))
    dummy_eq = eq.xreplace(true_to_dummy)

    # Find algebraic variables in the dummy equation
    a_vars = {var for var in dummy_eq.atoms(scf.AppliedUndef) if not is_known(var)}
    d_vars = {var for var in eq.atoms(sp.Derivative) if not is_known(var)}

    return d_vars, a_vars


def process_equations(eqs, known_vars):
    """
    f(x, x_dot, y ) = 0

    extract lists of x, x_dot, and y from the list of eqs representing `f`.
    All lists are sorted by name.
    """

    d_vars = set()
    a_vars = set()

    vars_in_eqs = []
    for eq in eqs:
        eq_d_vars, eq_a_vars = extract_vars(eq, known_vars)
        d_vars.update(eq_d_vars)
        a_vars.update(eq_a_vars)
        vars_in_eqs.append(eq_d_vars.union(eq_a_vars))

    x_dot = sorted(d_vars, key=sort_key)
    x = sorted({var.expr for var in d_vars}, key=sort_key)
    y = sorted(a_vars.difference(x), key=sort_key)
    X = sorted(set().union(x, x_dot, y), key=sort_key)

    return x, x_dot, y, X, vars_in_eqs


def substitute(expr, subs):
    """Replace subexpressions exactly (including inside derivatives) and evaluate
    the derivatives of the replacements."""
    if not subs:
        return expr
    new = expr.xreplace(subs)
    if new is not expr and new.has(sp.Derivative):
        new = new.doit()
    return new


def base_var(var):
    """x for x, Derivative(x, t) or Derivative(x, (t, k))."""
    return var.expr if isinstance(var, sp.Derivative) else var


def var_name(var) -> str:
    """Name of an unknown: the function name for x(t), and name_t, name_tt, ...
    for its time derivatives."""
    if isinstance(var, sp.Derivative):
        return var_name(var.expr) + "_" + "t" * var.derivative_count
    if isinstance(var, scf.AppliedUndef):
        return var.func.__name__
    return str(var)


def new_var(name, t):
    return sp.Function(name, real=True)(t)


def linear_coeff(expr, var):
    """The coefficient a of expr = a*var + b when expr is linear in var and a
    does not vanish identically, otherwise None."""
    coeff = sp.diff(expr, var)
    if coeff == 0 or coeff.has(var):
        return None
    return coeff


def solve_linear(expr, var):
    """Solve 0 = expr for var, expr being linear in var. Returns None when it
    is not."""
    coeff = linear_coeff(expr, var)
    if coeff is None:
        return None
    return -expr.xreplace({var: sp.S.Zero}) / coeff


def is_jointly_linear(exprs, vars_):
    """True when every expr is linear in vars_, i.e. the Jacobian does not
    depend on vars_."""
    for expr in exprs:
        for v in vars_:
            coeff = sp.diff(expr, v)
            if any(coeff.has(w) for w in vars_):
                return False
    return True


def lower_derivative_order(exprs, t, known_vars, taken_names=()):
    """
    Replace derivatives of order k >= 2 of an unknown x with first order
    derivatives of new variables:

        x_t = Derivative(x, t), x_tt = Derivative(x_t, t), ...

    so that Derivative(x, (t, k)) becomes Derivative(x_t...t, t) with k-1 't'.

    Returns the new expressions (the relations appended at the end), the new
    variables and the mapping {Derivative(x, (t, j)): x_t..t} for j < k.
    """
    orders = {}
    for expr in exprs:
        for der in expr.atoms(sp.Derivative):
            x = der.expr
            if x in known_vars or isinstance(x, sp.Derivative):
                continue
            if der.derivative_count > 1:
                orders[x] = max(orders.get(x, 1), der.derivative_count)

    if not orders:
        return list(exprs), [], {}

    taken = set(taken_names)
    subs = {}
    new_vars = []
    relations = []
    for x in sorted(orders, key=sort_key):
        k = orders[x]
        prev = x
        for j in range(1, k):
            name = var_name(x) + "_" + "t" * j
            while name in taken:
                name += "_"
            taken.add(name)
            xj = new_var(name, t)
            new_vars.append(xj)
            subs[sp.Derivative(x, (t, j))] = xj
            relations.append(xj - sp.Derivative(prev, t))
            prev = xj
        subs[sp.Derivative(x, (t, k))] = sp.Derivative(prev, t)

    lowered = [expr.xreplace(subs) for expr in exprs]
    return lowered + relations, new_vars, subs
