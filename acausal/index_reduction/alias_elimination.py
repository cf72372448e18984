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
Alias and trivial equation elimination.

Finds algebraic equations of the forms
    a = b, a = -b, 0 = a + b, 0 = a - b
    a = c, 0 = k*a + c      (c, k made of numbers and parameters)
solves them for one of their unknowns, substitutes the solution everywhere
(including inside derivatives) and removes the equation. Substitution can turn
other equations into aliases, so the scan repeats until a fixed point.
"""

import warnings
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from ..component_library.base import SymKind
from ..error import InconsistentInitializationError, StructuralReductionError
from ..lazy_loader import LazyLoader
from ..logging import logger
from .equation_utils import linear_coeff, sort_key, substitute

if TYPE_CHECKING:
    import sympy as sp
    import sympy.core.function as scf
else:
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


# lower rank is eliminated first
_KIND_RANK = {
    SymKind.outp: 0,
    SymKind.pot: 1,
    SymKind.flow: 1,
    SymKind.var: 2,
}


class AliasResult(NamedTuple):
    exprs: list  # remaining equations, 0 = expr
    unknowns: list  # remaining unknowns, in their original order
    observed: dict  # dict{eliminated var: expr in remaining unknowns}
    ics: dict
    ics_weak: dict


class AliasElimination:
    def __init__(
        self,
        exprs,
        unknowns,
        knowns: dict,
        inputs,
        syms: dict,
        ics: dict,
        ics_weak: dict,
        observed: dict = None,
        tol: float = 1e-10,
    ):
        self.exprs = list(exprs)
        self.unknowns = list(unknowns)
        self.unknowns_set = set(unknowns)
        self.knowns = knowns
        self.inputs = set(inputs)
        self.syms = syms
        self.ics = dict(ics)
        self.ics_weak = dict(ics_weak)
        self.observed = dict(observed or {})
        self.tol = tol

    def _unknowns_in(self, expr):
        return sorted(
            (v for v in expr.atoms(scf.AppliedUndef) if v in self.unknowns_set),
            key=sort_key,
        )

    def _differentiated(self):
        diffed = set()
        for expr in self.exprs:
            for der in expr.atoms(sp.Derivative):
                diffed.add(der.expr)
        return diffed

    def _priority(self, var, differentiated):
        sym = self.syms.get(var)
        rank = _KIND_RANK.get(sym.kind, 3) if sym is not None else 3
        return (var in differentiated, rank, sort_key(var))

    def _is_constant(self, expr):
        if expr.atoms(scf.AppliedUndef):
            return False
        return not (expr.free_symbols - set(self.knowns.keys()))

    def _value(self, expr):
        return float(expr.xreplace(self.knowns))

    def _match(self, expr, differentiated):
        """Returns (alias_var, sub_expr) when 0 = expr is an alias equation."""
        if expr.has(sp.Derivative):
            return None
        unk = self._unknowns_in(expr)
        if len(unk) == 1:
            (a,) = unk
            coeff = linear_coeff(expr, a)
            if coeff is None or not self._is_constant(coeff):
                return None
            rest = expr.xreplace({a: sp.S.Zero})
            if not self._is_constant(rest):
                return None
            return a, -rest / coeff
        if len(unk) == 2:
            ca = linear_coeff(expr, unk[0])
            cb = linear_coeff(expr, unk[1])
            if ca is None or cb is None or not (ca.is_number and cb.is_number):
                return None
            if not (ca == cb or ca == -cb):
                return None
            if expr.xreplace({unk[0]: sp.S.Zero, unk[1]: sp.S.Zero}) != 0:
                return None
            a, b = sorted(unk, key=lambda v: self._priority(v, differentiated))
            ca, cb = (ca, cb) if a == unk[0] else (cb, ca)
            return a, (-cb / ca) * b
        return None

    def _check_trivial(self, expr):
        """expr has no unknowns. Returns True when it can be dropped."""
        if expr == 0:
            return True
        if expr.atoms(scf.AppliedUndef):
            raise StructuralReductionError(
                "An equation constrains only inputs.", equations=[expr]
            )
        if expr.free_symbols - set(self.knowns.keys()):
            raise StructuralReductionError(
                "An equation constrains only time and parameters.", equations=[expr]
            )
        value = self._value(expr)
        if abs(value) > self.tol * max(1.0, abs(value)):
            raise StructuralReductionError(
                f"Contradictory constant equation, 0 = {value}.", equations=[expr]
            )
        return True

    def _carry_ics(self, a, sub):
        """Move the initial values of the eliminated var 'a' onto the aliased
        var, or check them against the constant it equals."""
        strong = self.ics.pop(a, None)
        weak = self.ics_weak.pop(a, None)
        if strong is None and weak is None:
            return

        unk = self._unknowns_in(sub)
        if not unk:
            value = self._value(sub)
            if strong is not None and not np.allclose(strong, value):
                raise InconsistentInitializationError(
                    f"Detected conflicting initial conditions for {a}. "
                    f"Values are: {strong} and the constant {value}.",
                    variables=[a],
                )
            if weak is not None and not np.allclose(weak, value):
                warnings.warn(
                    f"Weak initial value {weak} of {a} ignored, it equals the "
                    f"constant {value}.",
                    UserWarning,
                )
            return

        (b,) = unk
        # a = s*b, so b = a/s
        s = self._value(sub.xreplace({b: sp.S.One}))
        if strong is not None:
            strong_b = strong / s
            if b in self.ics:
                if not np.allclose(self.ics[b], strong_b):
                    raise InconsistentInitializationError(
                        f"Detected conflicting initial conditions. Values are: "
                        f"{strong} for {a} and {self.ics[b] * s} from {b}.",
                        variables=[a, b],
                    )
            else:
                self.ics[b] = strong_b
                self.ics_weak.pop(b, None)
        if weak is not None and b not in self.ics:
            weak_b = weak / s
            if b in self.ics_weak and not np.allclose(self.ics_weak[b], weak_b):
                warnings.warn(
                    f"Conflicting weak ICs for {b}={self.ics_weak[b]} and aliasee "
                    f"{a} ic={weak_b}, ignoring the latter.",
                    UserWarning,
                )
            else:
                self.ics_weak[b] = weak_b

    def _eliminate(self, idx, a, sub):
        logger.debug("AliasElimination %s -> %s", a, sub)
        del self.exprs[idx]
        subs = {a: sub}
        self.exprs = [substitute(expr, subs) for expr in self.exprs]
        self.observed = {k: v.xreplace(subs) for k, v in self.observed.items()}
        self.observed[a] = sub
        self.unknowns_set.discard(a)
        self._carry_ics(a, sub)

    def __call__(self) -> AliasResult:
        changed = True
        while changed:
            changed = False
            differentiated = self._differentiated()
            for idx, expr in enumerate(self.exprs):
                if not self._unknowns_in(expr):
                    if expr.has(sp.Derivative):
                        continue
                    if self._check_trivial(expr):
                        del self.exprs[idx]
                        changed = True
                        break
                match = self._match(expr, differentiated)
                if match is not None:
                    self._eliminate(idx, *match)
                    changed = True
                    break

        unknowns = [v for v in self.unknowns if v in self.unknowns_set]
        logger.debug(
            "AliasElimination eliminated %d variables, %d equations remain.",
            len(self.observed),
            len(self.exprs),
        )
        return AliasResult(
            exprs=self.exprs,
            unknowns=unknowns,
            observed=self.observed,
            ics=self.ics,
            ics_weak=self.ics_weak,
        )
