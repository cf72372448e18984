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

from enum import Enum
from typing import TYPE_CHECKING
import numpy as np
from ..error import ModelDefinitionError
from ..lazy_loader import LazyLoader

if TYPE_CHECKING:
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")

"""
Framework classes for Symbols and Equations.
"""


class EqnEnv:
    """Equation Environment object containing any object which is used
    in equations or expressions and that is common throughout a given
    Acausal model.

    One EqnEnv is created per model build. Components of one diagram must
    share the same EqnEnv so that their equations use the same time symbol.

    Attributes:
        t (Sympy Symbol):
            The symbol for time which must be used by all equations
            which need time.
        syms (list[Sym]):
            The constants available to every component.
    """

    def __init__(self):
        self.t = sp.symbols("t", real=True)
        self.e = Sym(
            self,
            sym_name="e",
            base_name="constants",
            val=np.e,
            kind=SymKind.param,
        )
        self.pi = Sym(
            self,
            sym_name="pi",
            base_name="constants",
            val=np.pi,
            kind=SymKind.param,
        )

        self.syms = [self.e, self.pi]

    @property
    def constants(self):
        """dict{sympy.Symbol:value} of the environment constants."""
        return {sym.s: sym.val for sym in self.syms}


class Domain(Enum):
    """Enumeration for the Acausal domains"""

    rotational = 3
    translational = 4

    def __str__(self):
        return f"{self.name}"


class Orientation(Enum):
    """The end of a two-flange component a connector sits on.
    One-flange components use 'a'."""

    a = 0
    b = 1

    def __str__(self):
        return f"{self.name}"


class SymKind(Enum):
    """Enumeration for the 'kind' of a 'Sym' object. 'kind' qualifies the symbol
    w.r.t. how it gets treated when rearanging/simplifying equations, or determining
    initial conditions.

     - 'flow' means this symbol is a flow variable. it appears in one and only one
        conservation equation for a given connection class. e.g. all torques sum to 0.
     - 'pot' means this symbol is a potential variable. it is equal to the potential
        of every other connector in its connection class. e.g. all angles are equal.
     - 'param' means this symbol is a parameter of the system, e.g. inertia, stiffness.
        also used for constants, e.g. e, pi.
     - 'inp' means this symbol is an input, similar to param, but the value is a
        function of time supplied by the caller when the system is solved.
     - 'outp' means this symbol is a output and therefore must appear on the LHS of an
        expression. e.g. torque value for ideal torque sensor.
     - 'var' means this symbol is a variable of the system that does not match any
        description above. e.g. w = Derivative(phi) in an inertia.
    """

    flow = 0
    pot = 1
    param = 2
    inp = 3
    outp = 4
    var = 6


class Sym:
    """
    A container for a sympy symbol together with the modeling information the
    simplification stages need: its kind, its owning component, its parameter
    value, and its initial condition.

    Attributes:
        name (string):
            the string used to uniquely identify the symbol in Sympy.
        sym_name (string):
            the short name of the symbol inside its component, e.g. 'phi'.
        s (Sympy.Symbol or Sympy.Function):
            The symbol that this object is a containter for. Parameters are plain
            symbols, everything else is a function of time.
        val (number):
            A literal numerical value associated with this symbol.
        kind (SymKind):
            see SymKind documentation.
        ic (number):
            If this symbol could represent the state of a system, this is the initial
            conditions for the state, as assigned by the user.
        ic_fixed (bool):
            If true, the 'ic' is considered a fixed requirement, and must be respected.
            If false, the 'ic' is considered a suggestion, which can be used to fill in
            gaps of system initial conditions.
        validator (callable):
            if the symbol is a parameter, a function that validates the parameter val. e.g.
            lambda val: val >=0.0.
        invalid_msg (str):
            an error message to be passed to error constructor in the event the parameter
            validator fails. e.g. "<param_name> must be > 0".
    """

    def __init__(
        self,
        eqn_env,
        sym_name=None,  # the symbol name, e.g. phi for angle
        base_name=None,  # comp_name or comp_name+port_name
        name=None,  # the full name, for autogenerated symbols
        val=None,
        kind=None,
        ic=None,
        ic_fixed=False,
        sym=None,
        validator=None,
        invalid_msg=None,
    ):
        if name is None:
            self.sym_name = sym_name
            if base_name is not None:
                self.name = base_name + "_" + sym_name
            else:
                self.name = sym_name
        else:
            self.name = self.sym_name = name

        if kind not in SymKind:
            raise ModelDefinitionError(
                f"kind:{kind} of symbol:{self.name} not one of {list(SymKind)}"
            )

        if kind == SymKind.param and val is None:
            raise ModelDefinitionError(
                f"symbol:{self.name} has kind param, val cannot be None"
            )

        if kind in [SymKind.param, SymKind.inp] and ic is not None:
            raise ModelDefinitionError(
                f"symbol:{self.name} of kind:{kind} cannot have an initial condition"
            )

        if sym is not None:
            # this symbol has been defined externally
            self.s = sym
        elif kind == SymKind.param:
            self.s = sp.Symbol(self.name, real=True)
        else:
            self.s = sp.Function(self.name, real=True)(eqn_env.t)

        self.val = val
        self.kind = kind
        self.ic = ic
        self.ic_fixed = ic_fixed
        self.validator = validator
        self.invalid_msg = invalid_msg

    def __repr__(self):
        return str(self.name)

    def validate(self):
        """Returns True when the symbol is not a parameter, or its value
        passes its validator."""
        if self.kind != SymKind.param or self.validator is None:
            return True
        return bool(self.validator(self.val))


class EqnKind(Enum):
    """Enumeration for the 'kind' of an 'Eqn' object. 'kind' qualifies the equation
    w.r.t. how it gets treated when rearanging/simplifying equations, or determining
    initial conditions.

     - 'pot' this is a 'potential variable' equality of a connection class.
     - 'flow' this is a 'flow variable' summation equation of a connection class.
     - 'comp' this equation define component behavior.
     - 'outp' this equation relates an output symbol to an expression.
    """

    pot = 0
    flow = 1
    comp = 3
    outp = 4


class Eqn:
    """Class for holding Sympy.Eq objects with additional qualification data.

    Attributes;
        e (Sympy.Eq):
            The equation.
        kind (EqnKind):
            See documentation for EqnKind.
        node_id (int):
            The connection class this equation belongs to, for 'pot' and
            'flow' equations. Assigned by the ConnectionGraph.
        cmp_name (str):
            The component that declared this equation, for 'comp' and 'outp'
            equations.
    """

    def __init__(self, e, kind=None, node_id=None, cmp_name=None):
        self.e = e
        self.kind = kind
        self.node_id = node_id
        self.cmp_name = cmp_name

    def __repr__(self):
        if self.kind is None:
            return str(self.e)
        owner = f"nid:{self.node_id}" if self.node_id is not None else self.cmp_name
        return str(self.kind) + "\t" + str(self.e) + "\t" + str(owner)

    @property
    def expr(self):
        """
        Return the equation, re-arranged as an expression equal to zero.
        """
        return self.e.lhs - self.e.rhs

    @property
    def is_differential(self):
        """True when the equation contains a time derivative."""
        return self.e.has(sp.Derivative)

    @property
    def tag(self):
        return "differential" if self.is_differential else "algebraic"
