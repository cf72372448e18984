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

from typing import Tuple, List, Dict, TYPE_CHECKING, Callable

from .base import EqnEnv, Domain, Orientation, SymKind, Sym, EqnKind, Eqn
from ..error import ModelDefinitionError

from ..lazy_loader import LazyLoader

if TYPE_CHECKING:
    import sympy as sp
    import sympy.core.function as scf
else:
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


class PortBase:
    """Base class for the port of acausal components.
    The flow and pot attributes are used by the ConnectionGraph when constructing
    potential equality and flow balance equations, to identify these relative to
    other component/port symbols.

    Attributes:
        domain (Domain):
            The physical domain of the port.
        flow (Sym):
            The 'flow' symbol associated with the port.
        pot (Sym):
            The 'potential' symbol associated with the port.
        orientation (Orientation):
            The flange end the port sits on.
        flow_into (bool):
            True when a positive flow enters the component through this port.
    """

    def __init__(
        self,
        name: str,
        domain: Domain,
        pot: Sym,
        flow: Sym,
        orientation: Orientation = Orientation.a,
        flow_into: bool = True,
    ):
        self.name = name
        self.domain = domain
        self.pot = pot
        self.flow = flow
        self.orientation = orientation
        self.flow_into = flow_into
        self.validate()

    @property
    def flow_sign(self) -> int:
        """Sign of this port's flow in the flow balance of its connection class."""
        return 1 if self.flow_into else -1

    def validate(self):
        if not isinstance(self.domain, Domain):
            raise ModelDefinitionError(
                f"Port {self.name} has invalid domain {self.domain}."
            )
        if self.flow is None or self.flow.kind != SymKind.flow:
            raise ModelDefinitionError(
                f"Port {self.name} flow variable must have kind {SymKind.flow}."
            )
        if self.pot is None or self.pot.kind != SymKind.pot:
            raise ModelDefinitionError(
                f"Port {self.name} potential variable must have kind {SymKind.pot}."
            )
        if not isinstance(self.orientation, Orientation):
            raise ModelDefinitionError(
                f"Port {self.name} has invalid orientation {self.orientation}."
            )

    def __repr__(self):
        return str(
            self.__class__.__name__
            + " pot:"
            + str(self.pot)
            + " flow:"
            + str(self.flow)
        )


class RotationalPort(PortBase):
    """Class for acausal port in the rotational domain.
    The potential is the angle phi [rad], the flow is the torque tau [N m]."""

    def __init__(
        self,
        name,
        phi: Sym,
        tau: Sym,
        orientation: Orientation = Orientation.a,
        flow_into: bool = True,
    ):
        super().__init__(
            name,
            Domain.rotational,
            pot=phi,
            flow=tau,
            orientation=orientation,
            flow_into=flow_into,
        )

    @property
    def phi(self):
        return self.pot

    @property
    def tau(self):
        return self.flow


class ComponentBase:
    """Base class for acausal components.

    Subclasses declare their symbols, ports and equations in their constructor
    using the declare_* methods, and list the port names they must expose in
    'connectors'.

    Class attributes:
        connectors (tuple[str]):
            The port names every instance must declare.
        optional_connectors (tuple[str]):
            The port names an instance may declare, e.g. a 'support' flange.
        exclusive_connectors (tuple[tuple[str, str]]):
            Pairs of ports that must not end up in the same connection class.

    Attributes:
        ports (dict{port_name:port}):
            A dictionary from port_name to port object.
        syms (list[Sym]):
            All Sym objects related to this component, in declaration order.
        eqs (list[Eqn]):
            All Eqn objects related to this component, in declaration order.
    """

    connectors: Tuple[str, ...] = ()
    optional_connectors: Tuple[str, ...] = ()
    exclusive_connectors: Tuple[Tuple[str, str], ...] = ()

    def __init__(self):
        self.ports: Dict = {}
        self.syms: List = []
        self.eqs: List = []

    def __repr__(self):
        return str(self.__class__.__name__ + "_" + self.name)

    def declare_symbol(
        self,
        ev: EqnEnv,
        sym_name: str,
        base_name: str,
        val: float = None,
        kind: SymKind = None,
        ic: float = None,
        ic_fixed: bool = False,
        sym: "sp.Symbol" = None,
        validator: Callable = None,
        invalid_msg: str = None,
    ):
        # declare a symbol in the components system of equations.
        sym = Sym(
            ev,
            sym_name=sym_name,
            base_name=base_name,
            val=val,
            kind=kind,
            ic=ic,
            ic_fixed=ic_fixed,
            sym=sym,
            validator=validator,
            invalid_msg=invalid_msg,
        )

        if sym.name in [s.name for s in self.syms]:
            raise ModelDefinitionError(
                f"declare_symbol() Sym {sym} already exists.", components=[self]
            )
        self.syms.append(sym)

        return sym

    def declare_parameter(
        self,
        ev: EqnEnv,
        sym_name: str,
        val: float,
        validator: Callable = None,
        invalid_msg: str = None,
    ):
        return self.declare_symbol(
            ev,
            sym_name,
            self.name,
            kind=SymKind.param,
            val=val,
            validator=validator,
            invalid_msg=invalid_msg,
        )

    def _check_port_name(self, name: str):
        if name in self.ports.keys():
            raise ModelDefinitionError(
                f"_check_port_name() port name {name} already exists.",
                components=[self],
            )

    """
    Note on declare_rotational_port() below.
    It returns the tuple of Sym objects related to the port:
        (phi, tau) = declare_rotational_port(ev, 'flange_a')
    This way, in the component constructor, the port symbols have terse names
    relevant to the component context. A spring can be defined as:
        (phi_a, tau_a) = declare_rotational_port(ev, 'flange_a')
        (phi_b, tau_b) = declare_rotational_port(ev, 'flange_b', Orientation.b)
        Eq(tau_b, c.s * (phi_b.s - phi_a.s))
        Eq(0, tau_a.s + tau_b.s)
    As opposed to:
        Eq(self.ports['flange_b'].flow.s, c.s * (self.ports['flange_b'].pot.s - ...))
    """

    def declare_rotational_port(
        self,
        ev: EqnEnv,
        port_name: str,
        orientation: Orientation = Orientation.a,
        flow_into: bool = True,
        phi_ic: float = None,
        phi_ic_fixed: bool = False,
    ) -> Tuple[Sym, Sym]:
        self._check_port_name(port_name)
        sym_base_name = self.name + "_" + port_name
        phi = self.declare_symbol(
            ev,
            "phi",
            sym_base_name,
            kind=SymKind.pot,
            ic=phi_ic,
            ic_fixed=phi_ic_fixed,
        )
        tau = self.declare_symbol(ev, "tau", sym_base_name, kind=SymKind.flow)
        self.ports[port_name] = RotationalPort(
            port_name, phi, tau, orientation=orientation, flow_into=flow_into
        )
        return phi, tau

    def declare_equation(self, e: "sp.Eq", kind=EqnKind.comp):
        if not isinstance(e, sp.Eq):
            raise ModelDefinitionError(
                f"declare_equation() expected a sympy Eq, got {e!r}.",
                components=[self],
            )
        if e in [eqn.e for eqn in self.eqs]:
            raise ModelDefinitionError(
                f"declare_equation() Eqn {e} already exists.", components=[self]
            )
        self.eqs.append(Eqn(e=e, kind=kind, cmp_name=self.name))

    def add_eqs(self, eqs: List["sp.Eq"], kind=None):
        if kind is None:
            kind = EqnKind.comp
        for e in eqs:
            self.declare_equation(e, kind=kind)

    def get_syms_by_kind(self, kind: SymKind):
        syms = []
        for sym in self.syms:
            if sym.kind == kind:
                syms.append(sym)
        return syms

    def port(self, name: str):
        """Returns the (component, port_name) terminal used by connect statements."""
        if name not in self.ports:
            raise ModelDefinitionError(
                f"Component {self.name} has no port {name}.", components=[self]
            )
        return (self, name)

    def validate(self, ev: EqnEnv):
        """Check the declarations of the component against its template.

        Raises:
            ModelDefinitionError: the ports do not match 'connectors', a
            parameter fails its validator, no equations are declared, or an
            equation references a symbol the component did not declare.
        """
        declared = set(self.ports.keys())
        required = set(self.connectors)
        allowed = required | set(self.optional_connectors)
        missing = sorted(required - declared)
        extra = sorted(declared - allowed)
        if missing or extra:
            raise ModelDefinitionError(
                f"Component {self.name} connector arity mismatch. "
                f"Expected {sorted(required)}, missing {missing}, unexpected {extra}.",
                components=[self],
            )

        for sym in self.get_syms_by_kind(SymKind.param):
            if not sym.validate():
                msg = sym.invalid_msg or f"Invalid value {sym.val} for {sym.name}."
                raise ModelDefinitionError(msg, components=[self])

        if not self.eqs:
            raise ModelDefinitionError(
                f"Component {self.name} declares no equations.", components=[self]
            )

        known = {sym.s for sym in self.syms} | {ev.t} | set(ev.constants.keys())
        for eqn in self.eqs:
            used = set(eqn.e.free_symbols) | set(eqn.e.atoms(scf.AppliedUndef))
            undeclared = [s for s in used if s not in known]
            if undeclared:
                raise ModelDefinitionError(
                    f"Component {self.name} equation {eqn.e} references undeclared "
                    "symbols.",
                    components=[self],
                    variables=sorted(undeclared, key=str),
                )
