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
from ..error import ModelDefinitionError
from .base import Orientation, SymKind, EqnKind
from .component_base import ComponentBase

if TYPE_CHECKING:
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")

"""
1D mechanical rotational components similar to Modelica Standard Library.

flow variable:Units = torque:Newton*meters
potential variable:Units = angle:radians

Flows are positive into the component at every flange.
"""


def _der(sym):
    return sp.Derivative(sym.s, sym.s.args[0])


class RotationalOnePort(ComponentBase):
    """Partial component class for a rotational component with one flange."""

    connectors = ("flange",)

    def __init__(self, ev, name, p="flange"):
        super().__init__()
        self.phi, self.tau = self.declare_rotational_port(ev, p)


class RotationalTwoPort(ComponentBase):
    """Partial component class for an rotational component with two
    flanges that can rotate relative to each other.
    """

    connectors = ("flange_a", "flange_b")

    def __init__(
        self,
        ev,
        name,
        p1="flange_a",
        p2="flange_b",
        include_torque_equality=True,
    ):
        super().__init__()
        self.phi_a, self.tau_a = self.declare_rotational_port(ev, p1)
        self.phi_b, self.tau_b = self.declare_rotational_port(
            ev, p2, orientation=Orientation.b
        )
        if include_torque_equality:
            self.add_eqs([sp.Eq(0, self.tau_a.s + self.tau_b.s)])


class PartialCompliant(RotationalTwoPort):
    """Partial component class for a compliant connection of two flanges.
    Declares the relative angle phi_rel = phi_b - phi_a."""

    def __init__(self, ev, name):
        super().__init__(ev, name)
        self.phi_rel = self.declare_symbol(ev, "phi_rel", self.name, kind=SymKind.var)
        self.add_eqs([sp.Eq(self.phi_rel.s, self.phi_b.s - self.phi_a.s)])


class _SupportMixin:
    """Declares an optional 'support' flange. Without it the support is fixed
    at angle zero and its reaction torque is discarded."""

    optional_connectors = ("support",)

    def _declare_support(self, ev, use_support):
        if use_support:
            phi_s, tau_s = self.declare_rotational_port(ev, "support")
            return phi_s.s, tau_s
        return sp.Integer(0), None


class Inertia(RotationalTwoPort):
    """
    Ideal inertia in rotational domain. The characteristic equation is:
    J*Derivative(w(t)) = tau_a(t) + tau_b(t), where w = Derivative(phi(t))
    and J is moment of inertia in kg*m^2.

    Args:
        J (number):
            The moment of inertia.
        phi (number):
            initial angle.
        phi_fixed (bool):
            When true, phi is a strong initial condition.
        w (number):
            initial velocity.
        w_fixed (bool):
            When true, w is a strong initial condition.
    """

    def __init__(
        self,
        ev,
        name=None,
        J=1.0,
        phi=None,
        phi_fixed=False,
        w=None,
        w_fixed=False,
    ):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, include_torque_equality=False)

        J = self.declare_symbol(
            ev,
            "J",
            self.name,
            kind=SymKind.param,
            val=J,
            validator=lambda J: J > 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have J>0",
        )
        self.phi = self.declare_symbol(
            ev, "phi", self.name, kind=SymKind.var, ic=phi, ic_fixed=phi_fixed
        )
        self.w = self.declare_symbol(
            ev, "w", self.name, kind=SymKind.var, ic=w, ic_fixed=w_fixed
        )
        self.add_eqs(
            [
                sp.Eq(self.phi_a.s, self.phi.s),
                sp.Eq(self.phi_b.s, self.phi.s),
                sp.Eq(self.w.s, _der(self.phi)),
                sp.Eq(J.s * _der(self.w), self.tau_a.s + self.tau_b.s),
            ]
        )


class Spring(PartialCompliant):
    """
    Ideal linear spring in rotational domain. The characteristic equation is:
    tau_b(t) = c*(phi_rel(t) - phi_rel0), where c is the spring constant in N*m/rad.

    Args:
        c (number):
            The stiffness of the spring.
        phi_rel0 (number):
            The unstretched relative angle.
    """

    def __init__(self, ev, name=None, c=1.0, phi_rel0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)

        c = self.declare_symbol(
            ev,
            "c",
            self.name,
            kind=SymKind.param,
            val=c,
            validator=lambda c: c > 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have c>0",
        )
        phi_rel0 = self.declare_parameter(ev, "phi_rel0", phi_rel0)
        self.add_eqs([sp.Eq(self.tau_b.s, c.s * (self.phi_rel.s - phi_rel0.s))])


class Damper(RotationalTwoPort):
    """
    Ideal linear damper in rotational domain. The characteristic equation is:
    tau_b(t) = d*(Derivative(phi_b(t)) - Derivative(phi_a(t))), where d is the
    damping coefficient in N*m/(rad/s).

    Args:
        d (number):
            The damping coefficient.
    """

    def __init__(self, ev, name=None, d=1.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)

        d = self.declare_symbol(
            ev,
            "d",
            self.name,
            kind=SymKind.param,
            val=d,
            validator=lambda d: d > 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have d>0",
        )
        self.add_eqs(
            [sp.Eq(self.tau_b.s, d.s * (_der(self.phi_b) - _der(self.phi_a)))]
        )


class SpringDamper(PartialCompliant):
    """
    Linear spring and linear damper in parallel. The characteristic equation is:
    tau_b(t) = c*(phi_rel(t) - phi_rel0) + d*Derivative(phi_rel(t)).

    Args:
        c (number):
            The stiffness of the spring.
        d (number):
            The damping coefficient.
        phi_rel0 (number):
            The unstretched relative angle.
    """

    def __init__(self, ev, name=None, c=1.0, d=1.0, phi_rel0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)

        c = self.declare_symbol(
            ev,
            "c",
            self.name,
            kind=SymKind.param,
            val=c,
            validator=lambda c: c > 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have c>0",
        )
        d = self.declare_symbol(
            ev,
            "d",
            self.name,
            kind=SymKind.param,
            val=d,
            validator=lambda d: d >= 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have d>=0",
        )
        phi_rel0 = self.declare_parameter(ev, "phi_rel0", phi_rel0)
        self.add_eqs(
            [
                sp.Eq(
                    self.tau_b.s,
                    c.s * (self.phi_rel.s - phi_rel0.s) + d.s * _der(self.phi_rel),
                )
            ]
        )


class IdealGear(_SupportMixin, RotationalTwoPort):
    """
    Ideal gear without inertia. The characteristic equations are:
    phi_b(t) - phi_s(t) = (phi_a(t) - phi_s(t)) / ratio
    tau_a(t) = -tau_b(t) / ratio
    tau_s(t) = -(tau_a(t) + tau_b(t))

    Without support, phi_s = 0 and the reaction torque is not modeled.

    Args:
        ratio (number):
            Transmission ratio, w_a / w_b.
        use_support (bool):
            When true, declares a 'support' flange.
    """

    exclusive_connectors = (("flange_a", "flange_b"),)

    def __init__(self, ev, name=None, ratio=1.0, use_support=False):
        self.name = self.__class__.__name__ if name is None else name
        # 0 = tau_a + tau_b does not hold for a gear.
        super().__init__(ev, self.name, include_torque_equality=False)
        phi_s, tau_s = self._declare_support(ev, use_support)

        r = self.declare_symbol(
            ev,
            "ratio",
            self.name,
            kind=SymKind.param,
            val=ratio,
            validator=lambda r: r != 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have ratio!=0",
        )
        self.add_eqs(
            [
                sp.Eq(self.phi_b.s - phi_s, (self.phi_a.s - phi_s) / r.s),
                sp.Eq(self.tau_a.s, -self.tau_b.s / r.s),
            ]
        )
        if tau_s is not None:
            self.add_eqs([sp.Eq(tau_s.s, -(self.tau_a.s + self.tau_b.s))])


class Friction(RotationalTwoPort):
    """
    Coulomb, viscous and Stribeck friction in rotational domain. The
    characteristic equation is:
        tau_b = stribeck + coulomb + f*w_rel

    where, with w_st = w_brk*sqrt(2) and w_coul = w_brk/10:
        stribeck = sqrt(2*e)*(tau_brk - tau_c)*exp(-(w_rel/w_st)**2)*w_rel/w_st
        coulomb = tau_c*tanh(w_rel/w_coul)          formulation="smooth"
        coulomb = tau_c*sat(w_rel/w_coul)           formulation="regularized"

    sat() is the piecewise linear saturation to [-1, 1]. tau_brk=None drops
    the Stribeck term.

    Args:
        f (number):
            Viscous friction coefficient.
        tau_c (number):
            Coulomb friction torque.
        w_brk (number):
            Breakaway friction velocity.
        tau_brk (number):
            Breakaway friction torque.
        formulation (str):
            "smooth" or "regularized".
    """

    formulations = ("smooth", "regularized")

    def __init__(
        self,
        ev,
        name=None,
        f=0.001,
        tau_c=20.0,
        w_brk=0.06283,
        tau_brk=None,
        formulation="smooth",
    ):
        self.name = self.__class__.__name__ if name is None else name
        if formulation not in self.formulations:
            raise ModelDefinitionError(
                f"Component {self.__class__.__name__} {self.name} formulation must be "
                f"one of {self.formulations}, got {formulation}."
            )
        super().__init__(ev, self.name)

        f = self.declare_symbol(
            ev,
            "f",
            self.name,
            kind=SymKind.param,
            val=f,
            validator=lambda f: f >= 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have f>=0",
        )
        tau_c = self.declare_symbol(
            ev,
            "tau_c",
            self.name,
            kind=SymKind.param,
            val=tau_c,
            validator=lambda tau_c: tau_c >= 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have tau_c>=0",
        )
        w_brk = self.declare_symbol(
            ev,
            "w_brk",
            self.name,
            kind=SymKind.param,
            val=w_brk,
            validator=lambda w_brk: w_brk > 0.0,
            invalid_msg=f"Component {self.__class__.__name__} {self.name} must have w_brk>0",
        )
        self.w_rel = self.declare_symbol(ev, "w_rel", self.name, kind=SymKind.var)

        w_st = w_brk.s * sp.sqrt(2)
        w_coul = w_brk.s / 10
        if formulation == "smooth":
            coulomb = tau_c.s * sp.tanh(self.w_rel.s / w_coul)
        else:
            x = self.w_rel.s / w_coul
            coulomb = tau_c.s * sp.Piecewise((-1, x < -1), (x, x <= 1), (1, True))

        if tau_brk is None:
            stribeck = 0
        else:
            tau_brk = self.declare_symbol(
                ev,
                "tau_brk",
                self.name,
                kind=SymKind.param,
                val=tau_brk,
                validator=lambda tau_brk: tau_brk >= 0.0,
                invalid_msg=f"Component {self.__class__.__name__} {self.name} must have tau_brk>=0",
            )
            stribeck = (
                sp.sqrt(2 * ev.e.s)
                * (tau_brk.s - tau_c.s)
                * sp.exp(-((self.w_rel.s / w_st) ** 2))
                * self.w_rel.s
                / w_st
            )

        self.add_eqs(
            [
                sp.Eq(self.w_rel.s, _der(self.phi_b) - _der(self.phi_a)),
                sp.Eq(self.tau_b.s, stribeck + coulomb + f.s * self.w_rel.s),
            ]
        )


class Fixed(RotationalOnePort):
    """
    Rigid(non-moving) reference in mechanical rotational domain.

    Args:
        phi0 (number):
            angle of the flange.
    """

    def __init__(self, ev, name=None, phi0=0.0):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        phi0 = self.declare_parameter(ev, "phi0", phi0)
        self.add_eqs([sp.Eq(self.phi.s, phi0.s)])


class PartialTorque(_SupportMixin, RotationalOnePort):
    """Partial component class for a torque source. The torque is applied
    to the flange, with the reaction on the support."""

    def __init__(self, ev, name, use_support=False):
        super().__init__(ev, name)
        _, self.tau_s = self._declare_support(ev, use_support)

    def _add_source_eqs(self, tau):
        self.add_eqs([sp.Eq(self.tau.s, -tau)])
        if self.tau_s is not None:
            self.add_eqs([sp.Eq(self.tau_s.s, tau)])


class Torque(PartialTorque):
    """
    Ideal torque source in rotational domain. The torque is read from the
    input 'tau'.

    Args:
        use_support (bool):
            When true, declares a 'support' flange.
    """

    def __init__(self, ev, name=None, use_support=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, use_support=use_support)
        self.tau_in = self.declare_symbol(ev, "tau", self.name, kind=SymKind.inp)
        self._add_source_eqs(self.tau_in.s)


class ConstantTorque(PartialTorque):
    """
    Constant torque source in rotational domain.

    Args:
        tau_constant (number):
            The applied torque.
        use_support (bool):
            When true, declares a 'support' flange.
    """

    def __init__(self, ev, name=None, tau_constant=1.0, use_support=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, use_support=use_support)
        self.tau_constant = self.declare_parameter(ev, "tau_constant", tau_constant)
        self._add_source_eqs(self.tau_constant.s)


class Speed(_SupportMixin, RotationalOnePort):
    """
    Ideal speed source in rotational domain. The relative speed of the flange
    w.r.t. the support follows the input 'w_ref':
        Derivative(phi_flange(t) - phi_support(t)) = w_ref(t)

    Args:
        use_support (bool):
            When true, declares a 'support' flange.
    """

    def __init__(self, ev, name=None, use_support=False):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        phi_s, tau_s = self._declare_support(ev, use_support)
        self.w_ref = self.declare_symbol(ev, "w_ref", self.name, kind=SymKind.inp)
        t = ev.t
        self.add_eqs([sp.Eq(sp.diff(self.phi.s - phi_s, t), self.w_ref.s)])
        if tau_s is not None:
            self.add_eqs([sp.Eq(tau_s.s, -self.tau.s)])


class AngleSensor(RotationalOnePort):
    """Ideal absolute angle sensor in rotational domain."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.phi_out = self.declare_symbol(ev, "phi", self.name, kind=SymKind.outp)
        self.declare_equation(sp.Eq(self.phi_out.s, self.phi.s), kind=EqnKind.outp)
        self.add_eqs([sp.Eq(self.tau.s, 0)])


class SpeedSensor(RotationalOnePort):
    """Ideal absolute speed sensor in rotational domain."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.w = self.declare_symbol(ev, "w", self.name, kind=SymKind.outp)
        self.declare_equation(sp.Eq(self.w.s, _der(self.phi)), kind=EqnKind.outp)
        self.add_eqs([sp.Eq(self.tau.s, 0)])


class RelSpeedSensor(RotationalTwoPort):
    """Ideal sensor of the speed of flange_b relative to flange_a."""

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name, include_torque_equality=False)
        self.w_rel = self.declare_symbol(ev, "w_rel", self.name, kind=SymKind.outp)
        self.declare_equation(
            sp.Eq(self.w_rel.s, _der(self.phi_b) - _der(self.phi_a)),
            kind=EqnKind.outp,
        )
        self.add_eqs([sp.Eq(self.tau_a.s, 0), sp.Eq(self.tau_b.s, 0)])


class TorqueSensor(RotationalTwoPort):
    """
    Ideal torque sensor in rotational domain.
    Measures the torque transmitted from flange_a to flange_b.
    """

    def __init__(self, ev, name=None):
        self.name = self.__class__.__name__ if name is None else name
        super().__init__(ev, self.name)
        self.tau_out = self.declare_symbol(ev, "tau", self.name, kind=SymKind.outp)
        self.declare_equation(sp.Eq(self.tau_out.s, self.tau_a.s), kind=EqnKind.outp)
        self.add_eqs([sp.Eq(self.phi_a.s, self.phi_b.s)])
