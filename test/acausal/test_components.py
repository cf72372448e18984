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

import pytest
import sympy as sp

from acausal import (
    AcausalDiagram,
    ComponentLibrary,
    EqnEnv,
    ModelDefinitionError,
    default_library,
)
from acausal import rotational as rot
from acausal.component_library import ComponentBase, Orientation, SymKind


class OneFlangeOfTwo(ComponentBase):
    # declares only one of the two connectors of its template
    connectors = ("flange_a", "flange_b")

    def __init__(self, ev, name="one_flange"):
        super().__init__()
        self.name = name
        _, tau = self.declare_rotational_port(ev, "flange_a")
        self.add_eqs([sp.Eq(tau.s, 0)])


class UsesUndeclared(ComponentBase):
    connectors = ("flange",)

    def __init__(self, ev, name="undeclared"):
        super().__init__()
        self.name = name
        phi, _ = self.declare_rotational_port(ev, "flange")
        stray = sp.Function("stray", real=True)(ev.t)
        self.add_eqs([sp.Eq(phi.s, stray)])


class NoEquations(ComponentBase):
    connectors = ("flange",)

    def __init__(self, ev, name="no_eqs"):
        super().__init__()
        self.name = name
        self.declare_rotational_port(ev, "flange")


class NoConnectors(ComponentBase):
    pass


def test_default_library_holds_rotational_templates():
    library = default_library()
    for name in [
        "Inertia",
        "Spring",
        "Damper",
        "SpringDamper",
        "IdealGear",
        "Friction",
        "Fixed",
        "Torque",
        "ConstantTorque",
        "Speed",
        "AngleSensor",
        "SpeedSensor",
        "RelSpeedSensor",
        "TorqueSensor",
    ]:
        assert name in library
    assert rot.Inertia in library
    assert len(library) == 14
    assert library.names == sorted(library.names)

    # every call returns an independent catalog
    other = default_library()
    other.register(OneFlangeOfTwo)
    assert "OneFlangeOfTwo" in other
    assert "OneFlangeOfTwo" not in library


def test_create_builds_and_validates():
    ev = EqnEnv()
    library = default_library()
    spring = library.create("Spring", ev, name="spring", c=3.0)
    assert isinstance(spring, rot.Spring)
    assert spring.name == "spring"
    assert set(spring.ports) == {"flange_a", "flange_b"}
    assert spring.ports["flange_b"].orientation == Orientation.b
    assert spring.ports["flange_a"].flow_sign == 1
    assert spring.ports["flange_b"].flow_sign == 1
    assert spring.port("flange_a") == (spring, "flange_a")


def test_arity_mismatch():
    ev = EqnEnv()
    library = ComponentLibrary([OneFlangeOfTwo])
    with pytest.raises(ModelDefinitionError, match="arity"):
        library.create("OneFlangeOfTwo", ev)


def test_undeclared_variable():
    ev = EqnEnv()
    library = ComponentLibrary([UsesUndeclared])
    with pytest.raises(ModelDefinitionError, match="undeclared") as exc:
        library.create("UsesUndeclared", ev)
    assert [str(v) for v in exc.value.variables] == ["stray(t)"]


@pytest.mark.parametrize(
    "name,params",
    [
        ("Inertia", {"J": 0.0}),
        ("Spring", {"c": -1.0}),
        ("Damper", {"d": 0.0}),
        ("SpringDamper", {"d": -1.0}),
        ("IdealGear", {"ratio": 0.0}),
        ("Friction", {"w_brk": 0.0}),
    ],
)
def test_invalid_parameter(name, params):
    ev = EqnEnv()
    with pytest.raises(ModelDefinitionError, match="must have"):
        default_library().create(name, ev, **params)


def test_no_equations():
    ev = EqnEnv()
    library = ComponentLibrary([NoEquations])
    with pytest.raises(ModelDefinitionError, match="no equations"):
        library.create("NoEquations", ev)


def test_register_errors():
    library = ComponentLibrary()
    with pytest.raises(ModelDefinitionError):
        library.register(object)
    with pytest.raises(ModelDefinitionError, match="no connectors"):
        library.register(NoConnectors)
    library.register(rot.Spring)
    with pytest.raises(ModelDefinitionError, match="already registered"):
        library.register(rot.Spring)
    library.register(rot.Spring, name="Spring2")
    assert library.names == ["Spring", "Spring2"]
    with pytest.raises(ModelDefinitionError, match="no template"):
        library.template("Damper")


def test_unregistered_template_rejected_by_diagram_processing():
    from acausal import AcausalCompiler

    ev = EqnEnv()
    fixed = rot.Fixed(ev, name="fixed")
    spring = rot.Spring(ev, name="spring")
    ad = AcausalDiagram()
    ad.connect(fixed.port("flange"), spring.port("flange_a"))
    library = ComponentLibrary([rot.Fixed])
    with pytest.raises(ModelDefinitionError, match="not registered"):
        AcausalCompiler(ev, ad, library=library).diagram_processing()


def test_duplicate_declarations():
    ev = EqnEnv()
    fixed = rot.Fixed(ev, name="fixed")
    with pytest.raises(ModelDefinitionError, match="already exists"):
        fixed.declare_symbol(ev, "phi0", "fixed", kind=SymKind.param, val=1.0)
    with pytest.raises(ModelDefinitionError, match="already exists"):
        fixed.declare_rotational_port(ev, "flange")
    with pytest.raises(ModelDefinitionError, match="already exists"):
        fixed.add_eqs([fixed.eqs[0].e])
    with pytest.raises(ModelDefinitionError):
        fixed.port("flange_b")


def test_friction_formulations():
    ev = EqnEnv()
    smooth = rot.Friction(ev, name="smooth", tau_brk=25.0)
    regularized = rot.Friction(ev, name="regularized", formulation="regularized")
    smooth.validate(ev)
    regularized.validate(ev)
    assert smooth.eqs[-1].e.has(sp.tanh)
    assert regularized.eqs[-1].e.has(sp.Piecewise)
    with pytest.raises(ModelDefinitionError, match="formulation"):
        rot.Friction(ev, name="bad", formulation="stick-slip")


def test_support_flange_is_optional():
    ev = EqnEnv()
    gear = rot.IdealGear(ev, name="gear", ratio=2.0, use_support=True)
    gear.validate(ev)
    assert set(gear.ports) == {"flange_a", "flange_b", "support"}
    torque = rot.ConstantTorque(ev, name="torque", tau_constant=1.0)
    torque.validate(ev)
    assert set(torque.ports) == {"flange"}
