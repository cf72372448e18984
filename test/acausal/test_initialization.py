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

from acausal import (
    AcausalCompiler,
    AcausalDiagram,
    EqnEnv,
    InconsistentInitializationError,
    Initialization,
    InitializationOptions,
    ModelDefinitionError,
)
from acausal import rotational as rot


def oscillator(ev, phi=0.5, phi_fixed=True, w=0.0):
    fixed = rot.Fixed(ev, name="fixed")
    spring = rot.Spring(ev, name="spring", c=4.0)
    inertia = rot.Inertia(ev, name="inertia", J=2.0, phi=phi, phi_fixed=phi_fixed, w=w)
    ad = AcausalDiagram()
    ad.connect(fixed.port("flange"), spring.port("flange_a"))
    ad.connect(spring.port("flange_b"), inertia.port("flange_a"))
    return ad, fixed, spring, inertia


def test_strong_and_weak_values():
    ev = EqnEnv()
    ad, fixed, spring, inertia = oscillator(ev, w=0.3)
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced)()

    assert reduced.states == [inertia.phi.s, inertia.w.s]
    np.testing.assert_allclose(ic.x0, [0.5, 0.3], atol=1e-10)
    assert ic.y0.shape == (0,)
    assert ic.values[inertia.phi.s] == pytest.approx(0.5)
    # observed variables are evaluated too
    assert ic.values[spring.tau_b.s] == pytest.approx(2.0)
    assert ic.values[fixed.phi.s] == pytest.approx(0.0)


def test_caller_values_override_component_values():
    ev = EqnEnv()
    ad, fixed, spring, inertia = oscillator(ev)
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced)(initial_values={inertia.phi: 0.25})
    assert ic.values[inertia.phi.s] == pytest.approx(0.25)


def test_value_of_an_observed_variable():
    ev = EqnEnv()
    ad, fixed, spring, inertia = oscillator(ev, phi=None, phi_fixed=False)
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced)(initial_values={spring.tau_b: 1.0})
    # tau_b = c*phi
    assert ic.values[inertia.phi.s] == pytest.approx(0.25)
    assert ic.values[inertia.w.s] == pytest.approx(0.0)


def test_unset_states_default_to_zero():
    ev = EqnEnv()
    ad, fixed, spring, inertia = oscillator(ev, phi=None, phi_fixed=False, w=None)
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced)()
    np.testing.assert_allclose(ic.x0, [0.0, 0.0], atol=1e-12)


def test_value_conflicting_with_a_constant():
    ev = EqnEnv()
    ad, fixed, spring, inertia = oscillator(ev)
    reduced = AcausalCompiler(ev, ad)()
    with pytest.raises(InconsistentInitializationError, match="conflicts"):
        Initialization(reduced)(initial_values={fixed.phi: 1.0})


def test_value_for_a_foreign_variable():
    ev = EqnEnv()
    ad, *_ = oscillator(ev)
    reduced = AcausalCompiler(ev, ad)()
    other = rot.Inertia(EqnEnv(), name="other")
    with pytest.raises(InconsistentInitializationError, match="not a variable"):
        Initialization(reduced)(initial_values={other.phi: 1.0})


def test_contradictory_strong_values_through_gear():
    ev = EqnEnv()
    inertia1 = rot.Inertia(ev, name="inertia1", phi=1.0, phi_fixed=True)
    gear = rot.IdealGear(ev, name="gear", ratio=2.0)
    inertia2 = rot.Inertia(ev, name="inertia2", phi=1.0, phi_fixed=True)
    ad = AcausalDiagram()
    ad.connect(inertia1.port("flange_b"), gear.port("flange_a"))
    ad.connect(gear.port("flange_b"), inertia2.port("flange_a"))
    reduced = AcausalCompiler(ev, ad)()
    with pytest.raises(InconsistentInitializationError, match="contradictory"):
        Initialization(reduced)()


def test_consistent_strong_values_through_gear():
    ev = EqnEnv()
    inertia1 = rot.Inertia(ev, name="inertia1", phi=1.0, phi_fixed=True)
    gear = rot.IdealGear(ev, name="gear", ratio=2.0)
    inertia2 = rot.Inertia(ev, name="inertia2", phi=0.5, phi_fixed=True, w=0.2)
    ad = AcausalDiagram()
    ad.connect(inertia1.port("flange_b"), gear.port("flange_a"))
    ad.connect(gear.port("flange_b"), inertia2.port("flange_a"))
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced, InitializationOptions(tol=1e-10))()
    assert ic.values[inertia1.phi.s] == pytest.approx(1.0)
    assert ic.values[inertia2.w.s] == pytest.approx(0.2)
    assert ic.values[inertia1.w.s] == pytest.approx(0.4)


def speed_driven_damper(ev):
    speed = rot.Speed(ev, name="speed")
    damper = rot.Damper(ev, name="damper", d=3.0)
    fixed = rot.Fixed(ev, name="fixed")
    ad = AcausalDiagram()
    ad.connect(speed.port("flange"), damper.port("flange_a"))
    ad.connect(damper.port("flange_b"), fixed.port("flange"))
    return ad, speed, damper, fixed


def test_inputs_are_evaluated_at_t0():
    ev = EqnEnv()
    ad, speed, damper, fixed = speed_driven_damper(ev)
    reduced = AcausalCompiler(ev, ad)()
    ic = Initialization(reduced)(t0=2.0, inputs={speed.w_ref: lambda t: 0.5 * t})
    assert ic.values[damper.tau_b.s] == pytest.approx(-3.0)


def test_missing_input():
    ev = EqnEnv()
    ad, *_ = speed_driven_damper(ev)
    reduced = AcausalCompiler(ev, ad)()
    with pytest.raises(ModelDefinitionError, match="No value provided"):
        Initialization(reduced)()
