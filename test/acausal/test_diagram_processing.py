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
    DiagramProcessing,
    EqnEnv,
    ModelDefinitionError,
    MultipleConnectionError,
)
from acausal import rotational as rot
from acausal.component_library import SymKind


class FixedWithSpare(rot.Fixed):
    # declares a variable none of its equations use
    def __init__(self, ev, name=None, phi0=0.0):
        super().__init__(ev, name=name, phi0=phi0)
        self.spare = self.declare_symbol(ev, "spare", self.name, kind=SymKind.var)


def make_oscillator(ev, fixed_cls=rot.Fixed):
    fixed = fixed_cls(ev, name="fixed")
    spring = rot.Spring(ev, name="spring", c=4.0)
    inertia = rot.Inertia(ev, name="inertia", J=2.0, phi=0.5, phi_fixed=True, w=0.0)
    ad = AcausalDiagram()
    ad.connect(fixed.port("flange"), spring.port("flange_a"))
    ad.connect(spring.port("flange_b"), inertia.port("flange_a"))
    return ad, fixed, spring, inertia


def test_oscillator_equations():
    ev = EqnEnv()
    ad, fixed, spring, inertia = make_oscillator(ev)
    dp = DiagramProcessing(ev, ad)
    system = dp()

    # 2 potential equalities, 3 flow balances, 8 component equations
    assert len(system.eqs) == 13
    assert [eq.kind.name for eq in system.eqs[:5]] == ["pot"] * 2 + ["flow"] * 3
    assert len(system.unknowns) == 13
    assert len(set(system.unknowns)) == 13
    assert system.tags.count("differential") == 2
    assert system.inputs == []
    assert system.t is ev.t

    for param in [fixed.syms[-1], spring.syms[-1]]:
        assert param.s in system.knowns
    assert system.knowns[ev.pi.s] == pytest.approx(3.141592653589793)

    assert system.ics == {inertia.phi.s: 0.5}
    assert system.ics_weak == {inertia.w.s: 0.0}

    G = system.incidence
    eq_nodes = [n for n, d in G.nodes(data=True) if d["bipartite"] == 0]
    assert eq_nodes == list(range(13))
    assert set(G.neighbors(inertia.w.s)) == {
        idx for idx, expr in enumerate(system.exprs) if expr.has(inertia.w.s)
    }


def test_node_equations_precede_component_equations():
    ev = EqnEnv()
    ad, fixed, spring, inertia = make_oscillator(ev)
    system = DiagramProcessing(ev, ad)()
    assert system.exprs[0] == fixed.phi.s - spring.phi_a.s
    assert system.exprs[1] == spring.phi_b.s - inertia.phi_a.s
    component_exprs = [eq.expr for eq in fixed.eqs + spring.eqs + inertia.eqs]
    assert system.exprs[5:] == component_exprs


def test_dead_variable_dropped():
    ev = EqnEnv()
    ad, fixed, spring, inertia = make_oscillator(ev, fixed_cls=FixedWithSpare)
    library = ComponentLibrary([FixedWithSpare, rot.Spring, rot.Inertia])
    system = DiagramProcessing(ev, ad, library=library)()
    assert fixed.spare.s not in system.unknowns
    assert len(system.unknowns) == 13


def test_inputs_are_not_unknowns():
    ev = EqnEnv()
    torque = rot.Torque(ev, name="torque")
    inertia = rot.Inertia(ev, name="inertia")
    ad = AcausalDiagram()
    ad.connect(torque.port("flange"), inertia.port("flange_a"))
    system = DiagramProcessing(ev, ad)()
    assert system.inputs == [torque.tau_in.s]
    assert torque.tau_in.s not in system.unknowns
    assert torque.tau_in.s not in system.incidence


def test_duplicate_names_rejected():
    ev = EqnEnv()
    first = rot.Inertia(ev, name="inertia")
    second = rot.Damper(ev, name="inertia")
    ad = AcausalDiagram()
    ad.connect(first.port("flange_b"), second.port("flange_a"))
    with pytest.raises(ModelDefinitionError, match="share the name"):
        DiagramProcessing(ev, ad)()


def test_invalid_parameter_rejected():
    ev = EqnEnv()
    fixed = rot.Fixed(ev, name="fixed")
    damper = rot.Damper(ev, name="damper", d=-1.0)
    ad = AcausalDiagram()
    ad.connect(fixed.port("flange"), damper.port("flange_a"))
    with pytest.raises(ModelDefinitionError, match="must have d>0"):
        DiagramProcessing(ev, ad)()


def test_gear_short_circuit_rejected():
    ev = EqnEnv()
    gear = rot.IdealGear(ev, name="gear", ratio=3.0)
    inertia = rot.Inertia(ev, name="inertia")
    ad = AcausalDiagram()
    ad.connect(gear.port("flange_a"), inertia.port("flange_a"), gear.port("flange_b"))
    with pytest.raises(MultipleConnectionError):
        DiagramProcessing(ev, ad)()


def test_pairwise_connect_form():
    ev = EqnEnv()
    fixed = rot.Fixed(ev, name="fixed")
    damper = rot.Damper(ev, name="damper")
    ad = AcausalDiagram(comp_list=[fixed, damper])
    ad.connect(fixed, "flange", damper, "flange_a")
    assert ad.connections == [((fixed, "flange"), (damper, "flange_a"))]
    system = DiagramProcessing(ev, ad)()
    assert sp.Derivative(damper.phi_a.s, ev.t) in set().union(
        *[expr.atoms(sp.Derivative) for expr in system.exprs]
    )


def test_processing_twice_gives_the_same_system():
    ev = EqnEnv()
    ad, *_ = make_oscillator(ev)
    dp = DiagramProcessing(ev, ad)
    first = dp()
    second = dp()
    assert second.exprs == first.exprs
    assert second.unknowns == first.unknowns
    assert len(dp.connection_graph.classes()) == 3
