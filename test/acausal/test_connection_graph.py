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
    ConnectionGraph,
    EqnEnv,
    ModelDefinitionError,
    MultipleConnectionError,
)
from acausal import rotational as rot
from acausal.component_library import (
    ComponentBase,
    Domain,
    EqnKind,
    PortBase,
    SymKind,
)


class Slider(ComponentBase):
    # a one-flange component of the translational domain
    connectors = ("flange",)

    def __init__(self, ev, name="slider"):
        super().__init__()
        self.name = name
        x = self.declare_symbol(ev, "x", name + "_flange", kind=SymKind.pot)
        f = self.declare_symbol(ev, "f", name + "_flange", kind=SymKind.flow)
        self.ports["flange"] = PortBase("flange", Domain.translational, pot=x, flow=f)
        self.add_eqs([sp.Eq(f.s, 0)])


def test_records_and_classes():
    ev = EqnEnv()
    fixed = rot.Fixed(ev, name="fixed")
    spring = rot.Spring(ev, name="spring")
    inertia = rot.Inertia(ev, name="inertia")

    cg = ConnectionGraph()
    for cmp in [fixed, spring, inertia]:
        for port_name in cmp.ports:
            cg.add_connector(cmp, port_name)
    assert len(cg) == 5
    # registering again is a no-op
    assert cg.add_connector(spring, "flange_b") == cg.index_of(spring, "flange_b")
    assert len(cg) == 5

    cg.connect([fixed.port("flange"), spring.port("flange_a")])
    cg.connect([spring.port("flange_b"), inertia.port("flange_a")])

    classes = cg.classes()
    assert [[(r.cmp_name, r.port_name) for r in c] for c in classes] == [
        [("fixed", "flange"), ("spring", "flange_a")],
        [("spring", "flange_b"), ("inertia", "flange_a")],
        [("inertia", "flange_b")],
    ]
    assert cg.find(cg.index_of(fixed, "flange")) == cg.find(
        cg.index_of(spring, "flange_a")
    )
    assert cg.find(cg.index_of(fixed, "flange")) != cg.find(
        cg.index_of(inertia, "flange_a")
    )


def test_equations_per_class():
    ev = EqnEnv()
    inertias = [rot.Inertia(ev, name=f"inertia{i}") for i in range(3)]
    cg = ConnectionGraph()
    cg.connect([c.port("flange_a") for c in inertias])
    cg.add_connector(inertias[0], "flange_b")

    eqs = cg.equations()
    pot_eqs = [eq for eq in eqs if eq.kind == EqnKind.pot]
    flow_eqs = [eq for eq in eqs if eq.kind == EqnKind.flow]

    # |class|-1 potential equalities, one flow balance per class
    assert len(pot_eqs) == 2
    assert len(flow_eqs) == 2
    rep = inertias[0].phi_a.s
    for eq, cmp in zip(pot_eqs, inertias[1:]):
        assert eq.expr == rep - cmp.phi_a.s
        assert eq.node_id == 0

    balance = sum(c.tau_a.s for c in inertias)
    assert sp.simplify(flow_eqs[0].expr + balance) == 0
    # an unconnected connector carries no flow
    assert flow_eqs[1].expr == -inertias[0].tau_b.s
    assert flow_eqs[1].node_id == 1


def test_merges_are_transitive():
    ev = EqnEnv()
    a, b, c, d = [rot.Inertia(ev, name=n) for n in "abcd"]
    cg = ConnectionGraph()
    cg.connect([a.port("flange_b"), b.port("flange_a")])
    cg.connect([c.port("flange_b"), d.port("flange_a")])
    cg.connect([b.port("flange_a"), c.port("flange_b")])
    members = cg.class_of(d, "flange_a")
    assert {(r.cmp_name, r.port_name) for r in members} == {
        ("a", "flange_b"),
        ("b", "flange_a"),
        ("c", "flange_b"),
        ("d", "flange_a"),
    }
    eqs = cg.equations()
    assert len([eq for eq in eqs if eq.kind == EqnKind.pot]) == 3


def test_single_connector_rejected():
    ev = EqnEnv()
    inertia = rot.Inertia(ev, name="inertia")
    cg = ConnectionGraph()
    with pytest.raises(ModelDefinitionError):
        cg.connect([inertia.port("flange_a"), inertia.port("flange_a")])
    with pytest.raises(ModelDefinitionError, match="no port"):
        cg.connect([inertia.port("flange_a"), (inertia, "support")])


def test_duplicate_component_names():
    ev = EqnEnv()
    first = rot.Inertia(ev, name="inertia")
    second = rot.Damper(ev, name="inertia")
    cg = ConnectionGraph()
    cg.add_connector(first, "flange_a")
    with pytest.raises(ModelDefinitionError, match="share the name"):
        cg.add_connector(second, "flange_b")


def test_domain_mismatch():
    ev = EqnEnv()
    inertia = rot.Inertia(ev, name="inertia")
    slider = Slider(ev)
    slider.validate(ev)
    cg = ConnectionGraph()
    with pytest.raises(MultipleConnectionError, match="mismatched domains") as exc:
        cg.connect([inertia.port("flange_a"), slider.port("flange")])
    assert exc.value.include_port_domain


@pytest.mark.parametrize("direct", [True, False])
def test_gear_flanges_must_stay_apart(direct):
    ev = EqnEnv()
    gear = rot.IdealGear(ev, name="gear", ratio=2.0)
    inertia = rot.Inertia(ev, name="inertia")
    cg = ConnectionGraph()
    if direct:
        with pytest.raises(MultipleConnectionError, match="same connection"):
            cg.connect([gear.port("flange_a"), gear.port("flange_b")])
    else:
        cg.connect([gear.port("flange_a"), inertia.port("flange_a")])
        with pytest.raises(MultipleConnectionError, match="same connection"):
            cg.connect([inertia.port("flange_a"), gear.port("flange_b")])
