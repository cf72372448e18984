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
Connection classes of an acausal diagram.

Every connector (component port) gets a record in a flat list. Connect groups
merge records with an index-based union-find, so components and ports never
hold references to the class they end up in.
"""

from typing import TYPE_CHECKING, Dict, List, NamedTuple, Tuple

from .component_library.base import Domain, EqnKind, Eqn, Sym
from .error import ModelDefinitionError, MultipleConnectionError
from .lazy_loader import LazyLoader
from .logging import logger

if TYPE_CHECKING:
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")


class ConnectorRecord(NamedTuple):
    index: int
    cmp_name: str
    port_name: str
    domain: Domain
    pot: Sym
    flow: Sym
    flow_sign: int


class ConnectionGraph:
    """Union-find over connector records.

    Attributes:
        records (list[ConnectorRecord]):
            One record per registered connector, indexed by ConnectorRecord.index.
    """

    def __init__(self):
        self.records: List[ConnectorRecord] = []
        self._parent: List[int] = []
        self._size: List[int] = []
        self._index: Dict[Tuple[str, str], int] = {}
        self._cmps: Dict[str, object] = {}

    def __len__(self):
        return len(self.records)

    def add_connector(self, cmp, port_name: str) -> int:
        """Register the connector (cmp, port_name). Returns its record index.
        Registering the same connector again returns the existing index."""
        key = (cmp.name, port_name)
        if key in self._index:
            return self._index[key]
        if port_name not in cmp.ports:
            raise ModelDefinitionError(
                f"Component {cmp.name} has no port {port_name}.",
                components=[cmp],
            )
        registered = self._cmps.get(cmp.name)
        if registered is not None and registered is not cmp:
            raise ModelDefinitionError(
                f"Two components share the name {cmp.name}.",
                components=[registered, cmp],
            )
        self._cmps[cmp.name] = cmp

        port = cmp.ports[port_name]
        idx = len(self.records)
        self.records.append(
            ConnectorRecord(
                index=idx,
                cmp_name=cmp.name,
                port_name=port_name,
                domain=port.domain,
                pot=port.pot,
                flow=port.flow,
                flow_sign=port.flow_sign,
            )
        )
        self._parent.append(idx)
        self._size.append(1)
        self._index[key] = idx
        return idx

    def index_of(self, cmp, port_name: str) -> int:
        return self._index[(cmp.name, port_name)]

    def find(self, i: int) -> int:
        while self._parent[i] != i:
            # path halving
            self._parent[i] = self._parent[self._parent[i]]
            i = self._parent[i]
        return i

    def union(self, i: int, j: int) -> int:
        ri, rj = self.find(i), self.find(j)
        if ri == rj:
            return ri
        if self._size[ri] < self._size[rj]:
            ri, rj = rj, ri
        self._parent[rj] = ri
        self._size[ri] += self._size[rj]
        return ri

    def _members(self, roots) -> List[int]:
        return [r.index for r in self.records if self.find(r.index) in roots]

    def _terminals(self, indices):
        return [
            (self._cmps[self.records[i].cmp_name], self.records[i].port_name)
            for i in indices
        ]

    def connect(self, group):
        """Merge every connector of the group into one connection class.

        Args:
            group: iterable of (component, port_name) terminals.

        Raises:
            ModelDefinitionError: fewer than two distinct connectors, or an
            unknown port.
            MultipleConnectionError: the merge joins classes of different
            domains, or two connectors a component requires to stay apart.
        """
        group = list(group)
        indices = []
        for cmp, port_name in group:
            idx = self.add_connector(cmp, port_name)
            if idx not in indices:
                indices.append(idx)
        if len(indices) < 2:
            raise ModelDefinitionError(
                "A connection needs at least two distinct connectors.",
                ports=group,
            )

        roots = {self.find(i) for i in indices}
        members = self._members(roots)

        domains = {self.records[i].domain for i in members}
        if len(domains) > 1:
            raise MultipleConnectionError(
                "These connected component ports have mismatched domains.",
                ports=self._terminals(members),
                include_port_domain=True,
            )

        member_keys = {
            (self.records[i].cmp_name, self.records[i].port_name) for i in members
        }
        for cmp_name in sorted({self.records[i].cmp_name for i in members}):
            cmp = self._cmps[cmp_name]
            for p, q in cmp.exclusive_connectors:
                if (cmp_name, p) in member_keys and (cmp_name, q) in member_keys:
                    raise MultipleConnectionError(
                        f"Component {cmp_name} ports {p} and {q} cannot be "
                        "in the same connection.",
                        ports=self._terminals(members),
                    )

        first = indices[0]
        for i in indices[1:]:
            self.union(first, i)
        logger.debug(
            "ConnectionGraph merged %s into a class of %d connectors.",
            [f"{c.name}:{p}" for c, p in group],
            len(members),
        )

    def classes(self) -> List[List[ConnectorRecord]]:
        """The connection classes, ordered by their smallest record index.
        Members are ordered by record index. Unconnected connectors are
        singleton classes."""
        by_root: Dict[int, List[ConnectorRecord]] = {}
        for rec in self.records:
            by_root.setdefault(self.find(rec.index), []).append(rec)
        return sorted(by_root.values(), key=lambda members: members[0].index)

    def class_of(self, cmp, port_name: str) -> List[ConnectorRecord]:
        root = self.find(self.index_of(cmp, port_name))
        return [rec for rec in self.records if self.find(rec.index) == root]

    def equations(self) -> List[Eqn]:
        """For each class, |class|-1 potential equalities against the first
        member, then the flow balance sum(sign_i * flow_i) = 0."""
        eqs = []
        for node_id, members in enumerate(self.classes()):
            rep = members[0]
            for rec in members[1:]:
                eqs.append(
                    Eqn(
                        e=sp.Eq(rep.pot.s, rec.pot.s),
                        kind=EqnKind.pot,
                        node_id=node_id,
                    )
                )
            sum_expr = sp.Add(*[rec.flow_sign * rec.flow.s for rec in members])
            eqs.append(Eqn(e=sp.Eq(0, sum_expr), kind=EqnKind.flow, node_id=node_id))
        return eqs
