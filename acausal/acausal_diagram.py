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

from .error import ModelDefinitionError


class AcausalDiagram:
    """
    collection of components and connections representing a network of acausal components.

    Each entry of 'connections' is a connect group: a tuple of two or more
    (component, port_name) terminals that are joined together.
    """

    def __init__(self, name=None, comp_list=None, cnctn_list=None):
        self.name = "acausal_diagram" if name is None else name
        self.comps = []
        self.connections = []
        for cmp in comp_list or []:
            self.add_component(cmp)
        for group in cnctn_list or []:
            self.connect(*group)

    def add_component(self, cmp):
        if not any(c is cmp for c in self.comps):
            self.comps.append(cmp)

    def connect(self, *terminals):
        """Join two or more (component, port_name) terminals.

        Accepts the terminals returned by component.port(name) as well as the
        pairwise form connect(cmp_a, port_a, cmp_b, port_b).
        """
        if terminals and not isinstance(terminals[0], tuple):
            if len(terminals) % 2:
                raise ModelDefinitionError(
                    f"AcausalDiagram {self.name} connect() expects (component, "
                    "port_name) terminals."
                )
            terminals = tuple(zip(terminals[0::2], terminals[1::2]))

        for terminal in terminals:
            if not (isinstance(terminal, tuple) and len(terminal) == 2):
                raise ModelDefinitionError(
                    f"AcausalDiagram {self.name} connect() invalid terminal {terminal!r}."
                )
        if len(terminals) < 2:
            raise ModelDefinitionError(
                f"AcausalDiagram {self.name} connect() needs at least two terminals.",
                ports=list(terminals),
            )

        for cmp, _ in terminals:
            self.add_component(cmp)
        self.connections.append(tuple(terminals))
