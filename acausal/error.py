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

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    import sympy as sp


class AcausalError(Exception):
    """Base class for all errors raised while building an acausal model.

    The optional context is appended to the message by __str__ so that the
    offending components, ports, equations or variables can be located without
    a debugger.

    Attributes:
        message (str):
            Human readable description of the failure.
        components (list[ComponentBase]):
            Components related to the failure.
        ports (list[tuple[ComponentBase, str]]):
            (component, port_name) pairs related to the failure.
        equations (list[sp.Expr]):
            Equations related to the failure, usually in 0 = expr form.
        variables (list[sp.Expr]):
            Variables related to the failure.
    """

    def __init__(
        self,
        message: str = None,
        components=None,  # : Optional[List[ComponentBase]] would be a circular import
        ports=None,  # : Optional[List[Tuple[ComponentBase, str]]]
        include_port_domain: bool = False,
        equations: Optional[List["sp.Expr"]] = None,
        variables: Optional[List["sp.Expr"]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.components = components
        self.ports = ports
        self.include_port_domain = include_port_domain
        self.equations = equations
        self.variables = variables

    def __str__(self):
        message = self.message or self.default_message
        return f"{message}{self._context_info()}"

    def _context_info(self) -> str:
        strbuf = []
        if self.components:
            components_str = "\n\t".join([c.name for c in self.components])
            strbuf.append(f"\nRelated components:\n\t{components_str}")
        if self.ports:
            portnames = []
            for c, port_name in self.ports:
                port_str = c.name + ":" + port_name
                if self.include_port_domain and port_name in c.ports:
                    port = c.ports[port_name]
                    port_str = port_str + f"[{port.domain}]"
                portnames.append(port_str)
            ports_str = "\n\t".join(portnames)
            strbuf.append(f"\nRelated ports:\n\t{ports_str}")
        if self.equations:
            eqs_str = "\n\t".join([f"0 = {e}" for e in self.equations])
            strbuf.append(f"\nRelated equations:\n\t{eqs_str}")
        if self.variables:
            vars_str = "\n\t".join([str(v) for v in self.variables])
            strbuf.append(f"\nRelated variables:\n\t{vars_str}")

        return "".join(strbuf)

    @property
    def default_message(self):
        return type(self).__name__


class ModelDefinitionError(AcausalError):
    """A component or a diagram is declared inconsistently.

    Raised at registration or diagram processing, e.g. a connector arity
    mismatch, a reference to an undeclared variable, an invalid parameter value
    or a malformed connect group.
    """


class MultipleConnectionError(AcausalError):
    """A connect group would merge incompatible connection classes."""


class StructuralReductionError(AcausalError):
    """The assembled system cannot be reduced to a solvable form.

    The equations and variables that could not be matched, or that caused the
    failure, are available in the `equations` and `variables` attributes.
    """


class InconsistentInitializationError(AcausalError):
    """No consistent initial condition satisfies the requested values."""
