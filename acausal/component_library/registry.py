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
Caller-owned catalog of component templates.

A ComponentLibrary is passed to DiagramProcessing, which rejects any component
whose template was not registered in it. Each build gets its own catalog, there
is no process-wide registry.
"""

from typing import Dict, List, Type

from ..error import ModelDefinitionError
from ..logging import logger
from .base import EqnEnv
from .component_base import ComponentBase
from . import rotational


class ComponentLibrary:
    def __init__(self, templates=None):
        self._templates: Dict[str, Type[ComponentBase]] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: Type[ComponentBase], name: str = None):
        """Add a template to the catalog.

        Raises:
            ModelDefinitionError: the template is not a ComponentBase subclass,
            declares no connectors, or the name is already taken.
        """
        if not (isinstance(template, type) and issubclass(template, ComponentBase)):
            raise ModelDefinitionError(
                f"ComponentLibrary.register() {template!r} is not a component template."
            )
        name = template.__name__ if name is None else name
        if name in self._templates:
            raise ModelDefinitionError(
                f"ComponentLibrary.register() template {name} already registered."
            )
        if not template.connectors:
            raise ModelDefinitionError(
                f"ComponentLibrary.register() template {name} declares no connectors."
            )
        overlap = set(template.connectors) & set(template.optional_connectors)
        if overlap:
            raise ModelDefinitionError(
                f"ComponentLibrary.register() template {name} lists {sorted(overlap)} "
                "as both required and optional connectors."
            )
        self._templates[name] = template
        logger.debug("ComponentLibrary registered template %s.", name)
        return template

    def template(self, name: str) -> Type[ComponentBase]:
        if name not in self._templates:
            raise ModelDefinitionError(
                f"ComponentLibrary has no template named {name}. "
                f"Available: {self.names}"
            )
        return self._templates[name]

    def create(self, template_name: str, ev: EqnEnv, **params) -> ComponentBase:
        """Instantiate the template registered as template_name and validate it.

        params are passed to the template constructor, including the component
        name.
        """
        cmp = self.template(template_name)(ev, **params)
        cmp.validate(ev)
        return cmp

    def __contains__(self, item) -> bool:
        if isinstance(item, str):
            return item in self._templates
        if not isinstance(item, type):
            item = type(item)
        return item in self._templates.values()

    def __len__(self):
        return len(self._templates)

    @property
    def names(self) -> List[str]:
        return sorted(self._templates.keys())


ROTATIONAL_TEMPLATES = (
    rotational.Inertia,
    rotational.Spring,
    rotational.Damper,
    rotational.SpringDamper,
    rotational.IdealGear,
    rotational.Friction,
    rotational.Fixed,
    rotational.Torque,
    rotational.ConstantTorque,
    rotational.Speed,
    rotational.AngleSensor,
    rotational.SpeedSensor,
    rotational.RelSpeedSensor,
    rotational.TorqueSensor,
)


def default_library() -> ComponentLibrary:
    """Returns a new catalog holding the rotational templates."""
    return ComponentLibrary(ROTATIONAL_TEMPLATES)
