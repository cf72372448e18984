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

from .version import __version__
from .component_library import rotational
from .component_library.base import EqnEnv
from .component_library.registry import ComponentLibrary, default_library
from .acausal_diagram import AcausalDiagram
from .acausal_compiler import AcausalCompiler
from .connection_graph import ConnectionGraph
from .diagram_processing import DiagramProcessing
from .index_reduction import IndexReduction
from .initialization import Initialization
from .solver_interface import SolverProblem, make_problem
from .types import (
    EquationSystem,
    InitialConditions,
    InitializationOptions,
    ReducedSystem,
    SimplificationOptions,
)
from .error import (
    AcausalError,
    InconsistentInitializationError,
    ModelDefinitionError,
    MultipleConnectionError,
    StructuralReductionError,
)

__all__ = [
    "__version__",
    "rotational",
    "EqnEnv",
    "ComponentLibrary",
    "default_library",
    "AcausalDiagram",
    "AcausalCompiler",
    "ConnectionGraph",
    "DiagramProcessing",
    "IndexReduction",
    "Initialization",
    "SolverProblem",
    "make_problem",
    "EquationSystem",
    "InitialConditions",
    "InitializationOptions",
    "ReducedSystem",
    "SimplificationOptions",
    "AcausalError",
    "InconsistentInitializationError",
    "ModelDefinitionError",
    "MultipleConnectionError",
    "StructuralReductionError",
]
