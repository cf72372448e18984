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

from .acausal_diagram import AcausalDiagram
from .component_library.base import EqnEnv
from .component_library.registry import ComponentLibrary
from .diagram_processing import DiagramProcessing
from .index_reduction.index_reduction import IndexReduction
from .solver_interface import SolverProblem, make_problem
from .types import (
    EquationSystem,
    InitializationOptions,
    ReducedSystem,
    SimplificationOptions,
)


class AcausalCompiler:
    """
    This class orchestrates the compilation of Acausal models.

    There are 2 primary stages:
        1] diagram_processing. AcausalDiagram -> EquationSystem (DAEs)
        2] simplify. EquationSystem -> ReducedSystem (semi-explicit index-1 DAEs)

    make_problem() then bundles the ReducedSystem for a numerical solver.
    """

    def __init__(
        self,
        eqn_env: EqnEnv,
        diagram: AcausalDiagram,
        library: ComponentLibrary = None,
        options: SimplificationOptions = None,
    ):
        self.options = SimplificationOptions() if options is None else options
        self.dp = DiagramProcessing(
            eqn_env,
            diagram,
            library=library,
            verbose=self.options.verbose,
        )
        self.system: EquationSystem = None
        self.reduced: ReducedSystem = None

    def diagram_processing(self) -> EquationSystem:
        self.system = self.dp()
        return self.system

    def simplify(self) -> ReducedSystem:
        if self.system is None:
            self.diagram_processing()
        self.ir = IndexReduction(self.system, self.options)
        self.reduced = self.ir()
        return self.reduced

    def make_problem(
        self,
        t_span,
        initial_values=None,
        inputs=None,
        options: InitializationOptions = None,
    ) -> SolverProblem:
        if self.reduced is None:
            self.simplify()
        return make_problem(
            self.reduced,
            t_span,
            initial_values=initial_values,
            inputs=inputs,
            options=options,
        )

    # execute compilation
    def __call__(self) -> ReducedSystem:
        self.diagram_processing()
        return self.simplify()
