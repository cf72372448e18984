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

from .index_reduction import IndexReduction
from .alias_elimination import AliasElimination, AliasResult

from .graph_utils import (
    augmentpath,
    blt_sort,
    delete_var_nodes_with_zero_A,
    incidence_graph,
    maximum_matching,
    sort_block_by_number_of_eq_derivatives,
)
from .equation_utils import (
    extract_vars,
    lower_derivative_order,
    process_equations,
)

__all__ = [
    "IndexReduction",
    "AliasElimination",
    "AliasResult",
    "augmentpath",
    "blt_sort",
    "delete_var_nodes_with_zero_A",
    "incidence_graph",
    "maximum_matching",
    "sort_block_by_number_of_eq_derivatives",
    "extract_vars",
    "lower_derivative_order",
    "process_equations",
]
