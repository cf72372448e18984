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

from typing import TYPE_CHECKING

from ..lazy_loader import LazyLoader

if TYPE_CHECKING:
    import networkx as nx
    from networkx.algorithms import bipartite
    import sympy as sp
    import sympy.core.function as scf
else:
    nx = LazyLoader("nx", globals(), "networkx")
    bipartite = LazyLoader("bipartite", globals(), "networkx.algorithms.bipartite")
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")


def incidence_graph(exprs, unknowns):
    """Bipartite graph with equation nodes 0..N-1 (bipartite=0) and a node per
    unknown (bipartite=1). An edge means the unknown, or a time derivative of
    it, appears in the equation."""
    G = nx.Graph()
    G.add_nodes_from(range(len(exprs)), bipartite=0)
    G.add_nodes_from(unknowns, bipartite=1)
    unknowns_set = set(unknowns)
    for idx, expr in enumerate(exprs):
        for var in sorted(expr.atoms(scf.AppliedUndef), key=str):
            if var in unknowns_set:
                G.add_edge(idx, var)
    return G


def maximum_matching(G, eq_nodes):
    """Hopcroft-Karp maximum matching. Returns dict{eq_node: var_node}."""
    _mm = bipartite.matching.maximum_matching(G, top_nodes=eq_nodes)
    eq_set = set(eq_nodes)
    return {k: v for k, v in _mm.items() if k in eq_set}


def delete_var_nodes_with_zero_A(G, A, X):
    V_nodes_with_zero_A = [x for i, x in enumerate(X) if A[i] is not None]
    for node in V_nodes_with_zero_A:
        if node in G:
            G.remove_node(node)


def augmentpath(G, i, pathfound, assign, v_mapping):
    """
    Algorithm 3.2 of
    Pantelides, C.C., 1988. The consistent initialization of differential-algebraic
    systems. SIAM Journal on scientific and statistical computing, 9(2), pp.213-231.
    """
    e_node = i
    # (1)
    nx.set_node_attributes(G, {e_node: {"color": "red"}})
    # (2)
    neighbors = list(G.neighbors(e_node))
    for v_node in neighbors:
        j = v_mapping[v_node]
        if assign[j] is None:
            pathfound = True
            assign[j] = i
            return pathfound, assign
    # (3)
    for v_node in neighbors:
        j = v_mapping[v_node]
        if G.nodes[v_node]["color"] == "white":
            nx.set_node_attributes(G, {v_node: {"color": "red"}})
            k = assign[j]
            pathfound, assign = augmentpath(G, k, pathfound, assign, v_mapping)
            if pathfound:
                assign[j] = i
                return pathfound, assign
    return pathfound, assign


def sort_block_by_number_of_eq_derivatives(eq_diff_graph, eq_block):
    G = eq_diff_graph

    num_parents = []
    for eq_idx in eq_block:
        depth = 0
        current_node = eq_idx
        while G.in_degree(current_node) > 0:  # While the current node has a parent
            # each equation has at most one parent
            current_node = list(G.predecessors(current_node))[0]
            depth += 1
        num_parents.append(depth)

    sorted_eqs = [
        eq_idx for _, eq_idx in sorted(zip(num_parents, eq_block), reverse=True)
    ]

    return sorted(num_parents, reverse=True), sorted_eqs


def blt_sort(D):
    """
    Block lower triangular ordering of a dependency digraph.

    An edge u -> v means u must be solved before v. Returns the strongly connected
    components in topological order, each as a sorted list. Ties are broken by
    the smallest node of each component so the ordering is deterministic.
    """
    sccs = [sorted(scc) for scc in nx.strongly_connected_components(D)]
    C = nx.condensation(D, scc=[set(scc) for scc in sccs])
    order = nx.lexicographical_topological_sort(
        C, key=lambda n: min(C.nodes[n]["members"])
    )
    return [sorted(C.nodes[n]["members"]) for n in order]
