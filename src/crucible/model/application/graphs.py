"""
Directed graph helpers used by the model builder and detectors.

Graphs are plain mappings of node -> successors. Iteration order follows
the mapping's insertion order so results are stable across runs.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence


def strongly_connected_components(graph: Mapping[str, Sequence[str]]) -> List[List[str]]:
    """
    Tarjan's algorithm (iterative).

    Args:
        graph: node -> successors; successors missing from the mapping are
            treated as sinks

    Returns:
        Components in discovery order, members in discovery order
    """
    index_of: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Dict[str, bool] = {}
    stack: List[str] = []
    components: List[List[str]] = []
    counter = 0

    nodes: List[str] = list(graph.keys())
    for successors in graph.values():
        for succ in successors:
            if succ not in graph and succ not in nodes:
                nodes.append(succ)

    for root in nodes:
        if root in index_of:
            continue
        work = [(root, iter(graph.get(root, ())))]
        index_of[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack[root] = True

        while work:
            node, successors = work[-1]
            advanced = False
            for succ in successors:
                if succ not in index_of:
                    index_of[succ] = lowlink[succ] = counter
                    counter += 1
                    stack.append(succ)
                    on_stack[succ] = True
                    work.append((succ, iter(graph.get(succ, ()))))
                    advanced = True
                    break
                if on_stack.get(succ):
                    lowlink[node] = min(lowlink[node], index_of[succ])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index_of[node]:
                component: List[str] = []
                while True:
                    member = stack.pop()
                    on_stack[member] = False
                    component.append(member)
                    if member == node:
                        break
                component.reverse()
                components.append(component)

    # Tarjan emits components in reverse topological order; report them
    # in the order their first member was discovered.
    components.sort(key=lambda comp: min(index_of[m] for m in comp))
    return components


def find_cycles(graph: Mapping[str, Sequence[str]], include_self_loops: bool = False) -> List[List[str]]:
    """Components that contain a cycle."""
    cycles = []
    for component in strongly_connected_components(graph):
        if len(component) > 1:
            cycles.append(component)
        elif include_self_loops and component[0] in graph.get(component[0], ()):
            cycles.append(component)
    return cycles


def dag_depths(graph: Mapping[str, Iterable[str]]) -> Optional[Dict[str, int]]:
    """
    Longest-path depth of every node in a DAG (sinks have depth 1).

    Only nodes present as keys count; edges to unknown nodes are ignored.

    Returns:
        node -> depth, or None when the graph has a cycle
    """
    edges = {node: [s for s in succs if s in graph] for node, succs in graph.items()}
    if find_cycles(edges, include_self_loops=True):
        return None

    depths: Dict[str, int] = {}

    def depth(node: str) -> int:
        if node not in depths:
            # Acyclic, so recursion depth is bounded by the longest chain
            depths[node] = 1 + max((depth(s) for s in edges[node]), default=0)
        return depths[node]

    for node in edges:
        depth(node)
    return depths
