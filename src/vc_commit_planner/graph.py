"""
Dependency graph between commit groups.

An edge ``A -> B`` means that at least one file of group ``A`` declares a
dependency on a file owned by group ``B``, so ``B`` has to be committed
first. The graph is a plain adjacency map keyed by group id; every
traversal here uses an explicit stack so large plans never hit the
interpreter's recursion limit.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from vc_commit_planner.grouping.group_model import CommitGroup


Graph = Dict[str, List[str]]


def owners_by_path(groups: Sequence[CommitGroup]) -> Dict[str, List[str]]:
    """Map each path to the ids of every group that contains it, in plan order."""
    owners: Dict[str, List[str]] = {}
    for group in groups:
        for path in group.file_paths():
            ids = owners.setdefault(path, [])
            if group.id not in ids:
                ids.append(group.id)
    return owners


def build_group_graph(
    groups: Sequence[CommitGroup],
    extra_edges: Optional[Iterable[Tuple[str, str]]] = None,
) -> Graph:
    """Build the adjacency map of inter-group dependencies.

    Parameters
    ----------
    groups : Sequence[CommitGroup]
        Groups in plan order. Every group gets a key, even without edges.
    extra_edges : Iterable[Tuple[str, str]], optional
        Additional ``(dependent, dependency)`` pairs, e.g. from the path
        heuristic. Unknown ids and self loops are ignored.

    Returns
    -------
    Dict[str, List[str]]
        Neighbour lists without duplicates, in first-discovered order.
    """
    owners = owners_by_path(groups)
    graph: Graph = {group.id: [] for group in groups}
    for group in groups:
        targets = graph[group.id]
        for record in group.files:
            for dependency in record.dependencies:
                for owner in owners.get(dependency, ()):
                    if owner != group.id and owner not in targets:
                        targets.append(owner)
    for source, target in extra_edges or ():
        if source in graph and target in graph and source != target and target not in graph[source]:
            graph[source].append(target)
    return graph


def find_cycles(graph: Graph) -> List[List[str]]:
    """Return the strongly connected components that contain a cycle.

    Iterative Tarjan search starting from each unvisited node in key order.
    Every node that lies on some cycle ends up in exactly one component,
    so merging each component removes all cycles. Members are listed in
    depth-first discovery order, which for a simple cycle is the cycle
    path itself; components come out ordered by their first-discovered
    member.
    """
    index_of: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    stack: List[str] = []
    on_stack: Set[str] = set()
    components: List[List[str]] = []

    for root in graph:
        if root in index_of:
            continue
        index_of[root] = lowlink[root] = len(index_of)
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(graph.get(root, ())))]
        while work:
            node, neighbours = work[-1]
            advanced = False
            for neighbour in neighbours:
                if neighbour not in index_of:
                    index_of[neighbour] = lowlink[neighbour] = len(index_of)
                    stack.append(neighbour)
                    on_stack.add(neighbour)
                    work.append((neighbour, iter(graph.get(neighbour, ()))))
                    advanced = True
                    break
                if neighbour in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[neighbour])
            if advanced:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] != index_of[node]:
                continue
            component: List[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            if len(component) > 1:
                components.append(sorted(component, key=index_of.__getitem__))

    components.sort(key=lambda component: index_of[component[0]])
    return components


def cycle_walk(graph: Graph, component: Sequence[str]) -> List[str]:
    """Return a closed walk along real edges that visits every member.

    The walk starts and ends at ``component[0]`` and repeatedly moves to the
    nearest unvisited member by breadth-first search inside the component.
    For a simple cycle listed in discovery order this is the cycle itself.
    """
    members = set(component)
    start = component[0]
    walk = [start]
    unvisited: Set[str] = set(component[1:])
    current = start
    while True:
        targets = unvisited or {start}
        previous: Dict[str, Optional[str]] = {current: None}
        queue = deque([current])
        found: Optional[str] = None
        while queue and found is None:
            node = queue.popleft()
            for neighbour in graph.get(node, ()):
                if neighbour not in members or neighbour in previous:
                    continue
                previous[neighbour] = node
                if neighbour in targets:
                    found = neighbour
                    break
                queue.append(neighbour)
        if found is None:
            # Not strongly connected; close the walk without a path.
            walk.append(start)
            return walk
        hops: List[str] = []
        step: Optional[str] = found
        while step is not None and step != current:
            hops.append(step)
            step = previous[step]
        walk.extend(reversed(hops))
        if found == start:
            return walk
        unvisited.difference_update(hops)
        current = found


def has_cycle(graph: Graph) -> bool:
    return bool(find_cycles(graph))


def stable_topological_order(order: Sequence[str], graph: Graph) -> List[str]:
    """Order ids so that dependencies come first, otherwise keeping ``order``.

    Among the ids whose dependencies are already placed, the one earliest
    in ``order`` is emitted next. Ids caught in a cycle cannot be placed
    and are appended in their original relative order.
    """
    position = {node: index for index, node in enumerate(order)}
    pending: Dict[str, int] = {node: 0 for node in order}
    dependents: Dict[str, List[str]] = {node: [] for node in order}
    for node in order:
        for dependency in graph.get(node, ()):
            if dependency in position:
                pending[node] += 1
                dependents[dependency].append(node)

    ready = [position[node] for node in order if pending[node] == 0]
    heapq.heapify(ready)
    result: List[str] = []
    while ready:
        node = order[heapq.heappop(ready)]
        result.append(node)
        for dependent in dependents[node]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(result) < len(order):
        placed = set(result)
        result.extend(node for node in order if node not in placed)
    return result


def ordering_violations(order: Sequence[str], graph: Graph) -> List[Tuple[str, str]]:
    """Return ``(dependent, dependency)`` pairs where the dependency comes later."""
    position = {node: index for index, node in enumerate(order)}
    violations: List[Tuple[str, str]] = []
    for node in order:
        for dependency in graph.get(node, ()):
            if dependency in position and position[dependency] > position[node]:
                violations.append((node, dependency))
    return violations
