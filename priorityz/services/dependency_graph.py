# Rev 0.7.0
"""
Task dependency graph helpers.

Edges are normalised to predecessor → successor (see DependencyEdge). The
graph is only a view over rows already stored; nothing here writes.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..models.entities import DependencyEdge

WHITE, GRAY, BLACK = 0, 1, 2
_EPS = 1e-9


@dataclass
class ScheduleNode:
    task_id: int
    duration: float
    earliest_start: float = 0.0
    earliest_finish: float = 0.0
    latest_start: float = 0.0
    latest_finish: float = 0.0

    @property
    def slack(self) -> float:
        return self.latest_start - self.earliest_start

    @property
    def is_critical(self) -> bool:
        return abs(self.slack) < _EPS


@dataclass
class CriticalPathResult:
    nodes: List[ScheduleNode]
    critical_path: List[int]
    total_duration: float


@dataclass
class ChainEntry:
    task_id: int
    depth: int


@dataclass
class DependencyChain:
    predecessors: List[ChainEntry] = field(default_factory=list)
    successors: List[ChainEntry] = field(default_factory=list)


class DependencyGraph:
    def __init__(self, edges: Iterable[DependencyEdge] = (), nodes: Iterable[int] = ()):
        self._succ: Dict[int, List[int]] = {}
        self._pred: Dict[int, List[int]] = {}
        for n in nodes:
            self.add_node(n)
        for e in edges:
            self.add(e.predecessor_id, e.successor_id)

    def add_node(self, node: int) -> None:
        self._succ.setdefault(node, [])
        self._pred.setdefault(node, [])

    def add(self, predecessor: int, successor: int) -> None:
        self.add_node(predecessor)
        self.add_node(successor)
        if successor not in self._succ[predecessor]:
            self._succ[predecessor].append(successor)
            self._pred[successor].append(predecessor)

    @property
    def nodes(self) -> List[int]:
        return sorted(self._succ)

    def has_edge(self, predecessor: int, successor: int) -> bool:
        return successor in self._succ.get(predecessor, ())

    def successors(self, node: int) -> List[int]:
        return list(self._succ.get(node, ()))

    def predecessors(self, node: int) -> List[int]:
        return list(self._pred.get(node, ()))

    # -------------------------
    # Cycles
    # -------------------------
    def find_cycle(self) -> Optional[List[int]]:
        """
        DFS with white/gray/black colouring. Returns the cycle as a node path
        whose first and last element are the same node, or None.
        """
        color = {n: WHITE for n in self._succ}
        parent: Dict[int, int] = {}
        for root in self.nodes:
            if color[root] != WHITE:
                continue
            stack: List[Tuple[int, int]] = [(root, 0)]
            color[root] = GRAY
            while stack:
                node, idx = stack[-1]
                succ = self._succ[node]
                if idx < len(succ):
                    stack[-1] = (node, idx + 1)
                    nxt = succ[idx]
                    if color[nxt] == GRAY:
                        cycle = [nxt, node]
                        cur = node
                        while cur != nxt:
                            cur = parent[cur]
                            cycle.append(cur)
                        cycle.reverse()
                        return cycle
                    if color[nxt] == WHITE:
                        color[nxt] = GRAY
                        parent[nxt] = node
                        stack.append((nxt, 0))
                else:
                    color[node] = BLACK
                    stack.pop()
        return None

    def cycle_if_added(self, predecessor: int, successor: int) -> Optional[List[int]]:
        probe = DependencyGraph()
        for node in self._succ:
            probe.add_node(node)
            for s in self._succ[node]:
                probe.add(node, s)
        probe.add(predecessor, successor)
        return probe.find_cycle()

    # -------------------------
    # Ordering / scheduling
    # -------------------------
    def topological_order(self) -> List[int]:
        indeg = {n: len(self._pred[n]) for n in self._succ}
        queue = deque(sorted(n for n, d in indeg.items() if d == 0))
        order: List[int] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            for s in sorted(self._succ[node]):
                indeg[s] -= 1
                if indeg[s] == 0:
                    queue.append(s)
        if len(order) != len(self._succ):
            raise ValueError(f"dependency graph contains a cycle: {self.find_cycle()}")
        return order

    def critical_path(self, durations: Mapping[int, float]) -> CriticalPathResult:
        order = self.topological_order()
        nodes = {n: ScheduleNode(n, float(durations.get(n, 0.0))) for n in order}
        if not nodes:
            return CriticalPathResult([], [], 0.0)

        # forward pass
        for n in order:
            node = nodes[n]
            node.earliest_start = max((nodes[p].earliest_finish for p in self._pred[n]), default=0.0)
            node.earliest_finish = node.earliest_start + node.duration
        total = max(node.earliest_finish for node in nodes.values())

        # backward pass
        for n in reversed(order):
            node = nodes[n]
            node.latest_finish = min((nodes[s].latest_start for s in self._succ[n]), default=total)
            node.latest_start = node.latest_finish - node.duration

        position = {n: i for i, n in enumerate(order)}
        critical = sorted(
            (node for node in nodes.values() if node.is_critical),
            key=lambda nd: (nd.earliest_start, position[nd.task_id]),
        )
        return CriticalPathResult(
            nodes=[nodes[n] for n in order],
            critical_path=[nd.task_id for nd in critical],
            total_duration=total,
        )

    def chain(self, task_id: int, max_depth: Optional[int] = None) -> DependencyChain:
        """Transitive predecessors and successors, breadth-first with depth (direct = 0)."""
        return DependencyChain(
            predecessors=self._walk(task_id, self._pred, max_depth),
            successors=self._walk(task_id, self._succ, max_depth),
        )

    @staticmethod
    def _walk(start: int, adj: Dict[int, List[int]], max_depth: Optional[int]) -> List[ChainEntry]:
        seen: Set[int] = {start}
        out: List[ChainEntry] = []
        queue = deque((n, 0) for n in adj.get(start, ()))
        while queue:
            node, depth = queue.popleft()
            if node in seen or (max_depth is not None and depth > max_depth):
                continue
            seen.add(node)
            out.append(ChainEntry(node, depth))
            queue.extend((n, depth + 1) for n in adj.get(node, ()))
        return out
