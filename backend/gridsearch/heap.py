"""
Open set for the grid search: a binary min-heap of search nodes that can be
looked up and improved by grid position.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .directions import Direction, Position


@dataclass(eq=False)
class SearchNode:
    """
    Node in the search tree.

    `next_directions` is drained one entry per visit; the node stays in the
    open queue until it is empty. Nodes compare by identity.
    """
    position: Position
    parent: Optional['SearchNode']
    cost_so_far: int
    estimated_cost: int          # cost_so_far + heuristic
    manhattan_distance: int      # To the target, first tie-break
    chebyshev_distance: int      # To the target
    next_directions: Deque[Direction] = field(default_factory=deque)
    sequence: int = 0            # Insertion order, assigned by OpenQueue.push


class OpenQueue:
    """
    Binary min-heap ordered by:
    1. estimated_cost ascending
    2. manhattan_distance ascending
    3. sequence descending (most recently pushed wins)

    A position -> heap index map makes update() a dictionary lookup instead
    of a scan. Each position is in the queue at most once.
    """

    def __init__(self):
        self._heap: List[SearchNode] = []
        self._index: Dict[Position, int] = {}
        self._counter = 1

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, position: Tuple[int, int]) -> bool:
        return Position(*position) in self._index

    @staticmethod
    def is_higher_priority(a: SearchNode, b: SearchNode) -> bool:
        if a.estimated_cost != b.estimated_cost:
            return a.estimated_cost < b.estimated_cost
        if a.manhattan_distance != b.manhattan_distance:
            return a.manhattan_distance < b.manhattan_distance
        return a.sequence > b.sequence

    def push(self, node: SearchNode) -> None:
        if node.position in self._index:
            raise ValueError(f"Position {tuple(node.position)} is already queued")
        node.sequence = self._counter
        self._counter += 1
        self._heap.append(node)
        self._sift_up(len(self._heap) - 1)

    def peek(self) -> Optional[SearchNode]:
        return self._heap[0] if self._heap else None

    def pop(self) -> Optional[SearchNode]:
        if not self._heap:
            return None
        top = self._heap[0]
        del self._index[top.position]
        last = self._heap.pop()
        if self._heap:
            self._heap[0] = last
            self._sift_down(0)
        return top

    def update(
        self,
        position: Tuple[int, int],
        f: Callable[[SearchNode], Optional[SearchNode]]
    ) -> bool:
        """
        Find the queued node at `position` and let `f` decide on a replacement.

        `f` returns the new node (same position) or None to keep the old one.
        Returns whether a node was queued at that position at all.
        """
        index = self._index.get(Position(*position))
        if index is None:
            return False

        replacement = f(self._heap[index])
        if replacement is not None:
            self._heap[index] = replacement
            index = self._sift_up(index)
            self._sift_down(index)
        return True

    # -------------------- heap maintenance --------------------

    def _place(self, index: int, node: SearchNode) -> None:
        self._heap[index] = node
        self._index[node.position] = index

    def _sift_up(self, index: int) -> int:
        node = self._heap[index]
        while index > 0:
            parent_index = (index - 1) >> 1
            parent = self._heap[parent_index]
            if not self.is_higher_priority(node, parent):
                break
            self._place(index, parent)
            index = parent_index
        self._place(index, node)
        return index

    def _sift_down(self, index: int) -> int:
        size = len(self._heap)
        node = self._heap[index]
        while index < (size >> 1):
            best_index = (index << 1) + 1
            right_index = best_index + 1
            if right_index < size and self.is_higher_priority(self._heap[right_index], self._heap[best_index]):
                best_index = right_index
            best_child = self._heap[best_index]
            if not self.is_higher_priority(best_child, node):
                break
            self._place(index, best_child)
            index = best_index
        self._place(index, node)
        return index
