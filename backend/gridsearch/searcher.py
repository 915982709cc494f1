"""
Grid Searcher

Best-first search over a 50x50 weighted grid with forced-neighbor pruning:
- Single goal, all equal-cost goals within a range, or cost-only queries
- Heuristic: MIN_STEP_COST * Chebyshev distance (a lower bound under the
  terrain cost model)
- Deterministic tie-breaks: Manhattan distance, then most recent insertion
- A position is closed the first time it is selected and never reopened
"""

import time
from collections import deque
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from .directions import Direction, Position, chebyshev_distance, in_bounds, manhattan_distance
from .expansion import next_directions, preferred_directions
from .heap import OpenQueue, SearchNode
from .paths import PathStep, build_path
from .terrain import (
    MIN_STEP_COST, CostGrid, TerrainCostCache, TerrainGrid,
    build_costs, can_reach_any, goal_cells
)


@dataclass
class SearchConfig:
    """Configuration for a search"""
    target_range: int = 0  # Goal accepted within this Chebyshev distance of the target
    exclude_border: bool = False  # Treat the outermost ring of cells as off-grid
    precheck_connectivity: bool = True  # Skip searches whose goals are not connected to the source
    verbose: bool = False  # Print a start/result line per query


@dataclass
class SearchStats:
    """Counters from the most recent query."""
    iterations: int = 0
    nodes_opened: int = 0
    nodes_updated: int = 0
    nodes_closed: int = 0
    goals_found: int = 0
    goal_cost: Optional[int] = None
    skipped_by_precheck: bool = False
    elapsed_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _fmt(position: Tuple[int, int]) -> str:
    return f"({position[0]}, {position[1]})"


class Searcher:
    """
    Searches one source/target pair on one terrain grid.

    Costs come from `cost_cache` when given (shared, read-only) and are
    copied, so avoided positions only affect this searcher. Every query
    starts from an empty open/closed set.
    """

    def __init__(
        self,
        grid: TerrainGrid,
        source: Tuple[int, int],
        target: Tuple[int, int],
        config: Optional[SearchConfig] = None,
        cost_cache: Optional[TerrainCostCache] = None
    ):
        self.grid = grid
        self.source = Position(*source)
        self.target = Position(*target)
        self.config = replace(config) if config is not None else SearchConfig()
        if self.config.target_range < 0:
            raise ValueError(f"target_range must be >= 0, got {self.config.target_range}")

        base_costs = cost_cache.get_costs(grid) if cost_cache is not None else build_costs(grid)
        self.costs = CostGrid(base_costs, exclude_border=self.config.exclude_border)

        self.queue = OpenQueue()
        self.closed: Set[Position] = set()
        self.stats = SearchStats()

    # -------------------- configuration --------------------

    def avoiding_positions(self, positions: Iterable[Tuple[int, int]]) -> 'Searcher':
        """Make the given cells impassable for this searcher only."""
        self.costs.avoid(positions)
        return self

    def with_target_range(self, target_range: int) -> 'Searcher':
        """Accept any cell within Chebyshev distance `target_range` of the target."""
        if target_range < 0:
            raise ValueError(f"target_range must be >= 0, got {target_range}")
        self.config.target_range = target_range
        return self

    @property
    def target_range(self) -> int:
        return self.config.target_range

    def is_goal(self, position: Tuple[int, int]) -> bool:
        return chebyshev_distance(position, self.target) <= self.config.target_range

    # -------------------- queries --------------------

    def find_single_path(self) -> Optional[List[PathStep]]:
        """Path to the first goal reached, [] if the source is a goal, None if unreachable."""
        node = self._timed(self._find_goal_node)
        if node is None:
            return None
        return build_path(node)

    def find_all_paths(self) -> List[List[PathStep]]:
        """One path per distinct goal cell reachable at the minimum cost."""
        return [build_path(node) for node in self._timed(self._find_all_goal_nodes)]

    def find_path_length(self) -> Optional[float]:
        """Goal cost in open-terrain steps (cost / MIN_STEP_COST), None if unreachable."""
        node = self._timed(self._find_goal_node)
        if node is None:
            return None
        return node.cost_so_far / MIN_STEP_COST

    # -------------------- main loops --------------------

    def _find_goal_node(self) -> Optional[SearchNode]:
        if not self._start():
            return None

        while True:
            node = self.queue.peek()
            if node is None:
                return None
            self.stats.iterations += 1
            self._close(node)
            if self.is_goal(node.position):
                self._record_goals([node])
                return node
            direction = self._take_direction(node)
            if direction is not None:
                self._search_from_node(node, direction)

    def _find_all_goal_nodes(self) -> List[SearchNode]:
        results: List[SearchNode] = []
        if not self._start():
            return results

        while True:
            node = self.queue.peek()
            # Stop once nothing left in the open set is as cheap as the first goal
            if node is None or (results and node.cost_so_far > results[0].cost_so_far):
                self._record_goals(results)
                return results
            self.stats.iterations += 1
            self._close(node)
            if self.is_goal(node.position) and node not in results:
                results.append(node)
            direction = self._take_direction(node)
            if direction is not None:
                self._search_from_node(node, direction)

    def _start(self) -> bool:
        """Reset state and seed the source node. False when the goals are known unreachable."""
        self.queue = OpenQueue()
        self.closed = set()
        self.stats = SearchStats()

        if self._disconnected():
            self.stats.skipped_by_precheck = True
            return False

        self._add_node(self.source, None, 0, deque(preferred_directions(self.source, self.target)))
        return True

    def _disconnected(self) -> bool:
        if not self.config.precheck_connectivity or self.is_goal(self.source):
            return False
        if not in_bounds(self.source):
            # Off-grid sources can still step onto the grid
            return False
        return not can_reach_any(self.costs, self.source, goal_cells(self.target, self.config.target_range))

    def _take_direction(self, node: SearchNode) -> Optional[Direction]:
        """Consume the node's next direction, dropping the node from the queue once drained."""
        direction = node.next_directions.popleft() if node.next_directions else None
        if not node.next_directions:
            self.queue.pop()
        return direction

    def _close(self, node: SearchNode) -> None:
        if node.position not in self.closed:
            self.closed.add(node.position)
            self.stats.nodes_closed += 1

    def _record_goals(self, goals: List[SearchNode]) -> None:
        self.stats.goals_found = len(goals)
        self.stats.goal_cost = goals[0].cost_so_far if goals else None

    # -------------------- expansion --------------------

    def _search_from_node(self, node: SearchNode, direction: Direction) -> None:
        neighbour = direction.add_to(node.position)
        if self.costs.is_obstructed(neighbour) or neighbour in self.closed:
            return
        cost_so_far = node.cost_so_far + self.costs.cost(neighbour)
        directions = next_directions(self.costs, node.position, direction, self.target)
        self._add_node(neighbour, node, cost_so_far, directions)

    def _add_node(
        self,
        position: Position,
        parent: Optional[SearchNode],
        cost_so_far: int,
        directions: Deque[Direction]
    ) -> None:
        if position in self.closed:
            return

        chebyshev = chebyshev_distance(position, self.target)
        manhattan = manhattan_distance(position, self.target)
        estimated_cost = cost_so_far + MIN_STEP_COST * chebyshev

        def improve(existing: SearchNode) -> Optional[SearchNode]:
            if estimated_cost >= existing.estimated_cost:
                return None
            self.stats.nodes_updated += 1
            return replace(
                existing,
                parent=parent,
                cost_so_far=cost_so_far,
                estimated_cost=estimated_cost,
                manhattan_distance=manhattan,
                chebyshev_distance=chebyshev,
                next_directions=directions
            )

        if not self.queue.update(position, improve):
            self.queue.push(SearchNode(
                position=position,
                parent=parent,
                cost_so_far=cost_so_far,
                estimated_cost=estimated_cost,
                manhattan_distance=manhattan,
                chebyshev_distance=chebyshev,
                next_directions=directions
            ))
            self.stats.nodes_opened += 1

    # -------------------- reporting --------------------

    def _timed(self, search: Callable[[], Any]) -> Any:
        verbose = self.config.verbose
        if verbose:
            print(f"[Searcher] {_fmt(self.source)} -> {_fmt(self.target)}, range {self.config.target_range}")

        start_time = time.time()
        result = search()
        self.stats.elapsed_time = time.time() - start_time

        if verbose:
            if self.stats.skipped_by_precheck:
                print(f"[Searcher] Target region not connected to source, skipped search")
            elif self.stats.goals_found:
                print(f"[Searcher] Found {self.stats.goals_found} goal(s) at cost {self.stats.goal_cost}: "
                      f"{self.stats.iterations} iterations, {self.stats.nodes_closed} closed, "
                      f"{self.stats.elapsed_time * 1000:.1f}ms")
            else:
                print(f"[Searcher] No path found after {self.stats.iterations} iterations "
                      f"({self.stats.nodes_closed} nodes closed)")
        return result


def find_path_length(
    grid: TerrainGrid,
    source: Tuple[int, int],
    target: Tuple[int, int],
    config: Optional[SearchConfig] = None,
    cost_cache: Optional[TerrainCostCache] = None
) -> Optional[float]:
    """One-shot find_path_length for a fresh searcher."""
    return Searcher(grid, source, target, config, cost_cache).find_path_length()
