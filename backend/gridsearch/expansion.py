"""
Forced-Neighbor Expansion

Directional pruning for weighted 8-connected grids. Instead of proposing all
8 neighbours of every node, a node entered in direction d only proposes:
- d itself (straight or diagonal continuation)
- both components of d when d is diagonal
- any direction "forced" by a nearby cost change, where a pruned detour
  could turn out cheaper

The proposed set is then ordered by a spiral of directions around the
bearing to the target, most aligned first.
"""

from collections import deque
from typing import Deque, List, Tuple

from .directions import Direction, Position, general_direction
from .terrain import CostGrid


def preferred_directions(position: Tuple[int, int], target: Tuple[int, int]) -> List[Direction]:
    """
    All 8 directions ordered from "towards the target" to "away from it":
    the bearing, then 1, 2 and 3 steps clockwise/anticlockwise alternating,
    then the reverse bearing. Empty when position is the target.
    """
    bearing = general_direction(position, target)
    if bearing is None:
        return []
    return [
        bearing,
        bearing.clockwise(1),
        bearing.anticlockwise(1),
        bearing.clockwise(2),
        bearing.anticlockwise(2),
        bearing.clockwise(3),
        bearing.anticlockwise(3),
        bearing.clockwise(4),
    ]


def _offset(position: Tuple[int, int], dx: int, dy: int) -> Position:
    return Position(position[0] + dx, position[1] + dy)


def forced_directions(costs: CostGrid, current: Tuple[int, int], direction: Direction) -> List[Direction]:
    """
    Candidate directions out of the neighbour reached by moving `direction`
    from `current`.

    A flanking direction is forced when the cell it leads to is passable
    and the cell beside it (the one a detour would cross) costs more than
    the neighbour just entered.
    """
    dx, dy = direction.dx, direction.dy
    neighbour = direction.add_to(current)
    neighbour_cost = costs.cost(neighbour)
    candidates = [direction]

    def add_if_forced(travel: Position, alternative: Position, forced: Direction):
        if not costs.is_obstructed(travel) and costs.cost(alternative) > neighbour_cost:
            candidates.append(forced)

    if dy == 0:
        # Horizontal: forward diagonals, checked against the cells above/below
        add_if_forced(_offset(neighbour, dx, -1), _offset(neighbour, 0, -1), Direction.from_offset(dx, -1))
        add_if_forced(_offset(neighbour, dx, 1), _offset(neighbour, 0, 1), Direction.from_offset(dx, 1))
    elif dx == 0:
        # Vertical: forward diagonals, checked against the cells left/right
        add_if_forced(_offset(neighbour, -1, dy), _offset(neighbour, -1, 0), Direction.from_offset(-1, dy))
        add_if_forced(_offset(neighbour, 1, dy), _offset(neighbour, 1, 0), Direction.from_offset(1, dy))
    else:
        # Diagonal: both components, plus flanking diagonals when a cost
        # change sits two cells out from the current node along an axis
        candidates.append(Direction.from_offset(dx, 0))
        candidates.append(Direction.from_offset(0, dy))
        add_if_forced(_offset(current, 0, 2 * dy), _offset(current, 0, dy), Direction.from_offset(-dx, dy))
        add_if_forced(_offset(current, 2 * dx, 0), _offset(current, dx, 0), Direction.from_offset(dx, -dy))

    return candidates


def next_directions(
    costs: CostGrid,
    current: Tuple[int, int],
    direction: Direction,
    target: Tuple[int, int]
) -> Deque[Direction]:
    """
    The ordered direction list stored on the neighbour node: forced
    candidates, re-ordered by the neighbour's preferred directions.
    """
    neighbour = direction.add_to(current)
    candidates = forced_directions(costs, current, direction)
    return deque(d for d in preferred_directions(neighbour, target) if d in candidates)
