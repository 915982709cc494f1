"""
Octant Directions and Grid Positions

Position arithmetic for the 50x50 search grid:
- Positions are integer (x, y) cells, x grows to the right, y grows downward
- 8 octant directions with numeric constants 1..8, clockwise from TOP
- Rotation by integer increments, reversal, offset lookup
- Chebyshev / Manhattan distance and adjacency helpers
"""

from enum import IntEnum
from typing import Dict, List, NamedTuple, Optional, Tuple, Iterable


GRID_SIZE = 50  # Cells per axis


class Position(NamedTuple):
    """A grid cell. Out-of-range coordinates are valid values, just obstructed."""
    x: int
    y: int


# =============================================================================
# DIRECTIONS
# =============================================================================

class Direction(IntEnum):
    """8 octant directions, numbered clockwise starting at TOP"""
    TOP = 1           # (0, -1)
    TOP_RIGHT = 2     # (1, -1)
    RIGHT = 3         # (1, 0)
    BOTTOM_RIGHT = 4  # (1, 1)
    BOTTOM = 5        # (0, 1)
    BOTTOM_LEFT = 6   # (-1, 1)
    LEFT = 7          # (-1, 0)
    TOP_LEFT = 8      # (-1, -1)

    @property
    def dx(self) -> int:
        return DIRECTION_OFFSETS[self][0]

    @property
    def dy(self) -> int:
        return DIRECTION_OFFSETS[self][1]

    @property
    def is_diagonal(self) -> bool:
        return self.dx != 0 and self.dy != 0

    def rotate(self, increment: int = 1) -> 'Direction':
        """
        Rotate by `increment` octants. Positive = clockwise, negative = anticlockwise.
        rotate(4) is the reverse direction.
        """
        return Direction((self - 1 + increment) % 8 + 1)

    def clockwise(self, increment: int = 1) -> 'Direction':
        return self.rotate(increment)

    def anticlockwise(self, increment: int = 1) -> 'Direction':
        return self.rotate(-increment)

    def reverse(self) -> 'Direction':
        return self.rotate(4)

    def add_to(self, position: Tuple[int, int], distance: int = 1) -> Position:
        """Apply this direction `distance` times to a position."""
        return Position(position[0] + self.dx * distance, position[1] + self.dy * distance)

    @classmethod
    def from_offset(cls, dx: int, dy: int) -> Optional['Direction']:
        """Look up the direction for a unit offset, None for (0, 0) or non-unit offsets."""
        return DIRECTIONS_BY_OFFSET.get((dx, dy))


# Offset vectors for each direction (dx, dy)
DIRECTION_OFFSETS: Dict[Direction, Tuple[int, int]] = {
    Direction.TOP:          (0, -1),
    Direction.TOP_RIGHT:    (1, -1),
    Direction.RIGHT:        (1, 0),
    Direction.BOTTOM_RIGHT: (1, 1),
    Direction.BOTTOM:       (0, 1),
    Direction.BOTTOM_LEFT:  (-1, 1),
    Direction.LEFT:         (-1, 0),
    Direction.TOP_LEFT:     (-1, -1),
}

DIRECTIONS_BY_OFFSET: Dict[Tuple[int, int], Direction] = {
    offset: direction for direction, offset in DIRECTION_OFFSETS.items()
}

ALL_DIRECTIONS: List[Direction] = list(Direction)


# =============================================================================
# POSITION HELPERS
# =============================================================================

def _compare(a: int, b: int) -> int:
    return (a > b) - (a < b)


def general_direction(source: Tuple[int, int], target: Tuple[int, int]) -> Optional[Direction]:
    """
    General bearing from source towards target: the signs of (dx, dy) mapped
    to an octant. None when source and target are the same cell.
    """
    return Direction.from_offset(_compare(target[0], source[0]), _compare(target[1], source[1]))


def exact_direction(source: Tuple[int, int], target: Tuple[int, int]) -> Direction:
    """
    Direction of a straight or diagonal edge from source to target.

    The edge may span several cells but must lie on one of the 8 octant lines.
    """
    dx = target[0] - source[0]
    dy = target[1] - source[1]
    if (dx == 0 and dy == 0) or (dx != 0 and dy != 0 and abs(dx) != abs(dy)):
        raise ValueError(f"No octant direction from {tuple(source)} to {tuple(target)}")
    return Direction.from_offset(_compare(dx, 0), _compare(dy, 0))


def chebyshev_distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def manhattan_distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def are_same(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return a[0] == b[0] and a[1] == b[1]


def are_adjacent(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    """True for the 8 king-move neighbours, False for the cell itself."""
    return chebyshev_distance(a, b) == 1


def filter_adjacent_positions(
    position: Tuple[int, int],
    others: Iterable[Tuple[int, int]]
) -> List[Tuple[int, int]]:
    """Keep only the positions adjacent to `position`, in their original order."""
    return [p for p in others if are_adjacent(position, p)]


def in_bounds(position: Tuple[int, int], exclude_border: bool = False) -> bool:
    """
    Check if a position lies on the grid.

    With exclude_border the outermost ring (0 and GRID_SIZE - 1) counts as
    off-grid, which is how room exits behave in the game the grid comes from.
    """
    low, high = (1, GRID_SIZE - 2) if exclude_border else (0, GRID_SIZE - 1)
    return low <= position[0] <= high and low <= position[1] <= high
