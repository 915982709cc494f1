"""
Path steps: reconstruction from the search tree, reversal, and helpers.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .directions import Direction, Position, chebyshev_distance, exact_direction
from .terrain import CostGrid


@dataclass(frozen=True)
class PathStep:
    """One unit move: the cell it ends on and the direction taken to get there."""
    x: int
    y: int
    dx: int
    dy: int
    direction: Direction

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    @classmethod
    def moving(cls, position: Tuple[int, int], direction: Direction) -> 'PathStep':
        """The step that ends on `position` after moving `direction`."""
        return cls(
            x=position[0],
            y=position[1],
            dx=direction.dx,
            dy=direction.dy,
            direction=direction
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'dx': self.dx,
            'dy': self.dy,
            'direction': int(self.direction)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PathStep':
        return cls.moving((data['x'], data['y']), Direction(data['direction']))


def build_path(node) -> List[PathStep]:
    """
    Follow parent links from a goal node back to the source.

    Emits one step per cell crossed, so edges spanning several cells along
    an octant line expand into several steps. The source is not part of the
    path; the goal is the last step.
    """
    steps: List[PathStep] = []
    while node.parent is not None:
        parent_position = node.parent.position
        direction = exact_direction(parent_position, node.position)
        # Walk the edge backwards from the node towards its parent
        for i in range(chebyshev_distance(parent_position, node.position), 0, -1):
            steps.append(PathStep.moving(direction.add_to(parent_position, i), direction))
        node = node.parent
    steps.reverse()
    return steps


def reverse_path(path: List[PathStep]) -> List[PathStep]:
    """
    The same cells walked the other way.

    Each step is replaced by the reverse move out of its cell, so the result
    starts next to the original goal and ends on the original source.
    """
    reversed_path: List[PathStep] = []
    for step in reversed(path):
        direction = step.direction.reverse()
        reversed_path.append(PathStep.moving(direction.add_to(step.position), direction))
    return reversed_path


def path_positions(path: List[PathStep]) -> List[Position]:
    return [step.position for step in path]


def path_cost(path: List[PathStep], costs: CostGrid) -> int:
    """Sum of the entry cost of every cell on the path."""
    return sum(costs.cost(step.position) for step in path)
