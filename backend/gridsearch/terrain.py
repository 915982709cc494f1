"""
Terrain Classification and Movement Costs

- TerrainGrid: terrain snapshot of one 50x50 region plus its static structures
- TerrainCostCache: memoized, read-only cost arrays keyed by grid identity
- CostGrid: private per-search copy of the costs with an "avoid" overlay
- Connectivity labelling for early unreachability detection
"""

import weakref
import numpy as np
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Set, Tuple
from scipy.ndimage import label

from .directions import ALL_DIRECTIONS, GRID_SIZE, Position, in_bounds


class Terrain(IntEnum):
    """Terrain classification of a single cell"""
    OPEN = 0
    ROUGH = 1    # Swamp: passable but expensive
    BLOCKED = 2  # Wall


# Movement cost of entering a cell. The cheapest step costs MIN_STEP_COST,
# which is also the heuristic scale factor.
OPEN_COST = 2
ROUGH_COST = 10
BLOCKED_COST = 255
MIN_STEP_COST = OPEN_COST

# Indexed by Terrain value
TERRAIN_COSTS = np.array([OPEN_COST, ROUGH_COST, BLOCKED_COST], dtype=np.uint8)

# Map file characters
TERRAIN_CHARS: Dict[str, Terrain] = {
    '.': Terrain.OPEN,
    ' ': Terrain.OPEN,
    '~': Terrain.ROUGH,
    '#': Terrain.BLOCKED,
    '@': Terrain.OPEN,  # Open terrain occupied by a static structure
}
STRUCTURE_CHAR = '@'


# =============================================================================
# TERRAIN GRID
# =============================================================================

@dataclass(eq=False)
class TerrainGrid:
    """
    Terrain of one region.

    `terrain` is a (GRID_SIZE, GRID_SIZE) array of Terrain values indexed
    [y, x]. `structures` are cells occupied by fixed buildings; they only
    matter to the free-space helpers, not to the search itself.

    Instances hash by identity, which is what TerrainCostCache keys on.
    """
    terrain: np.ndarray
    structures: Set[Position] = field(default_factory=set)
    name: str = ""

    def __post_init__(self):
        self.terrain = np.asarray(self.terrain, dtype=np.uint8)
        if self.terrain.shape != (GRID_SIZE, GRID_SIZE):
            raise ValueError(f"Terrain must be {GRID_SIZE}x{GRID_SIZE}, got {self.terrain.shape}")
        if np.any(self.terrain > Terrain.BLOCKED):
            raise ValueError("Terrain contains unknown classification values")
        self.structures = {Position(*p) for p in self.structures}

    def get(self, x: int, y: int) -> Terrain:
        """Terrain at (x, y). Anything off the grid is a wall."""
        if not in_bounds((x, y)):
            return Terrain.BLOCKED
        return Terrain(int(self.terrain[y, x]))

    def has_structure(self, position: Tuple[int, int]) -> bool:
        return Position(*position) in self.structures

    @classmethod
    def open(cls, name: str = "") -> 'TerrainGrid':
        """An all-open region."""
        return cls(terrain=np.zeros((GRID_SIZE, GRID_SIZE), dtype=np.uint8), name=name)

    @classmethod
    def with_walls(
        cls,
        walls: Iterable[Tuple[int, int]] = (),
        rough: Iterable[Tuple[int, int]] = (),
        structures: Iterable[Tuple[int, int]] = (),
        name: str = ""
    ) -> 'TerrainGrid':
        """Open region with the given wall and swamp cells."""
        terrain = np.zeros((GRID_SIZE, GRID_SIZE), dtype=np.uint8)
        for x, y in rough:
            terrain[y, x] = Terrain.ROUGH
        for x, y in walls:
            terrain[y, x] = Terrain.BLOCKED
        return cls(terrain=terrain, structures=set(structures), name=name)

    @classmethod
    def from_rows(cls, rows: List[str], name: str = "") -> 'TerrainGrid':
        """
        Parse a text map: GRID_SIZE rows of GRID_SIZE characters.

        '.' open, '~' rough, '#' wall, '@' open cell with a structure on it.
        """
        rows = [row.rstrip('\r\n') for row in rows]
        if len(rows) != GRID_SIZE:
            raise ValueError(f"Expected {GRID_SIZE} rows, got {len(rows)}")

        terrain = np.zeros((GRID_SIZE, GRID_SIZE), dtype=np.uint8)
        structures = set()
        for y, row in enumerate(rows):
            if len(row) != GRID_SIZE:
                raise ValueError(f"Row {y} has {len(row)} cells, expected {GRID_SIZE}")
            for x, char in enumerate(row):
                if char not in TERRAIN_CHARS:
                    raise ValueError(f"Unknown terrain character {char!r} at ({x}, {y})")
                terrain[y, x] = TERRAIN_CHARS[char]
                if char == STRUCTURE_CHAR:
                    structures.add(Position(x, y))
        return cls(terrain=terrain, structures=structures, name=name)

    def to_rows(self) -> List[str]:
        """Inverse of from_rows."""
        chars = {Terrain.OPEN: '.', Terrain.ROUGH: '~', Terrain.BLOCKED: '#'}
        rows = []
        for y in range(GRID_SIZE):
            row = []
            for x in range(GRID_SIZE):
                if (x, y) in self.structures:
                    row.append(STRUCTURE_CHAR)
                else:
                    row.append(chars[Terrain(int(self.terrain[y, x]))])
            rows.append("".join(row))
        return rows


def is_free(grid: TerrainGrid, position: Tuple[int, int]) -> bool:
    """Not a wall and not occupied by a static structure."""
    return grid.get(position[0], position[1]) != Terrain.BLOCKED and not grid.has_structure(position)


def is_plains(grid: TerrainGrid, position: Tuple[int, int]) -> bool:
    return grid.get(position[0], position[1]) == Terrain.OPEN


def find_adjacent_free_spaces(grid: TerrainGrid, position: Tuple[int, int]) -> List[Position]:
    """The 8-neighbourhood of a position, filtered to free cells, clockwise from TOP."""
    adjacent = (direction.add_to(position) for direction in ALL_DIRECTIONS)
    return [p for p in adjacent if is_free(grid, p)]


# =============================================================================
# COST CACHE
# =============================================================================

def build_costs(grid: TerrainGrid) -> np.ndarray:
    """Map every cell's terrain to its movement cost. Indexed [y, x]."""
    return TERRAIN_COSTS[grid.terrain]


class TerrainCostCache:
    """
    Memoized terrain costs, one array per TerrainGrid.

    Arrays are marked read-only; searches copy them before stamping avoided
    cells. Entries go away with their grid. Building the same entry twice is
    harmless, so no locking is needed.
    """

    def __init__(self):
        self._costs: 'weakref.WeakKeyDictionary[TerrainGrid, np.ndarray]' = weakref.WeakKeyDictionary()
        self.hits = 0
        self.misses = 0

    def get_costs(self, grid: TerrainGrid) -> np.ndarray:
        costs = self._costs.get(grid)
        if costs is not None:
            self.hits += 1
            return costs

        self.misses += 1
        costs = build_costs(grid)
        costs.flags.writeable = False
        self._costs[grid] = costs
        return costs

    def invalidate(self, grid: TerrainGrid) -> None:
        """Drop a grid's costs, e.g. after its terrain array was edited."""
        self._costs.pop(grid, None)

    def __len__(self) -> int:
        return len(self._costs)


# =============================================================================
# PER-SEARCH COSTS
# =============================================================================

class CostGrid:
    """
    Private cost snapshot for one search.

    Starts as a copy of the shared terrain costs; avoided cells are stamped
    BLOCKED_COST here only.
    """

    def __init__(self, base_costs: np.ndarray, exclude_border: bool = False):
        self.costs = np.array(base_costs, dtype=np.uint8, copy=True)
        self.exclude_border = exclude_border

    def avoid(self, positions: Iterable[Tuple[int, int]]) -> None:
        for x, y in positions:
            if in_bounds((x, y)):
                self.costs[y, x] = BLOCKED_COST

    def cost(self, position: Tuple[int, int]) -> int:
        """Cost of entering a cell; off-grid cells cost BLOCKED_COST."""
        x, y = position
        if not in_bounds((x, y), self.exclude_border):
            return BLOCKED_COST
        return int(self.costs[y, x])

    def is_obstructed(self, position: Tuple[int, int]) -> bool:
        return self.cost(position) == BLOCKED_COST

    def passable_mask(self) -> np.ndarray:
        mask = self.costs != BLOCKED_COST
        if self.exclude_border:
            mask[0, :] = mask[-1, :] = False
            mask[:, 0] = mask[:, -1] = False
        return mask


def connected_regions(mask: np.ndarray) -> np.ndarray:
    """Label 8-connected regions of a boolean passability mask (0 = not passable)."""
    labels, _ = label(mask, structure=np.ones((3, 3), dtype=bool))
    return labels


def can_reach_any(
    cost_grid: CostGrid,
    source: Tuple[int, int],
    goals: Iterable[Tuple[int, int]]
) -> bool:
    """
    Whether any goal cell shares the source's 8-connected region.

    The source counts as passable even when it sits on a wall, since a
    search starts there regardless.
    """
    if not in_bounds(source):
        return False
    mask = cost_grid.passable_mask()
    mask[source[1], source[0]] = True
    labels = connected_regions(mask)
    source_label = labels[source[1], source[0]]
    for x, y in goals:
        if in_bounds((x, y)) and labels[y, x] == source_label:
            return True
    return False


def goal_cells(target: Tuple[int, int], target_range: int) -> List[Position]:
    """All on-grid cells within Chebyshev distance `target_range` of the target."""
    tx, ty = target
    return [
        Position(x, y)
        for y in range(max(0, ty - target_range), min(GRID_SIZE, ty + target_range + 1))
        for x in range(max(0, tx - target_range), min(GRID_SIZE, tx + target_range + 1))
    ]


def costs_summary(costs: np.ndarray) -> Dict[str, int]:
    """Cell counts per terrain cost, for status printing."""
    return {
        'open': int(np.sum(costs == OPEN_COST)),
        'rough': int(np.sum(costs == ROUGH_COST)),
        'blocked': int(np.sum(costs == BLOCKED_COST)),
    }
