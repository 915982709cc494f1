"""
Terrain Map Service

Loads 50x50 terrain maps from various sources (in priority order):
1. In-memory cache
2. Local map files (TERRAIN_DIR, default ./data/terrain)
3. Remote map server (TERRAIN_SERVER_URL)
4. Synthetic demo terrain (DEMO_MODE=true)
"""

import os
import re
import zlib
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional
import httpx
from scipy.ndimage import gaussian_filter

from .directions import GRID_SIZE, Position
from .terrain import Terrain, TerrainCostCache, TerrainGrid, costs_summary


MAP_SUFFIX = ".txt"
MAP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_map_name(name: str) -> str:
    """Map names become file names, so only allow a safe character set."""
    if not MAP_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid map name {name!r}")
    return name


class TerrainService:
    """
    Service for loading and caching terrain maps.

    Map files hold GRID_SIZE lines of GRID_SIZE characters:
    '.' open, '~' swamp, '#' wall, '@' structure on open ground.

    The remote server answers GET {TERRAIN_SERVER_URL}/terrain/{name} with
    {"rows": [...], "structures": [[x, y], ...]}.

    One TerrainCostCache is shared by every search run against these maps.
    """

    def __init__(
        self,
        terrain_folder: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.terrain_url = os.getenv("TERRAIN_SERVER_URL")
        self.use_demo_mode = os.getenv("DEMO_MODE", "true").lower() == "true"

        folder = terrain_folder or os.getenv("TERRAIN_DIR")
        if folder:
            self.terrain_folder = Path(folder)
        else:
            # Default: ./data/terrain relative to backend folder
            backend_dir = Path(__file__).parent.parent
            self.terrain_folder = backend_dir / "data" / "terrain"

        # Test hook for the remote fetch
        self.transport = transport

        self.grid_cache: Dict[str, TerrainGrid] = {}
        self.cost_cache = TerrainCostCache()

        self._print_status()

    def _print_status(self):
        """Print current configuration status."""
        print(f"[Terrain] Map folder: {self.terrain_folder}")
        print(f"[Terrain] Demo mode: {self.use_demo_mode}")
        print(f"[Terrain] Map server: {self.terrain_url or 'not set'}")
        print(f"[Terrain] Local maps: {len(self.list_maps())}")

    def list_maps(self) -> List[str]:
        """Names of the map files in the map folder."""
        if not self.terrain_folder.exists():
            return []
        return sorted(path.stem for path in self.terrain_folder.glob(f"*{MAP_SUFFIX}"))

    async def get_grid(self, name: str) -> Optional[TerrainGrid]:
        """Find a map by name, None when no source has it."""
        validate_map_name(name)
        if name in self.grid_cache:
            return self.grid_cache[name]

        grid = self.load_local(name)
        source_used = "local"

        if grid is None and self.terrain_url:
            grid = await self.fetch_remote(name)
            source_used = "remote"

        if grid is None and self.use_demo_mode:
            print(f"[Terrain] No map named {name!r}, using demo terrain")
            grid = self.demo_grid(name)
            source_used = "demo"

        if grid is None:
            return None

        summary = costs_summary(self.cost_cache.get_costs(grid))
        print(f"[Terrain] Loaded {name!r} from {source_used}: "
              f"{summary['open']} open, {summary['rough']} swamp, {summary['blocked']} wall cells")
        self.grid_cache[name] = grid
        return grid

    def load_local(self, name: str) -> Optional[TerrainGrid]:
        """Read a map file from the map folder."""
        path = self.terrain_folder / f"{validate_map_name(name)}{MAP_SUFFIX}"
        if not path.exists():
            return None
        try:
            rows = path.read_text().splitlines()
            return TerrainGrid.from_rows(rows, name=name)
        except (OSError, ValueError) as e:
            print(f"[Terrain] Warning: Could not read {path}: {e}")
            return None

    def save_local(self, name: str, grid: TerrainGrid) -> Path:
        """Write a map file and replace any cached copy."""
        path = self.terrain_folder / f"{validate_map_name(name)}{MAP_SUFFIX}"
        self.terrain_folder.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(grid.to_rows()) + "\n")

        old = self.grid_cache.pop(name, None)
        if old is not None:
            self.cost_cache.invalidate(old)
        print(f"[Terrain] Saved {name!r} to {path}")
        return path

    async def fetch_remote(self, name: str) -> Optional[TerrainGrid]:
        """Fetch a map from the remote map server."""
        if not self.terrain_url:
            return None

        url = f"{self.terrain_url.rstrip('/')}/terrain/{name}"
        print(f"[Terrain] Fetching {url}")
        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.get(url)
            if response.status_code != 200:
                print(f"[Terrain] Error {response.status_code} from map server")
                return None
            data = response.json()
            grid = TerrainGrid.from_rows(data["rows"], name=name)
            grid.structures |= {Position(x, y) for x, y in data.get("structures", [])}
            return grid
        except httpx.TimeoutException:
            print(f"[Terrain] Timeout from map server")
            return None
        except httpx.HTTPError as e:
            print(f"[Terrain] Error from map server: {e}")
            return None
        except (KeyError, TypeError, ValueError) as e:
            print(f"[Terrain] Malformed map {name!r} from server: {e}")
            return None

    def demo_grid(self, name: str) -> TerrainGrid:
        """
        Generate synthetic terrain for demo/testing.

        Smoothed noise thresholded into walls and swamp, seeded from the
        name so the same name always gives the same map.
        """
        rng = np.random.default_rng(zlib.crc32(name.encode("utf-8")))
        noise = gaussian_filter(rng.standard_normal((GRID_SIZE, GRID_SIZE)), sigma=2.5)
        noise = (noise - noise.mean()) / (noise.std() or 1.0)

        terrain = np.full((GRID_SIZE, GRID_SIZE), Terrain.OPEN, dtype=np.uint8)
        terrain[noise > 1.2] = Terrain.BLOCKED  # ~10% walls, in clumps
        terrain[noise < -1.0] = Terrain.ROUGH   # ~15% swamp

        # Scattered structures on open ground
        candidates = np.argwhere(terrain == Terrain.OPEN)
        picks = rng.choice(len(candidates), size=min(8, len(candidates)), replace=False)
        structures = {Position(int(candidates[i][1]), int(candidates[i][0])) for i in picks}

        return TerrainGrid(terrain=terrain, structures=structures, name=name)


# For testing
if __name__ == "__main__":
    import asyncio

    service = TerrainService()
    grid = asyncio.run(service.get_grid("demo"))
    if grid is not None:
        print("\n".join(grid.to_rows()))
