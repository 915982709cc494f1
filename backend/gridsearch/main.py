"""
Grid Searcher - Backend API
Weighted 8-direction grid pathfinding with forced-neighbor pruning
"""

import os
from pathlib import Path

# Load .env file from backend folder
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Literal, Optional, List

from .paths import PathStep, reverse_path
from .searcher import SearchConfig, Searcher
from .terrain import MIN_STEP_COST, TerrainGrid, find_adjacent_free_spaces
from .terrain_service import TerrainService, validate_map_name

app = FastAPI(
    title="Grid Searcher",
    description="Minimum-cost routes on 50x50 weighted terrain grids",
    version="0.1.0"
)

# CORS for frontend
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Services
terrain_service = TerrainService()
search_verbose = os.getenv("SEARCH_VERBOSE", "false").lower() == "true"

# Shared all-open map used when a request names no terrain
OPEN_GRID = TerrainGrid.open(name="open")


class Point(BaseModel):
    x: int
    y: int


class PathStepModel(BaseModel):
    """One unit move: destination cell, offset, and direction constant (1=TOP .. 8=TOP_LEFT)"""
    x: int
    y: int
    dx: int
    dy: int
    direction: int = Field(ge=1, le=8)


class PathRequest(BaseModel):
    # Terrain: inline rows, a named map, or neither for an all-open grid
    terrain: Optional[List[str]] = None
    terrain_name: Optional[str] = None
    source: Point
    target: Point
    target_range: int = Field(default=0, ge=0)  # Chebyshev goal radius
    avoid: List[Point] = []  # Cells treated as walls for this request only
    mode: Literal["single", "all", "length"] = "single"
    exclude_border: bool = False  # Treat the outermost ring as off-grid


class PathResponse(BaseModel):
    success: bool
    message: str
    paths: List[List[PathStepModel]] = []
    length: Optional[float] = None  # Goal cost in open-terrain steps
    stats: Optional[dict] = None


class ReverseRequest(BaseModel):
    path: List[PathStepModel]


class TerrainUpload(BaseModel):
    rows: List[str]


def _to_step(model: PathStepModel) -> PathStep:
    return PathStep.from_dict(model.model_dump())


async def _resolve_grid(terrain: Optional[List[str]], terrain_name: Optional[str]) -> TerrainGrid:
    """Inline rows win over a map name; neither means the open grid."""
    if terrain is not None:
        try:
            return TerrainGrid.from_rows(terrain, name="inline")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid terrain: {e}")

    if terrain_name is not None:
        try:
            grid = await terrain_service.get_grid(terrain_name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if grid is None:
            raise HTTPException(status_code=404, detail=f"Unknown terrain map {terrain_name!r}")
        return grid

    return OPEN_GRID


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/api/terrain")
async def list_terrain():
    """Names of the local terrain maps."""
    return {"maps": terrain_service.list_maps()}


@app.get("/api/terrain/{name}")
async def get_terrain(name: str):
    grid = await _resolve_grid(None, name)
    return {
        "name": name,
        "rows": grid.to_rows(),
        "structures": sorted([p.x, p.y] for p in grid.structures),
    }


@app.put("/api/terrain/{name}")
async def put_terrain(name: str, upload: TerrainUpload):
    """Store a terrain map in the local map folder."""
    try:
        validate_map_name(name)
        grid = TerrainGrid.from_rows(upload.rows, name=name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    terrain_service.save_local(name, grid)
    return {"name": name, "saved": True}


@app.get("/api/terrain/{name}/free-spaces")
async def get_free_spaces(name: str, x: int, y: int):
    """Free cells (no wall, no structure) around a position."""
    grid = await _resolve_grid(None, name)
    spaces = find_adjacent_free_spaces(grid, (x, y))
    return {"x": x, "y": y, "free_spaces": [{"x": p.x, "y": p.y} for p in spaces]}


def _run_search(request: PathRequest, grid: TerrainGrid) -> PathResponse:
    """CPU-bound part of /api/path, run off the event loop."""
    config = SearchConfig(
        target_range=request.target_range,
        exclude_border=request.exclude_border,
        verbose=search_verbose
    )
    searcher = Searcher(
        grid,
        (request.source.x, request.source.y),
        (request.target.x, request.target.y),
        config=config,
        cost_cache=terrain_service.cost_cache
    ).avoiding_positions([(p.x, p.y) for p in request.avoid])

    paths: List[List[PathStep]] = []
    length: Optional[float] = None

    if request.mode == "single":
        path = searcher.find_single_path()
        if path is not None:
            paths = [path]
    elif request.mode == "all":
        paths = searcher.find_all_paths()
    else:
        length = searcher.find_path_length()

    if searcher.stats.goal_cost is not None:
        length = searcher.stats.goal_cost / MIN_STEP_COST

    stats = searcher.stats.to_dict()
    if length is None:
        return PathResponse(success=False, message="No path found", stats=stats)

    return PathResponse(
        success=True,
        message=f"Found {len(paths)} path(s) of length {length:g}" if paths else f"Path length {length:g}",
        paths=[[PathStepModel(**step.to_dict()) for step in path] for path in paths],
        length=length,
        stats=stats
    )


@app.post("/api/path", response_model=PathResponse)
async def find_path(request: PathRequest):
    """Search for a route between two cells."""
    try:
        grid = await _resolve_grid(request.terrain, request.terrain_name)
        print(f"[API] {request.mode} path on {grid.name!r}: "
              f"({request.source.x}, {request.source.y}) -> ({request.target.x}, {request.target.y}), "
              f"range {request.target_range}, {len(request.avoid)} avoided")

        return await run_in_threadpool(_run_search, request, grid)

    except HTTPException:
        raise
    except Exception as e:
        import traceback
        traceback.print_exc()
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/path/reverse")
async def reverse(request: ReverseRequest):
    """The posted path walked from its last cell back to its starting cell."""
    reversed_steps = reverse_path([_to_step(step) for step in request.path])
    return {"path": [step.to_dict() for step in reversed_steps]}
