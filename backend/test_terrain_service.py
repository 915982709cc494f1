"""Tests for terrain map loading: local files, remote server, demo terrain."""

import asyncio

import httpx
import numpy as np
import pytest

from gridsearch.terrain import Terrain, TerrainGrid
from gridsearch.terrain_service import TerrainService, validate_map_name


def map_rows(wall=(10, 10)):
    rows = [["."] * 50 for _ in range(50)]
    rows[wall[1]][wall[0]] = "#"
    rows[3][4] = "@"
    return ["".join(row) for row in rows]


@pytest.fixture
def no_env(monkeypatch):
    for var in ("TERRAIN_DIR", "TERRAIN_SERVER_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DEMO_MODE", "false")


def test_validate_map_name():
    assert validate_map_name("room_W1N1-b") == "room_W1N1-b"
    for name in ("", "../secret", "a b", "x" * 65):
        with pytest.raises(ValueError):
            validate_map_name(name)


def test_local_maps(tmp_path, no_env):
    (tmp_path / "arena.txt").write_text("\n".join(map_rows()) + "\n")
    (tmp_path / "notes.md").write_text("not a map")
    service = TerrainService(terrain_folder=str(tmp_path))

    assert service.list_maps() == ["arena"]
    grid = asyncio.run(service.get_grid("arena"))
    assert grid.get(10, 10) == Terrain.BLOCKED
    assert grid.has_structure((4, 3))
    assert asyncio.run(service.get_grid("arena")) is grid


def test_terrain_dir_from_env(tmp_path, no_env, monkeypatch):
    monkeypatch.setenv("TERRAIN_DIR", str(tmp_path))
    (tmp_path / "env_map.txt").write_text("\n".join(map_rows()))
    assert TerrainService().list_maps() == ["env_map"]


def test_missing_folder_lists_nothing(tmp_path, no_env):
    service = TerrainService(terrain_folder=str(tmp_path / "missing"))
    assert service.list_maps() == []
    assert asyncio.run(service.get_grid("anything")) is None


def test_malformed_local_map_is_skipped(tmp_path, no_env, capsys):
    (tmp_path / "broken.txt").write_text("...\n")
    service = TerrainService(terrain_folder=str(tmp_path))
    assert service.load_local("broken") is None
    assert "[Terrain] Warning" in capsys.readouterr().out


def test_invalid_name_rejected(tmp_path, no_env):
    service = TerrainService(terrain_folder=str(tmp_path))
    with pytest.raises(ValueError):
        asyncio.run(service.get_grid("../etc/passwd"))


def test_save_replaces_cached_map(tmp_path, no_env):
    service = TerrainService(terrain_folder=str(tmp_path / "maps"))
    first = TerrainGrid.from_rows(map_rows(wall=(1, 1)), name="saved")
    service.save_local("saved", first)
    loaded = asyncio.run(service.get_grid("saved"))
    assert loaded.get(1, 1) == Terrain.BLOCKED
    costs = service.cost_cache.get_costs(loaded)

    service.save_local("saved", TerrainGrid.from_rows(map_rows(wall=(2, 2)), name="saved"))
    reloaded = asyncio.run(service.get_grid("saved"))
    assert reloaded is not loaded
    assert reloaded.get(1, 1) == Terrain.OPEN
    assert reloaded.get(2, 2) == Terrain.BLOCKED
    assert service.cost_cache.get_costs(reloaded) is not costs
    assert (tmp_path / "maps" / "saved.txt").read_text().splitlines() == map_rows(wall=(2, 2))


def test_demo_terrain_is_deterministic(tmp_path, no_env, monkeypatch):
    monkeypatch.setenv("DEMO_MODE", "true")
    service = TerrainService(terrain_folder=str(tmp_path))
    first = service.demo_grid("demo")
    second = service.demo_grid("demo")
    other = service.demo_grid("other")

    assert np.array_equal(first.terrain, second.terrain)
    assert first.structures == second.structures
    assert not np.array_equal(first.terrain, other.terrain)
    assert len(first.structures) == 8
    assert all(first.get(x, y) == Terrain.OPEN for x, y in first.structures)
    assert (first.terrain == Terrain.BLOCKED).any()
    assert (first.terrain == Terrain.OPEN).sum() > 1250

    grid = asyncio.run(service.get_grid("demo"))
    assert np.array_equal(grid.terrain, first.terrain)


def remote_service(tmp_path, monkeypatch, handler):
    monkeypatch.setenv("TERRAIN_SERVER_URL", "http://maps.test/")
    return TerrainService(terrain_folder=str(tmp_path), transport=httpx.MockTransport(handler))


def test_remote_map(tmp_path, no_env, monkeypatch):
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, json={"rows": map_rows(wall=(7, 8)), "structures": [[1, 2]]})

    service = remote_service(tmp_path, monkeypatch, handler)
    grid = asyncio.run(service.get_grid("remote"))
    assert requested == ["http://maps.test/terrain/remote"]
    assert grid.get(7, 8) == Terrain.BLOCKED
    assert grid.has_structure((1, 2))
    assert grid.has_structure((4, 3))


def test_local_map_wins_over_remote(tmp_path, no_env, monkeypatch):
    (tmp_path / "both.txt").write_text("\n".join(map_rows(wall=(5, 5))))

    def handler(request):
        raise AssertionError("remote server should not be asked")

    service = remote_service(tmp_path, monkeypatch, handler)
    assert asyncio.run(service.get_grid("both")).get(5, 5) == Terrain.BLOCKED


@pytest.mark.parametrize("handler", [
    lambda request: httpx.Response(404, json={"detail": "missing"}),
    lambda request: httpx.Response(200, json={"rows": ["..."]}),
    lambda request: httpx.Response(200, json={"tiles": []}),
])
def test_remote_failures_return_none(tmp_path, no_env, monkeypatch, handler):
    service = remote_service(tmp_path, monkeypatch, handler)
    assert asyncio.run(service.get_grid("gone")) is None


def test_remote_timeout(tmp_path, no_env, monkeypatch, capsys):
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    service = remote_service(tmp_path, monkeypatch, handler)
    assert asyncio.run(service.fetch_remote("slow")) is None
    assert "Timeout" in capsys.readouterr().out


def test_remote_failure_falls_back_to_demo(tmp_path, no_env, monkeypatch):
    monkeypatch.setenv("DEMO_MODE", "true")

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    service = remote_service(tmp_path, monkeypatch, handler)
    grid = asyncio.run(service.get_grid("fallback"))
    assert np.array_equal(grid.terrain, service.demo_grid("fallback").terrain)


def test_bundled_map(no_env):
    from gridsearch.searcher import Searcher

    service = TerrainService()
    assert "crossing" in service.list_maps()
    grid = asyncio.run(service.get_grid("crossing"))
    assert grid.get(24, 0) == Terrain.BLOCKED
    assert grid.get(24, 10) == Terrain.OPEN

    # The only ways through the centre wall are the gaps at y=10 and y=39
    searcher = Searcher(grid, (20, 12), (28, 12), cost_cache=service.cost_cache)
    path = searcher.find_single_path()
    assert path is not None
    assert any(step.position in ((24, 10), (24, 39)) for step in path)
