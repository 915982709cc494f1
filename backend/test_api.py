"""Tests for the HTTP API."""

import threading

import pytest
from fastapi.testclient import TestClient

from gridsearch import main
from gridsearch.terrain_service import TerrainService


def map_rows(walls=()):
    rows = [["."] * 50 for _ in range(50)]
    for x, y in walls:
        rows[y][x] = "#"
    return ["".join(row) for row in rows]


@pytest.fixture
def service(tmp_path, monkeypatch):
    monkeypatch.delenv("TERRAIN_SERVER_URL", raising=False)
    monkeypatch.setenv("DEMO_MODE", "false")
    service = TerrainService(terrain_folder=str(tmp_path))
    monkeypatch.setattr(main, "terrain_service", service)
    return service


@pytest.fixture
def client(service):
    return TestClient(main.app)


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_simple_path_on_open_grid(client):
    response = client.post("/api/path", json={
        "source": {"x": 23, "y": 14},
        "target": {"x": 33, "y": 19},
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"]
    assert body["length"] == 10.0
    [path] = body["paths"]
    assert [step["direction"] for step in path] == [4] * 5 + [3] * 5
    assert path[0] == {"x": 24, "y": 15, "dx": 1, "dy": 1, "direction": 4}
    assert body["stats"]["goal_cost"] == 20


def test_inline_terrain_with_avoid(client):
    response = client.post("/api/path", json={
        "terrain": map_rows(walls=[(21, 28)]),
        "source": {"x": 20, "y": 27},
        "target": {"x": 21, "y": 31},
        "avoid": [{"x": 21, "y": 29}],
    })
    body = response.json()
    assert body["success"]
    assert [step["direction"] for step in body["paths"][0]] == [5, 5, 4, 5]


def test_all_paths_within_range(client):
    response = client.post("/api/path", json={
        "terrain": map_rows(walls=[(29, 20)]),
        "source": {"x": 24, "y": 16},
        "target": {"x": 29, "y": 20},
        "target_range": 1,
        "mode": "all",
    })
    body = response.json()
    assert body["success"]
    assert len(body["paths"]) == 2
    assert body["length"] == 4.0


def test_length_only(client):
    response = client.post("/api/path", json={
        "source": {"x": 0, "y": 0},
        "target": {"x": 7, "y": 3},
        "mode": "length",
    })
    body = response.json()
    assert body["success"]
    assert body["paths"] == []
    assert body["length"] == 7.0


def test_no_path(client):
    ring = [(x, y) for x in range(8, 13) for y in range(8, 13) if x in (8, 12) or y in (8, 12)]
    response = client.post("/api/path", json={
        "terrain": map_rows(walls=ring),
        "source": {"x": 0, "y": 0},
        "target": {"x": 10, "y": 10},
    })
    assert response.status_code == 200
    body = response.json()
    assert not body["success"]
    assert body["message"] == "No path found"
    assert body["length"] is None
    assert body["stats"]["skipped_by_precheck"]


def test_named_terrain(client, service):
    (service.terrain_folder / "room.txt").write_text("\n".join(map_rows(walls=[(5, 5)])))
    assert client.get("/api/terrain").json() == {"maps": ["room"]}

    terrain = client.get("/api/terrain/room").json()
    assert terrain["rows"][5][5] == "#"
    assert terrain["structures"] == []

    response = client.post("/api/path", json={
        "terrain_name": "room",
        "source": {"x": 4, "y": 4},
        "target": {"x": 6, "y": 6},
    })
    assert response.json()["success"]
    assert response.json()["length"] == 3.0


def test_unknown_terrain(client):
    response = client.post("/api/path", json={
        "terrain_name": "nowhere",
        "source": {"x": 0, "y": 0},
        "target": {"x": 1, "y": 1},
    })
    assert response.status_code == 404
    assert client.get("/api/terrain/nowhere").status_code == 404
    assert client.get("/api/terrain/bad name").status_code == 400


def test_malformed_terrain(client):
    response = client.post("/api/path", json={
        "terrain": ["..."],
        "source": {"x": 0, "y": 0},
        "target": {"x": 1, "y": 1},
    })
    assert response.status_code == 400


def test_request_validation(client):
    response = client.post("/api/path", json={
        "source": {"x": 0, "y": 0},
        "target": {"x": 1, "y": 1},
        "target_range": -1,
    })
    assert response.status_code == 422
    response = client.post("/api/path", json={
        "source": {"x": 0, "y": 0},
        "target": {"x": 1, "y": 1},
        "mode": "fastest",
    })
    assert response.status_code == 422


def test_put_terrain(client, service):
    rows = map_rows(walls=[(2, 3)])
    response = client.put("/api/terrain/uploaded", json={"rows": rows})
    assert response.json() == {"name": "uploaded", "saved": True}
    assert service.list_maps() == ["uploaded"]
    assert client.get("/api/terrain/uploaded").json()["rows"] == rows

    assert client.put("/api/terrain/uploaded", json={"rows": rows[:10]}).status_code == 400


def test_free_spaces(client, service):
    (service.terrain_folder / "spaces.txt").write_text("\n".join(map_rows(walls=[(1, 0)])))
    response = client.get("/api/terrain/spaces/free-spaces", params={"x": 0, "y": 0})
    assert response.json()["free_spaces"] == [{"x": 1, "y": 1}, {"x": 0, "y": 1}]


def test_reverse(client):
    path = [
        {"x": 11, "y": 11, "dx": 1, "dy": 1, "direction": 4},
        {"x": 12, "y": 11, "dx": 1, "dy": 0, "direction": 3},
    ]
    response = client.post("/api/path/reverse", json={"path": path})
    assert response.json()["path"] == [
        {"x": 11, "y": 11, "dx": -1, "dy": 0, "direction": 7},
        {"x": 10, "y": 10, "dx": -1, "dy": -1, "direction": 8},
    ]
    bad = client.post("/api/path/reverse", json={"path": [dict(path[0], direction=9)]})
    assert bad.status_code == 422


def test_search_runs_off_the_event_loop(client, monkeypatch):
    threads = {}
    resolve_grid = main._resolve_grid
    find_single_path = main.Searcher.find_single_path

    async def recording_resolve(terrain, terrain_name):
        threads["loop"] = threading.get_ident()
        return await resolve_grid(terrain, terrain_name)

    def recording_search(searcher):
        threads["search"] = threading.get_ident()
        return find_single_path(searcher)

    monkeypatch.setattr(main, "_resolve_grid", recording_resolve)
    monkeypatch.setattr(main.Searcher, "find_single_path", recording_search)

    response = client.post("/api/path", json={
        "source": {"x": 1, "y": 1},
        "target": {"x": 4, "y": 1},
    })
    assert response.json()["length"] == 3.0
    assert threads["search"] != threads["loop"]
