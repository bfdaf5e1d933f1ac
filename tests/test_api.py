from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from fragstats.api import create_app
from fragstats.config import Settings, WeaponPolicy
from fragstats.persistence import StatsStore


LOG = """\
L 02/09/2026 - 12:00:00: Loading map "de_dust2"
L 02/09/2026 - 12:34:56: "Player1<123><STEAM_1:0:12345><CT>" killed "Player2<456><STEAM_1:0:67890><TERRORIST>" with "ak47" (headshot)
L 02/09/2026 - 12:35:10: "Player2<456><STEAM_1:0:67890><TERRORIST>" say "nice shot"
Invalid log format
L 02/09/2026 - 12:36:00: "Player3<789><STEAM_1:1:11111><CT>" killed "Player2<456><STEAM_1:0:67890><TERRORIST>" with "awp"
"""


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def client(tmp_path: Path):
    settings = Settings(db_path=tmp_path / "stats.sqlite", weapon_policy=WeaponPolicy.LENIENT)
    store = StatsStore(settings.db_path)
    store.create_game("css", "Counter-Strike: Source")
    store.create_server(game_code="css", name="Main", address="10.0.0.1")
    app = create_app(store=store, settings=settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        async_client.app = app
        yield async_client


async def _ingest_sample(client: AsyncClient) -> dict:
    resp = await client.post("/api/servers/1/log", content=LOG, headers={"Content-Type": "text/plain"})
    assert resp.status_code == 200
    return resp.json()


@pytest.mark.anyio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"


@pytest.mark.anyio
async def test_metrics_counts(client):
    await _ingest_sample(client)

    resp = await client.get("/metrics")

    assert resp.status_code == 200
    assert resp.json()["database"] == {"total_players": 3, "total_frags": 2, "total_servers": 1}


@pytest.mark.anyio
async def test_log_upload_report(client):
    report = await _ingest_sample(client)

    assert report["lines_read"] == 5
    assert report["unparsed_lines"] == 1
    assert report["kills_processed"] == 2
    assert report["events_by_type"] == {"map_change": 1, "kill": 2, "chat": 1}
    assert report["failures"] == []


@pytest.mark.anyio
async def test_log_upload_unknown_server(client):
    resp = await client.post("/api/servers/99/log", content=LOG)

    assert resp.status_code == 404


@pytest.mark.anyio
async def test_rankings(client):
    await _ingest_sample(client)

    resp = await client.get("/api/players/rankings", params={"game": "css"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert [player["rank"] for player in body["players"]] == [1, 2, 3]
    top = body["players"][0]
    assert top["name"] == "Player1"
    assert top["skill"] == pytest.approx(1020.0)
    assert top["headshots"] == 1
    assert body["players"][-1]["name"] == "Player2"
    assert body["players"][-1]["deaths"] == 2


@pytest.mark.anyio
async def test_rankings_validation(client):
    assert (await client.get("/api/players/rankings", params={"game": "tf2"})).status_code == 404
    assert (await client.get("/api/players/rankings")).status_code == 422
    resp = await client.get("/api/players/rankings", params={"game": "css", "per_page": 500})
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_player_search_and_profile(client):
    await _ingest_sample(client)

    assert (await client.get("/api/players/search", params={"q": "Pl"})).status_code == 422
    resp = await client.get("/api/players/search", params={"q": "Player1"})
    assert resp.status_code == 200
    matches = resp.json()
    assert [player["name"] for player in matches] == ["Player1"]

    resp = await client.get(f"/api/players/{matches[0]['id']}")
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["headshot_percentage"] == 100.0
    assert profile["weapon_stats"] == [{"weapon": "ak47", "kills": 1}]
    assert profile["recent_kills"][0]["victim"] == "Player2"
    assert profile["recent_kills"][0]["map"] == "de_dust2"

    assert (await client.get("/api/players/999")).status_code == 404


@pytest.mark.anyio
async def test_weapon_and_map_statistics(client):
    await _ingest_sample(client)

    weapons = (await client.get("/api/weapons/statistics", params={"game": "css"})).json()
    maps = (await client.get("/api/maps/statistics", params={"game": "css"})).json()

    assert {item["code"]: item["kills"] for item in weapons} == {"ak47": 1, "awp": 1}
    assert maps == [{"map": "de_dust2", "kills": 2}]


@pytest.mark.anyio
async def test_servers(client):
    resp = await client.get("/api/servers", params={"game": "css", "online": True})
    assert resp.json() == []

    await _ingest_sample(client)

    online = (await client.get("/api/servers", params={"game": "css", "online": True})).json()
    assert [server["name"] for server in online] == ["Main"]
    assert online[0]["online"] is True
    assert online[0]["map"] == "de_dust2"

    assert (await client.get("/api/servers/1")).json()["name"] == "Main"
    assert (await client.get("/api/servers/5")).status_code == 404


@pytest.mark.anyio
async def test_frags_and_killfeed(client):
    await _ingest_sample(client)

    frags = (await client.get("/api/frags")).json()
    assert [frag["weapon"] for frag in frags] == ["awp", "ak47"]
    assert frags[1]["killer"]["name"] == "Player1"
    assert frags[1]["server"] == "Main"

    feed = (await client.get("/api/killfeed", params={"game": "css"})).json()
    assert [item["weapon"] for item in feed] == ["awp", "ak47"]
    assert feed[1]["headshot"] is True
    assert (await client.get("/api/killfeed", params={"game": "tf2"})).json() == []


@pytest.mark.anyio
async def test_kill_event_endpoint(client):
    payload = {
        "type": "kill",
        "server_id": 1,
        "killer": {"steam_id": "STEAM_1:0:1", "name": "Alice"},
        "victim": {"steam_id": "STEAM_1:0:2", "name": "Bob"},
        "weapon": "ak47",
        "headshot": True,
        "map": "de_nuke",
        "timestamp": "2026-02-09T12:34:56",
    }

    resp = await client.post("/api/events/kill", json=payload)

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "processed"
    assert body["killer_rating"] == pytest.approx(1020.0)
    assert body["victim_rating"] == pytest.approx(984.0)
    assert body["frag"]["map"] == "de_nuke"


@pytest.mark.anyio
async def test_kill_event_errors(client):
    base = {
        "type": "kill",
        "server_id": 1,
        "killer": {"steam_id": "STEAM_1:0:1"},
        "victim": {"steam_id": "STEAM_1:0:2"},
        "weapon": "ak47",
        "timestamp": "2026-02-09T12:34:56",
    }

    ignored = await client.post("/api/events/kill", json={"type": "chat", "message": "hi"})
    assert ignored.json() == {"status": "ignored"}

    invalid = await client.post("/api/events/kill", json={**base, "weapon": ""})
    assert invalid.status_code == 422

    missing = await client.post("/api/events/kill", json={**base, "server_id": 42})
    assert missing.status_code == 404

    client.app.state.pipeline.weapon_policy = WeaponPolicy.STRICT
    conflict = await client.post("/api/events/kill", json={**base, "weapon": "spork"})
    assert conflict.status_code == 409

    assert (await client.get("/metrics")).json()["database"]["total_frags"] == 0


@pytest.mark.anyio
async def test_dashboard(client):
    await _ingest_sample(client)

    resp = await client.get("/ui")

    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "Player1" in resp.text
    assert "de_dust2" in resp.text
    assert (await client.get("/ui", params={"game": "tf2"})).status_code == 404
