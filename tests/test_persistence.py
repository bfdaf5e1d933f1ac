import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from fragstats.persistence import ServerRecord, StatsStore


@pytest.fixture()
def store(tmp_path: Path) -> StatsStore:
    store = StatsStore(tmp_path / "stats.sqlite")
    store.create_game("css", "Counter-Strike: Source")
    return store


def _add_player(store: StatsStore, steam_id: str, name: str, skill: float = 1000.0, **counters):
    with store.transaction() as session:
        return session.create_player(steam_id=steam_id, name=name, game_code="css", skill=skill, **counters)


def test_schema_is_created_and_ping_works(tmp_path: Path):
    db_path = tmp_path / "nested" / "stats.sqlite"
    store = StatsStore(db_path)

    store.ping()
    assert db_path.exists()
    assert store.counts() == {"total_players": 0, "total_frags": 0, "total_servers": 0}


def test_create_server_defaults(store: StatsStore):
    server = store.create_server(game_code="css", name="Main", address="10.0.0.1")

    assert server.port == 27015
    assert server.enabled is True
    assert server.map is None
    assert server.last_activity is None
    assert store.get_server(server.server_id) == server


def test_create_player_uses_explicit_values(store: StatsStore):
    player = _add_player(store, "STEAM_1:0:1", "Alice", skill=1200.0)

    assert player.skill == 1200.0
    assert (player.kills, player.deaths, player.headshots) == (0, 0, 0)
    assert store.find_player_by_steam_id("STEAM_1:0:1") == player


def test_transaction_rolls_back_on_error(store: StatsStore):
    with pytest.raises(RuntimeError):
        with store.transaction() as session:
            session.create_player(steam_id="STEAM_1:0:9", name="Ghost", game_code="css", skill=1000.0)
            raise RuntimeError("boom")

    assert store.find_player_by_steam_id("STEAM_1:0:9") is None


def test_increment_counters_and_rating(store: StatsStore):
    player = _add_player(store, "STEAM_1:0:1", "Alice")
    when = datetime(2026, 2, 9, 12, 0, 0)
    with store.transaction() as session:
        session.increment_player_counters(player.player_id, kills=1, headshots=1, last_event=when)
        session.increment_player_counters(player.player_id, deaths=1)
        session.update_player_rating(player.player_id, 1020.0)

    updated = store.get_player(player.player_id)
    assert (updated.kills, updated.deaths, updated.headshots) == (1, 1, 1)
    assert updated.skill == 1020.0
    assert updated.last_event == when


def test_upsert_weapon_replaces_existing(store: StatsStore):
    store.upsert_weapon(game_code="css", code="awp", name="AWP", modifier=1.0)
    weapon = store.upsert_weapon(game_code="css", code="awp", name="Magnum", modifier=0.8)

    assert weapon.name == "Magnum"
    assert weapon.modifier == 0.8
    assert store.find_weapon("css", "awp") == weapon
    assert store.find_weapon("tf2", "awp") is None


def test_rankings_order_and_hidden_players(store: StatsStore):
    alice = _add_player(store, "STEAM_1:0:1", "Alice", skill=1100.0)
    bob = _add_player(store, "STEAM_1:0:2", "Bob", skill=1200.0)
    carol = _add_player(store, "STEAM_1:0:3", "Carol", skill=1300.0)
    store.set_hide_ranking(carol.player_id, True)

    ranked = store.list_rankings("css")

    assert [player.player_id for player in ranked] == [bob.player_id, alice.player_id]
    assert store.count_ranked_players("css") == 2
    assert store.list_rankings("css", limit=1, offset=1)[0].player_id == alice.player_id


def test_search_players_matches_substring(store: StatsStore):
    _add_player(store, "STEAM_1:0:1", "SniperWolf")
    _add_player(store, "STEAM_1:0:2", "Rifleman")

    found = store.search_players("wolf")

    assert [player.name for player in found] == ["SniperWolf"]


def test_frag_queries(store: StatsStore):
    server = store.create_server(game_code="css", name="Main", address="10.0.0.1")
    alice = _add_player(store, "STEAM_1:0:1", "Alice")
    bob = _add_player(store, "STEAM_1:0:2", "Bob")
    store.upsert_weapon(game_code="css", code="ak47", name="AK-47", modifier=1.0)
    now = datetime(2026, 2, 9, 12, 0, 0)
    with store.transaction() as session:
        session.create_frag(
            server_id=server.server_id,
            killer_id=alice.player_id,
            victim_id=bob.player_id,
            weapon_code="ak47",
            headshot=True,
            map="de_dust2",
            event_time=now,
            position=(1, 2, 3),
        )
        session.create_frag(
            server_id=server.server_id,
            killer_id=bob.player_id,
            victim_id=alice.player_id,
            weapon_code="ak47",
            headshot=False,
            map="de_inferno",
            event_time=now - timedelta(days=30),
            position=None,
        )

    frags = store.list_frags()
    assert len(frags) == 2
    assert frags[0].killer_name == "Alice"
    assert frags[0].victim_name == "Bob"
    assert frags[0].server_name == "Main"
    assert (frags[0].pos_x, frags[0].pos_y, frags[0].pos_z) == (1, 2, 3)
    assert frags[1].pos_x is None

    recent = store.recent_frags(days=7, now=now + timedelta(hours=1))
    assert [frag.map for frag in recent] == ["de_dust2"]

    usage = store.weapon_statistics("css")
    assert len(usage) == 1
    assert (usage[0].code, usage[0].kills, usage[0].headshots) == ("ak47", 2, 1)
    assert usage[0].headshot_percentage == 50.0

    assert store.map_statistics("css") == [("de_dust2", 1), ("de_inferno", 1)]
    assert store.player_weapon_stats(alice.player_id) == [("ak47", 1)]
    assert [frag.victim_name for frag in store.player_recent_kills(alice.player_id)] == ["Bob"]


def test_update_server_map_keeps_map_when_none(store: StatsStore):
    server = store.create_server(game_code="css", name="Main", address="10.0.0.1", map="de_dust2")
    with store.transaction() as session:
        session.update_server_map(server.server_id, None)

    updated = store.get_server(server.server_id)
    assert updated.map == "de_dust2"
    assert updated.last_activity is not None


def test_online_servers_filter(store: StatsStore):
    active = store.create_server(game_code="css", name="Active", address="10.0.0.1")
    store.create_server(game_code="css", name="Idle", address="10.0.0.2")
    with store.transaction() as session:
        session.update_server_map(active.server_id, "de_nuke")

    online = store.list_servers(game_code="css", online_minutes=5)
    everything = store.list_servers(game_code="css")

    assert [server.name for server in online] == ["Active"]
    assert len(everything) == 2


def test_server_is_online_window():
    now = datetime(2026, 2, 9, 12, 0, 0, tzinfo=timezone.utc)
    server = ServerRecord(
        server_id=1,
        game_code="css",
        name="Main",
        address="10.0.0.1",
        port=27015,
        public_address=None,
        enabled=True,
        map=None,
        last_activity=now - timedelta(minutes=3),
    )

    assert server.is_online(minutes=5, now=now)
    assert not server.is_online(minutes=2, now=now)


def test_kd_ratio_handles_zero_deaths(store: StatsStore):
    player = _add_player(store, "STEAM_1:0:1", "Alice", kills=7, deaths=0, headshots=2)
    assert player.kd_ratio == 7.0

    other = _add_player(store, "STEAM_1:0:2", "Bob", kills=10, deaths=3)
    assert other.kd_ratio == 3.33


def test_upsert_negative_modifier_warns(store: StatsStore, caplog):
    with caplog.at_level(logging.WARNING, logger="fragstats.rating.skill"):
        weapon = store.upsert_weapon(game_code="css", code="teamkill", name="Team Kill", modifier=-1.0)

    assert weapon.modifier == -1.0
    assert "teamkill" in caplog.text
