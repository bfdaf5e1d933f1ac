"""Persistence layer for players, weapons, servers and frags."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from fragstats.rating import check_weapon_modifier


@dataclass
class GameRecord:
    code: str
    name: str
    enabled: bool


@dataclass
class ServerRecord:
    server_id: int
    game_code: str
    name: str
    address: str
    port: int
    public_address: Optional[str]
    enabled: bool
    map: Optional[str]
    last_activity: Optional[datetime]

    def is_online(self, *, minutes: int = 5, now: Optional[datetime] = None) -> bool:
        if self.last_activity is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.last_activity > now - timedelta(minutes=minutes)


@dataclass
class PlayerRecord:
    player_id: int
    game_code: str
    steam_id: str
    name: str
    skill: float
    kills: int
    deaths: int
    headshots: int
    hide_ranking: bool
    last_event: Optional[datetime]

    @property
    def kd_ratio(self) -> float:
        if self.deaths == 0:
            return float(self.kills)
        return round(self.kills / self.deaths, 2)

    @property
    def headshot_percentage(self) -> float:
        if self.kills == 0:
            return 0.0
        return round(self.headshots / self.kills * 100.0, 1)


@dataclass
class WeaponRecord:
    game_code: str
    code: str
    name: str
    modifier: float
    enabled: bool


@dataclass
class FragRecord:
    frag_id: int
    server_id: Optional[int]
    killer_id: int
    victim_id: int
    weapon_code: str
    headshot: bool
    map: str
    event_time: datetime
    pos_x: Optional[int] = None
    pos_y: Optional[int] = None
    pos_z: Optional[int] = None
    killer_name: Optional[str] = None
    victim_name: Optional[str] = None
    server_name: Optional[str] = None


@dataclass
class WeaponUsage:
    code: str
    name: str
    kills: int
    headshots: int

    @property
    def headshot_percentage(self) -> float:
        if self.kills == 0:
            return 0.0
        return round(self.headshots / self.kills * 100.0, 1)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_server(row: sqlite3.Row) -> ServerRecord:
    return ServerRecord(
        server_id=row["id"],
        game_code=row["game_code"],
        name=row["name"],
        address=row["address"],
        port=row["port"],
        public_address=row["public_address"],
        enabled=bool(row["enabled"]),
        map=row["map"],
        last_activity=_parse_ts(row["last_activity"]),
    )


def _row_to_player(row: sqlite3.Row) -> PlayerRecord:
    return PlayerRecord(
        player_id=row["id"],
        game_code=row["game_code"],
        steam_id=row["steam_id"],
        name=row["last_name"],
        skill=float(row["skill"]),
        kills=row["kills"],
        deaths=row["deaths"],
        headshots=row["headshots"],
        hide_ranking=bool(row["hide_ranking"]),
        last_event=_parse_ts(row["last_event"]),
    )


def _row_to_weapon(row: sqlite3.Row) -> WeaponRecord:
    return WeaponRecord(
        game_code=row["game_code"],
        code=row["code"],
        name=row["name"],
        modifier=float(row["modifier"]),
        enabled=bool(row["enabled"]),
    )


def _row_to_frag(row: sqlite3.Row) -> FragRecord:
    keys = row.keys()
    return FragRecord(
        frag_id=row["id"],
        server_id=row["server_id"],
        killer_id=row["killer_id"],
        victim_id=row["victim_id"],
        weapon_code=row["weapon_code"],
        headshot=bool(row["headshot"]),
        map=row["map"],
        event_time=datetime.fromisoformat(row["event_time"]),
        pos_x=row["pos_x"],
        pos_y=row["pos_y"],
        pos_z=row["pos_z"],
        killer_name=row["killer_name"] if "killer_name" in keys else None,
        victim_name=row["victim_name"] if "victim_name" in keys else None,
        server_name=row["server_name"] if "server_name" in keys else None,
    )


_FRAG_SELECT = """
    SELECT f.*, k.last_name AS killer_name, v.last_name AS victim_name, s.name AS server_name
    FROM event_frags f
    JOIN players k ON k.id = f.killer_id
    JOIN players v ON v.id = f.victim_id
    LEFT JOIN servers s ON s.id = f.server_id
"""


class StatsSession:
    """Repository operations bound to one open transaction."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_server(self, server_id: int) -> Optional[ServerRecord]:
        row = self.conn.execute("SELECT * FROM servers WHERE id = ?", (server_id,)).fetchone()
        return _row_to_server(row) if row else None

    def get_game(self, code: str) -> Optional[GameRecord]:
        row = self.conn.execute("SELECT * FROM games WHERE code = ?", (code,)).fetchone()
        if row is None:
            return None
        return GameRecord(code=row["code"], name=row["name"], enabled=bool(row["enabled"]))

    def find_player_by_steam_id(self, steam_id: str) -> Optional[PlayerRecord]:
        row = self.conn.execute("SELECT * FROM players WHERE steam_id = ?", (steam_id,)).fetchone()
        return _row_to_player(row) if row else None

    def create_player(
        self,
        *,
        steam_id: str,
        name: str,
        game_code: str,
        skill: float,
        kills: int = 0,
        deaths: int = 0,
        headshots: int = 0,
    ) -> PlayerRecord:
        now = datetime.now(timezone.utc).isoformat()
        self.conn.execute(
            """
            INSERT INTO players (
                game_code, steam_id, last_name, skill, kills, deaths, headshots,
                hide_ranking, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (game_code, steam_id, name, skill, kills, deaths, headshots, now, now),
        )
        player = self.find_player_by_steam_id(steam_id)
        if player is None:  # pragma: no cover
            raise KeyError(f"Player {steam_id} not found after insert")
        return player

    def find_weapon(self, game_code: str, code: str) -> Optional[WeaponRecord]:
        row = self.conn.execute(
            "SELECT * FROM weapons WHERE game_code = ? AND code = ?",
            (game_code, code),
        ).fetchone()
        return _row_to_weapon(row) if row else None

    def create_weapon(
        self,
        *,
        game_code: str,
        code: str,
        name: str,
        modifier: float,
        enabled: bool = True,
    ) -> WeaponRecord:
        self.conn.execute(
            "INSERT INTO weapons (game_code, code, name, modifier, enabled) VALUES (?, ?, ?, ?, ?)",
            (game_code, code, name, modifier, int(enabled)),
        )
        weapon = self.find_weapon(game_code, code)
        if weapon is None:  # pragma: no cover
            raise KeyError(f"Weapon {game_code}/{code} not found after insert")
        return weapon

    def upsert_weapon(
        self,
        *,
        game_code: str,
        code: str,
        name: str,
        modifier: float,
        enabled: bool = True,
    ) -> WeaponRecord:
        self.conn.execute(
            """
            INSERT INTO weapons (game_code, code, name, modifier, enabled) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (game_code, code) DO UPDATE SET
                name = excluded.name, modifier = excluded.modifier, enabled = excluded.enabled
            """,
            (game_code, code, name, modifier, int(enabled)),
        )
        weapon = self.find_weapon(game_code, code)
        if weapon is None:  # pragma: no cover
            raise KeyError(f"Weapon {game_code}/{code} not found after upsert")
        return weapon

    def create_frag(
        self,
        *,
        server_id: Optional[int],
        killer_id: int,
        victim_id: int,
        weapon_code: str,
        headshot: bool,
        map: str,
        event_time: datetime,
        position: Optional[Sequence[int]] = None,
    ) -> FragRecord:
        pos_x, pos_y, pos_z = tuple(position) if position else (None, None, None)
        cursor = self.conn.execute(
            """
            INSERT INTO event_frags (
                server_id, killer_id, victim_id, weapon_code, headshot, map,
                event_time, pos_x, pos_y, pos_z, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                server_id,
                killer_id,
                victim_id,
                weapon_code,
                int(headshot),
                map,
                event_time.isoformat(),
                pos_x,
                pos_y,
                pos_z,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        row = self.conn.execute(_FRAG_SELECT + " WHERE f.id = ?", (cursor.lastrowid,)).fetchone()
        if row is None:  # pragma: no cover
            raise KeyError(f"Frag {cursor.lastrowid} not found after insert")
        return _row_to_frag(row)

    def increment_player_counters(
        self,
        player_id: int,
        *,
        kills: int = 0,
        deaths: int = 0,
        headshots: int = 0,
        last_event: Optional[datetime] = None,
    ) -> None:
        self.conn.execute(
            """
            UPDATE players
            SET kills = kills + ?, deaths = deaths + ?, headshots = headshots + ?,
                last_event = COALESCE(?, last_event), updated_at = ?
            WHERE id = ?
            """,
            (
                kills,
                deaths,
                headshots,
                last_event.isoformat() if last_event else None,
                datetime.now(timezone.utc).isoformat(),
                player_id,
            ),
        )

    def update_player_rating(self, player_id: int, skill: float) -> None:
        self.conn.execute(
            "UPDATE players SET skill = ?, updated_at = ? WHERE id = ?",
            (skill, datetime.now(timezone.utc).isoformat(), player_id),
        )

    def update_server_map(self, server_id: int, map: Optional[str], *, activity_at: Optional[datetime] = None) -> None:
        activity_at = activity_at or datetime.now(timezone.utc)
        self.conn.execute(
            "UPDATE servers SET map = COALESCE(?, map), last_activity = ? WHERE id = ?",
            (map, activity_at.isoformat(), server_id),
        )


class StatsStore:
    """SQLite-backed store for game statistics."""

    def __init__(self, db_path: Path | str, *, timeout: float = 30.0):
        self._use_uri = isinstance(db_path, str) and db_path.startswith("file:")
        self.db_path: Path | str = db_path if self._use_uri else Path(db_path)
        self.timeout = timeout
        self._ensure_schema()

    def _open(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, uri=self._use_uri, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[StatsSession]:
        """Open a write transaction that holds the database lock until commit.

        ``BEGIN IMMEDIATE`` takes SQLite's reserved lock up front, so two
        workers touching the same player serialise their rating
        read-modify-write instead of losing an update. Any exception rolls
        back every write made through the session.
        """

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield StatsSession(conn)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS games (
                code TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1
            );
            CREATE TABLE IF NOT EXISTS servers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                game_code TEXT NOT NULL,
                name TEXT NOT NULL,
                address TEXT NOT NULL,
                port INTEGER NOT NULL DEFAULT 27015,
                public_address TEXT,
                enabled INTEGER NOT NULL DEFAULT 1,
                map TEXT,
                last_activity TEXT,
                created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS servers_game_code_index ON servers (game_code);
            CREATE TABLE IF NOT EXISTS players (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                game_code TEXT NOT NULL,
                steam_id TEXT NOT NULL UNIQUE,
                last_name TEXT NOT NULL,
                skill REAL NOT NULL,
                kills INTEGER NOT NULL DEFAULT 0,
                deaths INTEGER NOT NULL DEFAULT 0,
                headshots INTEGER NOT NULL DEFAULT 0,
                hide_ranking INTEGER NOT NULL DEFAULT 0,
                last_event TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS players_game_skill_hide_ranking_index
                ON players (game_code, skill, hide_ranking);
            CREATE TABLE IF NOT EXISTS weapons (
                game_code TEXT NOT NULL,
                code TEXT NOT NULL,
                name TEXT NOT NULL,
                modifier REAL NOT NULL DEFAULT 1.0,
                enabled INTEGER NOT NULL DEFAULT 1,
                PRIMARY KEY (game_code, code)
            );
            CREATE TABLE IF NOT EXISTS event_frags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                killer_id INTEGER NOT NULL REFERENCES players (id) ON DELETE CASCADE,
                victim_id INTEGER NOT NULL REFERENCES players (id) ON DELETE CASCADE,
                server_id INTEGER REFERENCES servers (id) ON DELETE CASCADE,
                weapon_code TEXT NOT NULL,
                headshot INTEGER NOT NULL DEFAULT 0,
                map TEXT NOT NULL,
                event_time TEXT NOT NULL,
                pos_x INTEGER,
                pos_y INTEGER,
                pos_z INTEGER,
                created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS event_frags_killer_index ON event_frags (killer_id, event_time);
            CREATE INDEX IF NOT EXISTS event_frags_victim_index ON event_frags (victim_id, event_time);
            CREATE INDEX IF NOT EXISTS event_frags_server_index ON event_frags (server_id, event_time);
            CREATE INDEX IF NOT EXISTS event_frags_map_index ON event_frags (map, event_time);
            """
        )

    def ping(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    # -- admin writes -----------------------------------------------------

    def create_game(self, code: str, name: str, *, enabled: bool = True) -> GameRecord:
        with self.transaction() as session:
            session.conn.execute(
                "INSERT INTO games (code, name, enabled) VALUES (?, ?, ?)",
                (code, name, int(enabled)),
            )
            game = session.get_game(code)
        if game is None:  # pragma: no cover
            raise KeyError(f"Game {code} not found after insert")
        return game

    def create_server(
        self,
        *,
        game_code: str,
        name: str,
        address: str,
        port: int = 27015,
        public_address: Optional[str] = None,
        map: Optional[str] = None,
        enabled: bool = True,
    ) -> ServerRecord:
        with self.transaction() as session:
            cursor = session.conn.execute(
                """
                INSERT INTO servers (
                    game_code, name, address, port, public_address, enabled, map, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    game_code,
                    name,
                    address,
                    port,
                    public_address,
                    int(enabled),
                    map,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            server = session.get_server(cursor.lastrowid)
        if server is None:  # pragma: no cover
            raise KeyError(f"Server {name} not found after insert")
        return server

    def upsert_weapon(self, *, game_code: str, code: str, name: str, modifier: float, enabled: bool = True) -> WeaponRecord:
        check_weapon_modifier(code, modifier)
        with self.transaction() as session:
            return session.upsert_weapon(
                game_code=game_code,
                code=code,
                name=name,
                modifier=modifier,
                enabled=enabled,
            )

    def set_hide_ranking(self, player_id: int, hidden: bool) -> None:
        with self.transaction() as session:
            session.conn.execute("UPDATE players SET hide_ranking = ? WHERE id = ?", (int(hidden), player_id))

    # -- reads ------------------------------------------------------------

    def get_game(self, code: str) -> Optional[GameRecord]:
        with self._connect() as conn:
            return StatsSession(conn).get_game(code)

    def list_games(self) -> List[GameRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM games ORDER BY code").fetchall()
        return [GameRecord(code=row["code"], name=row["name"], enabled=bool(row["enabled"])) for row in rows]

    def get_server(self, server_id: int) -> Optional[ServerRecord]:
        with self._connect() as conn:
            return StatsSession(conn).get_server(server_id)

    def list_servers(
        self,
        *,
        game_code: Optional[str] = None,
        online_minutes: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ServerRecord]:
        query = "SELECT * FROM servers WHERE enabled = 1"
        params: list[str | int] = []
        if game_code:
            query += " AND game_code = ?"
            params.append(game_code)
        if online_minutes is not None:
            cutoff = datetime.now(timezone.utc) - timedelta(minutes=online_minutes)
            query += " AND last_activity > ?"
            params.append(cutoff.isoformat())
        query += " ORDER BY name LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [_row_to_server(row) for row in rows]

    def get_player(self, player_id: int) -> Optional[PlayerRecord]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
        return _row_to_player(row) if row else None

    def find_player_by_steam_id(self, steam_id: str) -> Optional[PlayerRecord]:
        with self._connect() as conn:
            return StatsSession(conn).find_player_by_steam_id(steam_id)

    def find_weapon(self, game_code: str, code: str) -> Optional[WeaponRecord]:
        with self._connect() as conn:
            return StatsSession(conn).find_weapon(game_code, code)

    def list_rankings(self, game_code: str, *, limit: int = 20, offset: int = 0) -> List[PlayerRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM players
                WHERE game_code = ? AND hide_ranking = 0
                ORDER BY skill DESC, kills DESC, id ASC
                LIMIT ? OFFSET ?
                """,
                (game_code, limit, offset),
            ).fetchall()
        return [_row_to_player(row) for row in rows]

    def count_ranked_players(self, game_code: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM players WHERE game_code = ? AND hide_ranking = 0",
                (game_code,),
            ).fetchone()
        return int(row[0])

    def search_players(
        self,
        query: str,
        *,
        game_code: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[PlayerRecord]:
        sql = "SELECT * FROM players WHERE last_name LIKE ? AND hide_ranking = 0"
        params: list[str | int] = [f"%{query}%"]
        if game_code:
            sql += " AND game_code = ?"
            params.append(game_code)
        sql += " ORDER BY skill DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._connect() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [_row_to_player(row) for row in rows]

    def player_recent_kills(self, player_id: int, *, limit: int = 10) -> List[FragRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                _FRAG_SELECT + " WHERE f.killer_id = ? ORDER BY f.event_time DESC, f.id DESC LIMIT ?",
                (player_id, limit),
            ).fetchall()
        return [_row_to_frag(row) for row in rows]

    def player_weapon_stats(self, player_id: int) -> List[Tuple[str, int]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT weapon_code, COUNT(*) AS kills FROM event_frags
                WHERE killer_id = ?
                GROUP BY weapon_code
                ORDER BY kills DESC, weapon_code ASC
                """,
                (player_id,),
            ).fetchall()
        return [(row["weapon_code"], int(row["kills"])) for row in rows]

    def weapon_statistics(self, game_code: str, *, limit: int = 20, offset: int = 0) -> List[WeaponUsage]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT w.code, w.name,
                       COUNT(f.id) AS kills,
                       SUM(CASE WHEN f.headshot = 1 THEN 1 ELSE 0 END) AS headshots
                FROM weapons w
                LEFT JOIN event_frags f ON f.weapon_code = w.code
                LEFT JOIN servers s ON s.id = f.server_id
                WHERE w.game_code = ? AND w.enabled = 1
                  AND (f.id IS NULL OR s.game_code = w.game_code)
                GROUP BY w.code, w.name
                HAVING COUNT(f.id) > 0
                ORDER BY kills DESC, w.code ASC
                LIMIT ? OFFSET ?
                """,
                (game_code, limit, offset),
            ).fetchall()
        return [
            WeaponUsage(code=row["code"], name=row["name"], kills=int(row["kills"]), headshots=int(row["headshots"] or 0))
            for row in rows
        ]

    def map_statistics(self, game_code: str, *, limit: int = 20, offset: int = 0) -> List[Tuple[str, int]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT f.map, COUNT(f.id) AS kills
                FROM event_frags f
                JOIN servers s ON s.id = f.server_id
                WHERE s.game_code = ?
                GROUP BY f.map
                ORDER BY kills DESC, f.map ASC
                LIMIT ? OFFSET ?
                """,
                (game_code, limit, offset),
            ).fetchall()
        return [(row["map"], int(row["kills"])) for row in rows]

    def list_frags(self, *, limit: int = 50, offset: int = 0) -> List[FragRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                _FRAG_SELECT + " ORDER BY f.event_time DESC, f.id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [_row_to_frag(row) for row in rows]

    def recent_frags(self, *, days: int = 7, limit: int = 50, now: Optional[datetime] = None) -> List[FragRecord]:
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._connect() as conn:
            rows = conn.execute(
                _FRAG_SELECT + " WHERE f.event_time >= ? ORDER BY f.event_time DESC, f.id DESC LIMIT ?",
                (cutoff.isoformat(), limit),
            ).fetchall()
        return [_row_to_frag(row) for row in rows]

    def counts(self) -> dict[str, int]:
        with self._connect() as conn:
            players = conn.execute("SELECT COUNT(*) FROM players").fetchone()[0]
            frags = conn.execute("SELECT COUNT(*) FROM event_frags").fetchone()[0]
            servers = conn.execute("SELECT COUNT(*) FROM servers").fetchone()[0]
        return {
            "total_players": int(players),
            "total_frags": int(frags),
            "total_servers": int(servers),
        }
