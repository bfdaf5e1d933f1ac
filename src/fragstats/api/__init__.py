"""REST API and dashboard for fragstats."""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone
from html import escape
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse

from fragstats.api.schemas import (
    FragResponse,
    IngestReportResponse,
    MapStatisticsResponse,
    PlayerProfileResponse,
    PlayerResponse,
    ProcessedKillResponse,
    RankedPlayerResponse,
    RankingsResponse,
    RecentKillResponse,
    ServerResponse,
    WeaponKillsResponse,
    WeaponStatisticsResponse,
)
from fragstats.config import Settings
from fragstats.persistence import GameRecord, StatsStore
from fragstats.pipeline import (
    IngestionPipeline,
    KillFeedNotification,
    MemoryBroadcaster,
    MissingServerError,
    MissingWeaponError,
    PayloadValidationError,
    channel_for_game,
    ingest_lines,
)


def _render_page(body: str, *, title: str = "fragstats") -> str:
    return f"""<!DOCTYPE html>
<html lang=\"en\">
<head>
    <meta charset=\"utf-8\">
    <title>{escape(title)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 2rem; background: #f5f7fa; }}
        main {{ background: #fff; padding: 2rem; border-radius: 12px; box-shadow: 0 2px 6px rgba(0,0,0,0.08); }}
        nav a {{ margin-right: 1rem; color: #2563eb; text-decoration: none; }}
        table {{ border-collapse: collapse; width: 100%; margin-top: 1rem; }}
        th, td {{ padding: 0.5rem; border: 1px solid #e2e8f0; text-align: left; }}
        .grid {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(320px, 1fr)); gap: 2rem; }}
        .hint {{ color: #475569; margin: 0; }}
        .headshot {{ color: #b91c1c; font-weight: 600; }}
    </style>
</head>
<body>
    <nav><a href=\"/ui\">Dashboard</a><a href=\"/docs\">API</a></nav>
    <main>{body}</main>
</body>
</html>"""


def _table(headers: list[str], rows: list[list[str]], *, empty: str) -> str:
    if not rows:
        return f"<p class=\"hint\">{escape(empty)}</p>"
    head = "".join(f"<th>{escape(header)}</th>" for header in headers)
    body = "".join("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows)
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def _render_dashboard(
    *,
    games: list[GameRecord],
    game: str | None,
    rankings: list[RankedPlayerResponse],
    weapons: list[WeaponStatisticsResponse],
    maps: list[MapStatisticsResponse],
    feed: list[KillFeedNotification],
) -> str:
    options = "".join(
        f"<option value=\"{escape(item.code)}\"{' selected' if item.code == game else ''}>{escape(item.name)}</option>"
        for item in games
    )
    picker = (
        "<form method=\"get\" action=\"/ui\"><label>Game <select name=\"game\" onchange=\"this.form.submit()\">"
        f"{options}</select></label></form>"
    )
    if game is None:
        return _render_page(f"<h1>fragstats</h1>{picker}<p class=\"hint\">No games configured yet.</p>")

    rankings_html = _table(
        ["#", "Player", "Skill", "Kills", "Deaths", "K/D", "Headshots"],
        [
            [
                str(player.rank),
                f"<a href=\"/api/players/{player.id}\">{escape(player.name)}</a>",
                f"{player.skill:.2f}",
                str(player.kills),
                str(player.deaths),
                f"{player.kd_ratio:.2f}",
                str(player.headshots),
            ]
            for player in rankings
        ],
        empty="No ranked players yet.",
    )
    weapons_html = _table(
        ["Weapon", "Kills", "Headshots", "HS %"],
        [
            [escape(item.name), str(item.kills), str(item.headshots), f"{item.headshot_percentage:.1f}%"]
            for item in weapons
        ],
        empty="No weapon kills recorded.",
    )
    maps_html = _table(
        ["Map", "Kills"],
        [[escape(item.map), str(item.kills)] for item in maps],
        empty="No maps played.",
    )
    feed_html = _table(
        ["Time", "Killer", "Weapon", "Victim"],
        [
            [
                escape(item.timestamp.strftime("%Y-%m-%d %H:%M:%S")),
                escape(item.killer.name),
                escape(item.weapon) + (" <span class=\"headshot\">HS</span>" if item.headshot else ""),
                escape(item.victim.name),
            ]
            for item in feed
        ],
        empty="Waiting for kills…",
    )
    body = (
        f"<h1>fragstats</h1>{picker}"
        f"<h2>Top players</h2>{rankings_html}"
        f"<div class=\"grid\"><section><h2>Weapons</h2>{weapons_html}</section>"
        f"<section><h2>Maps</h2>{maps_html}</section>"
        f"<section><h2>Kill feed</h2>{feed_html}</section></div>"
    )
    return _render_page(body, title=f"fragstats: {game}")


def create_app(
    store: StatsStore | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or StatsStore(settings.db_path)
    feed = MemoryBroadcaster(settings.feed_size)
    pipeline = IngestionPipeline(
        store,
        feed,
        weapon_policy=settings.weapon_policy,
        default_rating=settings.default_rating,
    )

    app = FastAPI(title="fragstats")
    app.state.store = store
    app.state.settings = settings
    app.state.feed = feed
    app.state.pipeline = pipeline

    def _require_game(code: str) -> GameRecord:
        game = store.get_game(code)
        if game is None:
            raise HTTPException(status_code=404, detail=f"Game {code} not found")
        return game

    def _rankings(game: str, page: int, per_page: int) -> list[RankedPlayerResponse]:
        offset = (page - 1) * per_page
        players = store.list_rankings(game, limit=per_page, offset=offset)
        return [
            RankedPlayerResponse(rank=offset + index, **PlayerResponse.from_record(player).model_dump())
            for index, player in enumerate(players, start=1)
        ]

    @app.get("/health")
    async def health() -> dict[str, Any]:
        started = time.perf_counter()
        try:
            store.ping()
        except sqlite3.Error as exc:
            database = {"status": "unhealthy", "error": str(exc)}
        else:
            database = {
                "status": "healthy",
                "response_time": f"{(time.perf_counter() - started) * 1000:.2f}ms",
            }
        checks = {"database": database}
        status = "unhealthy" if any(check["status"] == "unhealthy" for check in checks.values()) else "healthy"
        return {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        }

    @app.get("/metrics")
    async def metrics() -> dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": store.counts(),
        }

    @app.get("/api/players/rankings", response_model=RankingsResponse)
    async def rankings(
        game: str,
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
    ) -> RankingsResponse:
        _require_game(game)
        return RankingsResponse(
            game=game,
            page=page,
            per_page=per_page,
            total=store.count_ranked_players(game),
            players=_rankings(game, page, per_page),
        )

    @app.get("/api/players/search", response_model=list[PlayerResponse])
    async def search_players(
        q: str = Query(..., min_length=3),
        game: str | None = None,
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
    ) -> list[PlayerResponse]:
        if game is not None:
            _require_game(game)
        players = store.search_players(q, game_code=game, limit=per_page, offset=(page - 1) * per_page)
        return [PlayerResponse.from_record(player) for player in players]

    @app.get("/api/players/{player_id}", response_model=PlayerProfileResponse)
    async def player_profile(player_id: int) -> PlayerProfileResponse:
        player = store.get_player(player_id)
        if player is None:
            raise HTTPException(status_code=404, detail="Player not found")
        return PlayerProfileResponse(
            **PlayerResponse.from_record(player).model_dump(),
            headshot_percentage=player.headshot_percentage,
            recent_kills=[RecentKillResponse.from_frag(frag) for frag in store.player_recent_kills(player_id)],
            weapon_stats=[
                WeaponKillsResponse(weapon=code, kills=kills) for code, kills in store.player_weapon_stats(player_id)
            ],
        )

    @app.get("/api/weapons/statistics", response_model=list[WeaponStatisticsResponse])
    async def weapon_statistics(
        game: str,
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
    ) -> list[WeaponStatisticsResponse]:
        _require_game(game)
        usage = store.weapon_statistics(game, limit=per_page, offset=(page - 1) * per_page)
        return [WeaponStatisticsResponse.from_usage(item) for item in usage]

    @app.get("/api/maps/statistics", response_model=list[MapStatisticsResponse])
    async def map_statistics(
        game: str,
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
    ) -> list[MapStatisticsResponse]:
        _require_game(game)
        rows = store.map_statistics(game, limit=per_page, offset=(page - 1) * per_page)
        return [MapStatisticsResponse(map=name, kills=kills) for name, kills in rows]

    @app.get("/api/servers", response_model=list[ServerResponse])
    async def list_servers(
        game: str,
        online: bool = False,
        page: int = Query(1, ge=1),
        per_page: int = Query(20, ge=1, le=100),
    ) -> list[ServerResponse]:
        _require_game(game)
        servers = store.list_servers(
            game_code=game,
            online_minutes=settings.online_minutes if online else None,
            limit=per_page,
            offset=(page - 1) * per_page,
        )
        return [ServerResponse.from_record(server, online_minutes=settings.online_minutes) for server in servers]

    @app.get("/api/servers/{server_id}", response_model=ServerResponse)
    async def get_server(server_id: int) -> ServerResponse:
        server = store.get_server(server_id)
        if server is None:
            raise HTTPException(status_code=404, detail="Server not found")
        return ServerResponse.from_record(server, online_minutes=settings.online_minutes)

    @app.post("/api/servers/{server_id}/log", response_model=IngestReportResponse)
    async def ingest_log(server_id: int, request: Request) -> IngestReportResponse:
        text = (await request.body()).decode("utf-8", errors="replace")
        try:
            report = ingest_lines(text.splitlines(), server_id, pipeline)
        except MissingServerError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return IngestReportResponse.model_validate(report.to_dict())

    @app.post("/api/events/kill")
    async def ingest_kill(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            result = pipeline.process(payload)
        except PayloadValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors or str(exc)) from exc
        except MissingServerError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except MissingWeaponError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if result is None:
            return {"status": "ignored"}
        response = ProcessedKillResponse(
            frag=FragResponse.from_record(result.frag),
            killer_rating=result.rating.killer_after,
            victim_rating=result.rating.victim_after,
            killer_delta=result.rating.killer_delta,
            victim_delta=result.rating.victim_delta,
        )
        return {"status": "processed", **response.model_dump(mode="json")}

    @app.get("/api/frags", response_model=list[FragResponse])
    async def list_frags(
        page: int = Query(1, ge=1),
        per_page: int = Query(50, ge=1, le=100),
    ) -> list[FragResponse]:
        frags = store.list_frags(limit=per_page, offset=(page - 1) * per_page)
        return [FragResponse.from_record(frag) for frag in frags]

    @app.get("/api/frags/recent", response_model=list[FragResponse])
    async def recent_frags(
        days: int = Query(7, ge=1, le=365),
        limit: int = Query(50, ge=1, le=500),
    ) -> list[FragResponse]:
        return [FragResponse.from_record(frag) for frag in store.recent_frags(days=days, limit=limit)]

    @app.get("/api/killfeed", response_model=list[KillFeedNotification])
    async def killfeed(
        game: str | None = None,
        limit: int = Query(20, ge=1, le=100),
    ) -> list[KillFeedNotification]:
        channel = channel_for_game(game) if game else None
        return feed.recent(channel=channel, limit=limit)

    @app.get("/ui", response_class=HTMLResponse)
    async def dashboard(game: str | None = None) -> HTMLResponse:
        games = store.list_games()
        if game is None and games:
            game = games[0].code
        if game is not None:
            _require_game(game)
            content = _render_dashboard(
                games=games,
                game=game,
                rankings=_rankings(game, 1, 20),
                weapons=[WeaponStatisticsResponse.from_usage(item) for item in store.weapon_statistics(game, limit=10)],
                maps=[MapStatisticsResponse(map=name, kills=kills) for name, kills in store.map_statistics(game, limit=10)],
                feed=feed.recent(channel=channel_for_game(game), limit=20),
            )
        else:
            content = _render_dashboard(games=games, game=None, rankings=[], weapons=[], maps=[], feed=[])
        return HTMLResponse(content)

    return app
