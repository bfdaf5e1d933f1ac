"""Command-line interface for managing and feeding a fragstats database."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from fragstats.config import Settings, WeaponPolicy
from fragstats.config_loader import WeaponCatalog
from fragstats.persistence import StatsStore
from fragstats.pipeline import IngestionPipeline, LoggingBroadcaster, MissingServerError, ingest_lines


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track kills, ratings and rankings from game-server logs")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path (default FRAGSTATS_DB_PATH)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    game = sub.add_parser("add-game", help="Register a game")
    game.add_argument("code", help="Short game code, e.g. css")
    game.add_argument("name", help="Display name")

    server = sub.add_parser("add-server", help="Register a game server")
    server.add_argument("game", help="Game code the server runs")
    server.add_argument("name", help="Server name")
    server.add_argument("address", help="Server IP or hostname")
    server.add_argument("--port", type=int, default=27015, help="Server port")
    server.add_argument("--public-address", default=None, help="Address shown to players")

    weapons = sub.add_parser("seed-weapons", help="Load weapon names and modifiers from a JSON catalog")
    weapons.add_argument("catalog", type=Path, help="Catalog JSON: {game: {code: modifier | {name, modifier}}}")

    ingest = sub.add_parser("ingest", help="Ingest a server log file")
    ingest.add_argument("server_id", type=int, help="Server the log came from")
    ingest.add_argument("log", type=Path, help="Log file path, or - for stdin")
    ingest.add_argument(
        "--weapon-policy",
        choices=[policy.value for policy in WeaponPolicy],
        default=None,
        help="Override FRAGSTATS_WEAPON_POLICY for unknown weapons",
    )
    ingest.add_argument("--report", type=Path, default=None, help="Optional path to write the ingest report JSON")

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    rankings = sub.add_parser("rankings", help="Print the top players for a game")
    rankings.add_argument("game", help="Game code")
    rankings.add_argument("--limit", type=int, default=20, help="Number of players to show")

    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.db is not None:
        settings = replace(settings, db_path=args.db)
    return settings


def _seed_weapons(store: StatsStore, catalog_path: Path) -> int:
    catalog = WeaponCatalog.load(catalog_path)
    count = 0
    for game_code, code, entry in catalog.iter_weapons():
        store.upsert_weapon(game_code=game_code, code=code, name=entry.name, modifier=entry.modifier)
        count += 1
    return count


def _ingest(store: StatsStore, settings: Settings, args: argparse.Namespace) -> dict:
    policy = WeaponPolicy(args.weapon_policy) if args.weapon_policy else settings.weapon_policy
    pipeline = IngestionPipeline(
        store,
        LoggingBroadcaster(),
        weapon_policy=policy,
        default_rating=settings.default_rating,
    )
    if str(args.log) == "-":
        report = ingest_lines(sys.stdin, args.server_id, pipeline)
    else:
        with args.log.open(encoding="utf-8", errors="replace") as handle:
            report = ingest_lines(handle, args.server_id, pipeline)
    return report.to_dict()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = _settings(args)

    if args.command == "serve":
        import uvicorn

        from fragstats.api import create_app

        uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)
        return

    store = StatsStore(settings.db_path)

    if args.command == "init-db":
        print(f"Database ready at {store.db_path}")
    elif args.command == "add-game":
        game = store.create_game(args.code, args.name)
        print(f"Added game {game.code} ({game.name})")
    elif args.command == "add-server":
        if store.get_game(args.game) is None:
            raise SystemExit(f"game {args.game} not found")
        server = store.create_server(
            game_code=args.game,
            name=args.name,
            address=args.address,
            port=args.port,
            public_address=args.public_address,
        )
        print(f"Added server {server.server_id}: {server.name} ({server.address}:{server.port})")
    elif args.command == "seed-weapons":
        count = _seed_weapons(store, args.catalog)
        print(f"Seeded {count} weapons from {args.catalog}")
    elif args.command == "ingest":
        try:
            summary = _ingest(store, settings, args)
        except MissingServerError as exc:
            raise SystemExit(str(exc)) from exc
        if args.report:
            args.report.write_text(json.dumps(summary, indent=2))
            print(f"Ingest report saved to {args.report}")
        print(
            f"Read {summary['lines_read']} lines: {summary['kills_processed']} kills, "
            f"{summary['unparsed_lines']} unparsed, {len(summary['failures'])} failed"
        )
    elif args.command == "rankings":
        if store.get_game(args.game) is None:
            raise SystemExit(f"game {args.game} not found")
        players = store.list_rankings(args.game, limit=args.limit)
        if not players:
            print("No ranked players")
            return
        for rank, player in enumerate(players, start=1):
            print(
                f"{rank:>3}. {player.name:<32} {player.skill:>8.2f}  "
                f"K {player.kills:>5}  D {player.deaths:>5}  K/D {player.kd_ratio:>5.2f}"
            )


if __name__ == "__main__":
    main()
