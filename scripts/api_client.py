"""Lightweight REST client for the fragstats API."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the fragstats REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--game", default=None, help="Game code for rankings and statistics")
    parser.add_argument("--server", type=int, default=None, help="Server ID to upload a log for")
    parser.add_argument("--log", type=Path, default=None, help="Log file to upload with --server")
    parser.add_argument("--kill", type=Path, default=None, help="JSON file holding one kill payload to submit")
    parser.add_argument("--limit", type=int, default=20, help="Number of ranked players to fetch")
    parser.add_argument("--killfeed", action="store_true", help="Print the recent kill feed and exit")
    args = parser.parse_args()

    with httpx.Client(base_url=args.base_url) as client:
        resp = client.get("/health")
        resp.raise_for_status()
        print("Health:", json.dumps(resp.json(), indent=2))

        if args.killfeed:
            params = {"game": args.game} if args.game else {}
            resp = client.get("/api/killfeed", params=params)
            resp.raise_for_status()
            print(json.dumps(resp.json(), indent=2))
            return

        if args.log is not None:
            if args.server is None:
                raise SystemExit("--server is required when uploading a log")
            resp = client.post(
                f"/api/servers/{args.server}/log",
                content=args.log.read_bytes(),
                headers={"Content-Type": "text/plain"},
            )
            if resp.status_code == 404:
                raise SystemExit(f"server {args.server} not found")
            resp.raise_for_status()
            print("Ingest report:", json.dumps(resp.json(), indent=2))

        if args.kill is not None:
            payload = json.loads(args.kill.read_text())
            resp = client.post("/api/events/kill", json=payload)
            if resp.status_code in (404, 409, 422):
                raise SystemExit(f"kill rejected ({resp.status_code}): {resp.json()['detail']}")
            resp.raise_for_status()
            print("Kill:", json.dumps(resp.json(), indent=2))

        if args.game:
            resp = client.get("/api/players/rankings", params={"game": args.game, "per_page": args.limit})
            if resp.status_code == 404:
                raise SystemExit(f"game {args.game} not found")
            resp.raise_for_status()
            rankings = resp.json()
            print(f"Top {len(rankings['players'])} of {rankings['total']} players in {args.game}")
            for player in rankings["players"]:
                print(f"{player['rank']:>3}. {player['name']:<32} {player['skill']:>8.2f}")


if __name__ == "__main__":
    main()
