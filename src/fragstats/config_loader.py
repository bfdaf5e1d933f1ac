"""Persist and load weapon catalog profiles."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Tuple


@dataclass
class WeaponEntry:
    name: str
    modifier: float = 1.0


@dataclass
class WeaponCatalog:
    """Weapon names and modifiers keyed by game code, then weapon code."""

    games: Dict[str, Dict[str, WeaponEntry]] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "WeaponCatalog":
        data = json.loads(path.read_text(encoding="utf-8"))
        games: Dict[str, Dict[str, WeaponEntry]] = {}
        for game_code, weapons in data.items():
            entries: Dict[str, WeaponEntry] = {}
            for code, spec in weapons.items():
                if isinstance(spec, (int, float)):
                    entries[code] = WeaponEntry(name=code.title(), modifier=float(spec))
                else:
                    entries[code] = WeaponEntry(
                        name=spec.get("name") or code.title(),
                        modifier=float(spec.get("modifier", 1.0)),
                    )
            games[game_code] = entries
        return cls(games=games)

    def save(self, path: Path) -> None:
        payload = {
            game_code: {
                code: {"name": entry.name, "modifier": entry.modifier}
                for code, entry in weapons.items()
            }
            for game_code, weapons in self.games.items()
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def iter_weapons(self) -> Iterator[Tuple[str, str, WeaponEntry]]:
        for game_code, weapons in self.games.items():
            for code, entry in weapons.items():
                yield game_code, code, entry
