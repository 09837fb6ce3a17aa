"""Creature catalog and image lookup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml

log = logging.getLogger(__name__)

CATALOG_FILE = Path(__file__).with_name("data").joinpath("creatures.yaml")
MOVE_SLOTS = ("attack1", "attack2")

_DEFAULT_CATALOG = """
Blizzard:
  health: 500
  price: 0.3
  attack1: {name: Double Blizzard, damage: 120}
  attack2: {name: Blue Fire, damage: 250}
Curselord:
  health: 500
  price: 0.4
  attack1: {name: Shadow Saber, damage: 80}
  attack2: {name: Brutal Claw, damage: 230}
Gar:
  health: 500
  price: 0.1
  attack1: {name: Iron Slash, damage: 55}
  attack2: {name: Dark Slash, damage: 100}
Neu:
  health: 500
  price: 0.2
  attack1: {name: Nova Blast, damage: 240}
  attack2: {name: Pyshic, damage: 150}
Turquoise:
  health: 500
  price: 0.1
  attack1: {name: Petal Swirl, damage: 110}
  attack2: {name: Petal Bullet, damage: 220}
"""


@dataclass(frozen=True)
class Move:
    name: str
    damage: int


@dataclass(frozen=True)
class Creature:
    name: str
    base_health: int
    price: float
    attack1: Move
    attack2: Move

    def move(self, slot: str) -> Move:
        if slot == "attack1":
            return self.attack1
        if slot == "attack2":
            return self.attack2
        raise ValueError(f"unknown move slot: {slot}")

    def moves(self) -> List[Tuple[str, Move]]:
        return [(slot, self.move(slot)) for slot in MOVE_SLOTS]


def _parse_move(raw: object, creature: str, slot: str) -> Move:
    if not isinstance(raw, dict):
        raise ValueError(f"{creature}.{slot} must be a mapping")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ValueError(f"{creature}.{slot} is missing a name")
    return Move(name=name, damage=int(raw.get("damage") or 0))


def parse_catalog(text: str) -> List[Creature]:
    raw = yaml.safe_load(text) or {}
    if not isinstance(raw, dict):
        raise ValueError("catalog must be a mapping of creature name to stats")
    creatures: List[Creature] = []
    for key, value in raw.items():
        name = str(key).strip()
        if not name or not isinstance(value, dict):
            continue
        creatures.append(
            Creature(
                name=name,
                base_health=int(value.get("health") or 500),
                price=float(value.get("price") or 0),
                attack1=_parse_move(value.get("attack1"), name, "attack1"),
                attack2=_parse_move(value.get("attack2"), name, "attack2"),
            )
        )
    return creatures


class Catalog:
    """Immutable set of playable creatures, looked up case-insensitively."""

    def __init__(self, creatures: Iterable[Creature]) -> None:
        self._creatures: Dict[str, Creature] = {}
        for creature in creatures:
            key = creature.name.lower()
            if key in self._creatures:
                raise ValueError(f"duplicate creature name: {creature.name}")
            self._creatures[key] = creature
        if not self._creatures:
            raise ValueError("catalog is empty")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Catalog":
        path = path or CATALOG_FILE
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.warning("catalog file %s missing; using built-in creatures", path)
            text = _DEFAULT_CATALOG
        return cls(parse_catalog(text))

    @classmethod
    def default(cls) -> "Catalog":
        return cls(parse_catalog(_DEFAULT_CATALOG))

    def __iter__(self):
        return iter(self._creatures.values())

    def __len__(self) -> int:
        return len(self._creatures)

    def names(self) -> List[str]:
        return [creature.name for creature in self._creatures.values()]

    def get(self, name: Optional[str]) -> Optional[Creature]:
        if not name:
            return None
        return self._creatures.get(name.strip().lower())

    def prices(self) -> Dict[str, float]:
        return {creature.name: creature.price for creature in self._creatures.values()}


class AssetLibrary:
    """Resolves creature artwork stored as ``<dir>/<lowercase name>.png``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def image_path_for(self, creature_name: str) -> Optional[Path]:
        path = self.root / f"{creature_name.strip().lower()}.png"
        if not path.is_file():
            log.debug("no image for %s at %s", creature_name, path)
            return None
        return path

    def battle_media(self, user_creature: str, opponent_creature: str) -> List[Path]:
        """Both images, or nothing when either one is missing."""
        user_image = self.image_path_for(user_creature)
        opponent_image = self.image_path_for(opponent_creature)
        if not user_image or not opponent_image:
            return []
        return [user_image, opponent_image]
