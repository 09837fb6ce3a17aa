"""Fixed command grammar for mention text.

Handle mentions (``@name``) are dropped, then the first keyword token decides the
intent, so "battle ... attack1" is a battle request and "attack1 ... battle" is
an attack.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Union

from .errors import ValidationError

KEYWORDS = ("buy", "confirm", "list", "battle", "attack1", "attack2")
TOKEN_PUNCTUATION = ".,!?;:\"'()[]"

CONFIRM_FORMAT = "Format: confirm <creature_name> <transaction_hash>"


@dataclass(frozen=True)
class ListPrices:
    example_creature: str
    example_hash: str


@dataclass(frozen=True)
class BuyHelp:
    pass


@dataclass(frozen=True)
class ConfirmPurchase:
    creature_name: str
    purchase_ref: str


@dataclass(frozen=True)
class ListOwned:
    pass


@dataclass(frozen=True)
class StartBattle:
    creature_name: Optional[str] = None


@dataclass(frozen=True)
class Attack:
    slot: str


@dataclass(frozen=True)
class Unknown:
    pass


Intent = Union[ListPrices, BuyHelp, ConfirmPurchase, ListOwned, StartBattle, Attack, Unknown]


def tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    for raw in (text or "").lower().split():
        if raw.startswith("@"):
            continue
        token = raw.strip(TOKEN_PUNCTUATION)
        if token:
            tokens.append(token)
    return tokens


def mentioned_handles(text: str) -> Set[str]:
    """Lower-cased @handles in the text, punctuation stripped."""
    handles = set()
    for raw in (text or "").lower().split():
        if raw.startswith("@"):
            handle = raw.strip(TOKEN_PUNCTUATION)
            if len(handle) > 1:
                handles.add(handle)
    return handles


def example_hash(rng: random.Random) -> str:
    """A made-up 64 hex digit hash for the confirmation template."""
    return "0x" + "".join(rng.choice("0123456789abcdef") for _ in range(64))


def parse_command(
    text: str,
    *,
    catalog_names: Sequence[str],
    rng: Optional[random.Random] = None,
) -> Intent:
    rng = rng or random.Random()
    tokens = tokenize(text)
    index = next((i for i, token in enumerate(tokens) if token in KEYWORDS), None)
    if index is None:
        return Unknown()
    keyword = tokens[index]
    rest = tokens[index + 1 :]

    if keyword == "buy":
        if len(tokens) == 1:
            return ListPrices(
                example_creature=rng.choice(list(catalog_names)),
                example_hash=example_hash(rng),
            )
        return BuyHelp()

    if keyword == "confirm":
        if len(rest) < 2:
            raise ValidationError(
                f"Please provide both creature name and transaction hash.\n{CONFIRM_FORMAT}"
            )
        return ConfirmPurchase(creature_name=rest[0], purchase_ref=rest[1])

    if keyword == "list":
        return ListOwned()

    if keyword == "battle":
        return StartBattle(creature_name=rest[0] if rest else None)

    return Attack(slot="attack1" if "attack1" in tokens else "attack2")
