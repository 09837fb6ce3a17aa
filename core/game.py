from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .battle import USER_SIDE, BattleEngine, BattleStart, TurnOutcome
from .catalog import AssetLibrary, Catalog
from .commands import (
    Attack,
    BuyHelp,
    ConfirmPurchase,
    Intent,
    ListOwned,
    ListPrices,
    StartBattle,
    parse_command,
)
from .errors import GameError, NotOwned, TransientProviderError
from .ledger import CURRENCY, CommerceLedger

log = logging.getLogger(__name__)

APOLOGY = "Sorry, something went wrong. Please try again!"
TRY_LATER = "Sorry, I can't reach the network right now. Please try again in a few minutes!"


@dataclass
class GameReply:
    text: str
    media: List[Path] = field(default_factory=list)


class Game:
    """Turns one mention into one reply."""

    def __init__(
        self,
        *,
        catalog: Catalog,
        ledger: CommerceLedger,
        battles: BattleEngine,
        assets: AssetLibrary,
        handle: str,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.battles = battles
        self.assets = assets
        self.handle = handle.lstrip("@")
        self.rng = rng or random.Random()

    @property
    def mention(self) -> str:
        return f"@{self.handle}"

    async def handle_message(self, author_id: str, text: str) -> GameReply:
        try:
            intent = parse_command(text, catalog_names=self.catalog.names(), rng=self.rng)
            return await self.dispatch(str(author_id), intent)
        except GameError as exc:
            return GameReply(exc.message)
        except TransientProviderError as exc:
            log.warning("provider unavailable while handling %s: %s", author_id, exc)
            return GameReply(TRY_LATER)
        except Exception:
            log.exception("Error handling command from %s", author_id)
            return GameReply(APOLOGY)

    async def dispatch(self, author_id: str, intent: Intent) -> GameReply:
        if isinstance(intent, ListPrices):
            return self._prices(intent)
        if isinstance(intent, BuyHelp):
            return GameReply(f"To see available creatures and prices, just tweet: {self.mention} buy")
        if isinstance(intent, ConfirmPurchase):
            return await self._confirm(author_id, intent)
        if isinstance(intent, ListOwned):
            return self._owned(author_id)
        if isinstance(intent, StartBattle):
            return self._start_battle(author_id, intent)
        if isinstance(intent, Attack):
            return self._attack(author_id, intent)
        return GameReply(
            "Invalid command! Tweet 'battle' to start a new game "
            "or use 'attack1' or 'attack2' during battle!"
        )

    def _prices(self, intent: ListPrices) -> GameReply:
        lines = [f"{name}: {price} {CURRENCY}" for name, price in self.ledger.list_prices().items()]
        return GameReply(
            "Available creatures for purchase:\n\n"
            + "\n".join(lines)
            + "\n\nTo purchase, send ETH to our wallet and confirm:\n"
            + f"Wallet: {self.ledger.wallet_address}\n\n"
            + "Example confirmation:\n"
            + f"{self.mention} confirm {intent.example_creature} {intent.example_hash}"
        )

    async def _confirm(self, author_id: str, intent: ConfirmPurchase) -> GameReply:
        owned = await self.ledger.confirm_purchase(author_id, intent.purchase_ref, intent.creature_name)
        return GameReply(
            f"Payment confirmed! {owned.creature_name} has been added to your collection!\n"
            f"Tweet '{self.mention} battle {owned.creature_name}' to start battling with your new creature!"
        )

    def _owned(self, author_id: str) -> GameReply:
        owned = self.ledger.list_owned(author_id)
        if not owned:
            text = "You don't own any creatures yet! Use 'buy' to purchase one."
        else:
            text = (
                "Your creature collection:\n\n"
                + "\n".join(item.creature_name for item in owned)
                + f"\n\nTo use a specific creature, tweet: {self.mention} battle <creature_name>"
            )
        pending = self.ledger.list_pending(author_id)
        if pending:
            text += "\n\nAwaiting payment confirmation:\n" + "\n".join(
                f"{entry.creature_name}: {entry.amount} {CURRENCY}" for entry in pending
            )
        return GameReply(text)

    def _start_battle(self, author_id: str, intent: StartBattle) -> GameReply:
        if intent.creature_name and not self.ledger.owns(author_id, intent.creature_name):
            raise NotOwned(intent.creature_name)
        start: BattleStart = self.battles.start_battle(author_id, intent.creature_name)
        user_creature = start.user_creature
        moves = "\n".join(
            f"{slot}: {move.name} ({move.damage} damage)" for slot, move in user_creature.moves()
        )
        return GameReply(
            f"Welcome to the battle! You've been assigned {user_creature.name}! "
            f"I choose {start.opponent_creature.name}!\n\n"
            f"Your moves:\n{moves}",
            media=self.assets.battle_media(user_creature.name, start.opponent_creature.name),
        )

    def _attack(self, author_id: str, intent: Attack) -> GameReply:
        outcome: TurnOutcome = self.battles.take_turn(author_id, intent.slot)
        text = (
            f"Your {outcome.user_creature.name} {outcome.user_attack.message}\n"
            f"My {outcome.opponent_creature.name} {outcome.opponent_attack.message}\n\n"
            f"Your health: {outcome.user_health}\n"
            f"My health: {outcome.opponent_health}"
        )
        if outcome.concluded:
            winner = "You" if outcome.winner == USER_SIDE else "I"
            text += f"\n\n{winner} won the battle! Tweet 'battle' to play again!"
        return GameReply(
            text,
            media=self.assets.battle_media(outcome.user_creature.name, outcome.opponent_creature.name),
        )
