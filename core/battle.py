"""Combat resolution and the per-battle state machine.

A battle pairs one user with the single opponent record::

    idle -> assigned -> in_battle -> (concluded) -> idle

``resolve_attack`` is pure; everything else reads and writes the session store.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .catalog import MOVE_SLOTS, Catalog, Creature, Move
from .errors import CreatureNotFound, NoActiveBattle, OpponentStateLost
from .store import OPPONENT, OPPONENT_ID, Principal, SessionStore

log = logging.getLogger(__name__)

MISS_CHANCE = 0.5
USER_SIDE = "user"
OPPONENT_SIDE = "opponent"


@dataclass(frozen=True)
class AttackResult:
    new_health: int
    hit: bool
    damage: int
    message: str


@dataclass
class BattleStart:
    user: Principal
    user_creature: Creature
    opponent: Principal
    opponent_creature: Creature


@dataclass
class TurnOutcome:
    user_creature: Creature
    opponent_creature: Creature
    user_attack: AttackResult
    opponent_attack: AttackResult
    user_health: int
    opponent_health: int
    winner: Optional[str] = None

    @property
    def concluded(self) -> bool:
        return self.winner is not None


def resolve_attack(
    defender_health: int,
    move: Move,
    *,
    rng: Optional[random.Random] = None,
    force_hit: Optional[bool] = None,
) -> AttackResult:
    """Apply one move to a defender. Half of all moves miss."""
    if force_hit is None:
        hit = (rng or random).random() >= MISS_CHANCE
    else:
        hit = force_hit
    if not hit:
        return AttackResult(
            new_health=defender_health,
            hit=False,
            damage=0,
            message=f"tried to use {move.name} but missed!",
        )
    new_health = max(0, defender_health - move.damage)
    return AttackResult(
        new_health=new_health,
        hit=True,
        damage=move.damage,
        message=f"used {move.name} dealing {move.damage} damage!",
    )


def decide_winner(user_health: int, opponent_health: int) -> Optional[str]:
    # the user going down is checked first, so a double knockout goes to the opponent
    if user_health <= 0:
        return OPPONENT_SIDE
    if opponent_health <= 0:
        return USER_SIDE
    return None


class BattleEngine:
    def __init__(
        self,
        store: SessionStore,
        catalog: Catalog,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.rng = rng or random.Random()

    def assign_creature(self, principal_id: str, requested_name: Optional[str] = None) -> Principal:
        if requested_name:
            creature = self.catalog.get(requested_name)
            if not creature:
                raise CreatureNotFound(requested_name)
        else:
            creature = self.rng.choice(list(self.catalog))
        log.info("assigning %s to user %s", creature.name, principal_id)
        return self.store.assign(principal_id, creature)

    def assign_opponent(self, challenger_id: str, excluding: str) -> Principal:
        candidates = [c for c in self.catalog if c.name.lower() != excluding.lower()]
        if not candidates:
            raise OpponentStateLost("Sorry, I'm having trouble choosing a creature. Please try again!")
        creature = self.rng.choice(candidates)
        log.info("opponent picks %s against %s", creature.name, challenger_id)
        return self.store.assign(OPPONENT_ID, creature, kind=OPPONENT, challenger_id=str(challenger_id))

    def start_battle(self, principal_id: str, requested_name: Optional[str] = None) -> BattleStart:
        user = self.assign_creature(principal_id, requested_name)
        opponent = self.assign_opponent(principal_id, excluding=user.assigned_creature)
        return BattleStart(
            user=user,
            user_creature=self.catalog.get(user.assigned_creature),
            opponent=opponent,
            opponent_creature=self.catalog.get(opponent.assigned_creature),
        )

    def choose_opponent_move(self) -> str:
        return self.rng.choice(MOVE_SLOTS)

    def resolve_attack(self, defender_health: int, move: Move) -> AttackResult:
        return resolve_attack(defender_health, move, rng=self.rng)

    def _active_pair(self, principal_id: str):
        user = self.store.get_principal(principal_id)
        if not user or not user.in_battle:
            raise NoActiveBattle()
        user_creature = self.catalog.get(user.assigned_creature)
        if not user_creature:
            raise NoActiveBattle()
        opponent = self.store.get_opponent()
        if (
            not opponent
            or not opponent.in_battle
            or opponent.challenger_id != str(principal_id)
        ):
            raise OpponentStateLost()
        opponent_creature = self.catalog.get(opponent.assigned_creature)
        if not opponent_creature:
            raise OpponentStateLost()
        return user, user_creature, opponent, opponent_creature

    def take_turn(self, principal_id: str, slot: str) -> TurnOutcome:
        user, user_creature, opponent, opponent_creature = self._active_pair(principal_id)

        user_attack = self.resolve_attack(opponent.current_health, user_creature.move(slot))
        counter_slot = self.choose_opponent_move()
        opponent_attack = self.resolve_attack(user.current_health, opponent_creature.move(counter_slot))

        self.store.record_turn(principal_id, opponent_attack.new_health, user_attack.new_health)
        outcome = TurnOutcome(
            user_creature=user_creature,
            opponent_creature=opponent_creature,
            user_attack=user_attack,
            opponent_attack=opponent_attack,
            user_health=opponent_attack.new_health,
            opponent_health=user_attack.new_health,
            winner=decide_winner(opponent_attack.new_health, user_attack.new_health),
        )
        if outcome.concluded:
            log.info("battle with %s concluded, winner=%s", principal_id, outcome.winner)
            self.store.conclude_battle(principal_id)
        return outcome
