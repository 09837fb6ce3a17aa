from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .catalog import Creature
from .errors import AlreadyUsedReference

log = logging.getLogger(__name__)

USER = "user"
OPPONENT = "opponent"
OPPONENT_ID = "opponent"

IDLE = "idle"
ASSIGNED = "assigned"
IN_BATTLE = "in_battle"

NEUTRAL_HEALTH = 100
MENTIONS_CURSOR = "mentions"

PENDING = "pending"
CONFIRMED = "confirmed"
SUPERSEDED = "superseded"


@dataclass
class Principal:
    principal_id: str
    kind: str = USER
    assigned_creature: Optional[str] = None
    current_health: int = NEUTRAL_HEALTH
    battle_state: str = IDLE
    challenger_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Principal":
        return cls(
            principal_id=row["principal_id"],
            kind=row["kind"],
            assigned_creature=row["assigned_creature"],
            current_health=int(row["current_health"]),
            battle_state=row["battle_state"],
            challenger_id=row["challenger_id"],
        )

    @property
    def is_opponent(self) -> bool:
        return self.kind == OPPONENT

    @property
    def in_battle(self) -> bool:
        return bool(self.assigned_creature) and self.battle_state in {ASSIGNED, IN_BATTLE}


@dataclass
class OwnedCreature:
    creature_name: str
    purchase_ref: str
    purchase_time: float
    amount_paid: float = 0.0
    network: str = "Base"

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "OwnedCreature":
        return cls(
            creature_name=row["creature_name"],
            purchase_ref=row["purchase_ref"],
            purchase_time=row["purchase_time"],
            amount_paid=row["amount_paid"] or 0.0,
            network=row["network"] or "Base",
        )


@dataclass
class PendingPurchase:
    purchase_id: int
    creature_name: str
    request_time: float
    wallet: str
    amount: float
    status: str = PENDING
    purchase_ref: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PendingPurchase":
        return cls(
            purchase_id=row["id"],
            creature_name=row["creature_name"],
            request_time=row["request_time"],
            wallet=row["wallet"] or "",
            amount=row["amount"] or 0.0,
            status=row["status"],
            purchase_ref=row["purchase_ref"],
        )


@dataclass
class HandledMessage:
    message_id: str
    reply_text: str
    media: List[str] = field(default_factory=list)
    attempts: int = 0
    replied: bool = False

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "HandledMessage":
        try:
            media = json.loads(row["media"] or "[]")
        except json.JSONDecodeError:
            media = []
        return cls(
            message_id=row["message_id"],
            reply_text=row["reply_text"],
            media=[str(item) for item in media],
            attempts=int(row["attempts"]),
            replied=bool(row["replied"]),
        )


def id_key(value: str) -> tuple:
    # snowflake ids compare numerically; anything else falls back to string order
    text = str(value)
    if text.isdigit():
        return (0, int(text))
    return (1, text)


class SessionStore:
    """sqlite-backed record store for principals, purchases and poll state."""

    def __init__(self, db_path: str = "mentionmon.db") -> None:
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def close(self) -> None:
        self.conn.close()

    def _init_db(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS creatures (
                  name TEXT PRIMARY KEY COLLATE NOCASE,
                  base_health INTEGER NOT NULL,
                  price REAL NOT NULL,
                  data TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS principals (
                  kind TEXT NOT NULL,
                  principal_id TEXT NOT NULL,
                  assigned_creature TEXT,
                  current_health INTEGER NOT NULL DEFAULT 100 CHECK (current_health >= 0),
                  battle_state TEXT NOT NULL DEFAULT 'idle',
                  challenger_id TEXT,
                  created_at REAL NOT NULL,
                  PRIMARY KEY(kind, principal_id)
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS owned_creatures (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  principal_id TEXT NOT NULL,
                  creature_name TEXT NOT NULL,
                  purchase_ref TEXT UNIQUE,
                  purchase_time REAL NOT NULL,
                  amount_paid REAL,
                  network TEXT
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pending_purchases (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  principal_id TEXT NOT NULL,
                  creature_name TEXT NOT NULL,
                  request_time REAL NOT NULL,
                  wallet TEXT,
                  amount REAL,
                  purchase_ref TEXT,
                  status TEXT NOT NULL DEFAULT 'pending'
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS checkpoints (
                  name TEXT PRIMARY KEY,
                  value TEXT NOT NULL,
                  updated_at REAL NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS handled_messages (
                  message_id TEXT PRIMARY KEY,
                  reply_text TEXT NOT NULL,
                  media TEXT NOT NULL DEFAULT '[]',
                  attempts INTEGER NOT NULL DEFAULT 0,
                  replied INTEGER NOT NULL DEFAULT 0,
                  handled_at REAL NOT NULL
                )
                """
            )
            self.conn.execute(
                "INSERT OR IGNORE INTO principals(kind, principal_id, created_at) VALUES(?,?,?)",
                (OPPONENT, OPPONENT_ID, time.time()),
            )

    # ----- creatures -----
    def seed_creatures(self, creatures: Iterable[Creature]) -> List[str]:
        """Replace the stored catalog and verify every entry landed."""
        expected = list(creatures)
        with self.conn:
            self.conn.execute("DELETE FROM creatures")
            for creature in expected:
                payload = {
                    "attack1": {"name": creature.attack1.name, "damage": creature.attack1.damage},
                    "attack2": {"name": creature.attack2.name, "damage": creature.attack2.damage},
                }
                self.conn.execute(
                    "INSERT INTO creatures(name, base_health, price, data) VALUES(?,?,?,?)",
                    (creature.name, creature.base_health, creature.price, json.dumps(payload)),
                )
        stored = self.creature_names()
        missing = [c.name for c in expected if c.name not in stored]
        if missing or len(stored) != len(expected):
            raise RuntimeError(
                f"expected {len(expected)} creatures, found {len(stored)} (missing: {', '.join(missing)})"
            )
        log.info("catalog seeded: %s", ", ".join(stored))
        return stored

    def creature_names(self) -> List[str]:
        rows = self.conn.execute("SELECT name FROM creatures ORDER BY name").fetchall()
        return [row["name"] for row in rows]

    # ----- principals -----
    def get_principal(self, principal_id: str, kind: str = USER) -> Optional[Principal]:
        row = self.conn.execute(
            "SELECT * FROM principals WHERE kind=? AND principal_id=?",
            (kind, str(principal_id)),
        ).fetchone()
        return Principal.from_row(row) if row else None

    def get_opponent(self) -> Optional[Principal]:
        return self.get_principal(OPPONENT_ID, kind=OPPONENT)

    def upsert_principal(self, principal_id: str) -> Principal:
        with self.conn:
            self.conn.execute(
                "INSERT OR IGNORE INTO principals(kind, principal_id, created_at) VALUES(?,?,?)",
                (USER, str(principal_id), time.time()),
            )
        return self.get_principal(principal_id)

    def assign(
        self,
        principal_id: str,
        creature: Creature,
        *,
        kind: str = USER,
        challenger_id: Optional[str] = None,
    ) -> Principal:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO principals(
                  kind, principal_id, assigned_creature, current_health,
                  battle_state, challenger_id, created_at
                ) VALUES (?,?,?,?,?,?,?)
                ON CONFLICT(kind, principal_id) DO UPDATE SET
                  assigned_creature=excluded.assigned_creature,
                  current_health=excluded.current_health,
                  battle_state=excluded.battle_state,
                  challenger_id=excluded.challenger_id
                """,
                (
                    kind,
                    str(principal_id),
                    creature.name,
                    max(0, int(creature.base_health)),
                    ASSIGNED,
                    challenger_id,
                    time.time(),
                ),
            )
        return self.get_principal(principal_id, kind=kind)

    def record_turn(self, user_id: str, user_health: int, opponent_health: int) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE principals SET current_health=?, battle_state=? WHERE kind=? AND principal_id=?",
                (max(0, int(user_health)), IN_BATTLE, USER, str(user_id)),
            )
            self.conn.execute(
                "UPDATE principals SET current_health=?, battle_state=? WHERE kind=? AND principal_id=?",
                (max(0, int(opponent_health)), IN_BATTLE, OPPONENT, OPPONENT_ID),
            )

    def conclude_battle(self, user_id: str) -> None:
        with self.conn:
            for kind, principal_id in ((USER, str(user_id)), (OPPONENT, OPPONENT_ID)):
                self.conn.execute(
                    """
                    UPDATE principals SET assigned_creature=NULL, current_health=?,
                      battle_state=?, challenger_id=NULL
                    WHERE kind=? AND principal_id=?
                    """,
                    (NEUTRAL_HEALTH, IDLE, kind, principal_id),
                )

    # ----- ownership -----
    def reference_owner(self, purchase_ref: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT principal_id FROM owned_creatures WHERE purchase_ref=?",
            (purchase_ref,),
        ).fetchone()
        return row["principal_id"] if row else None

    def add_owned(
        self,
        principal_id: str,
        creature_name: str,
        purchase_ref: str,
        *,
        amount_paid: float = 0.0,
        network: str = "Base",
    ) -> OwnedCreature:
        now = time.time()
        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO owned_creatures(
                      principal_id, creature_name, purchase_ref, purchase_time, amount_paid, network
                    ) VALUES (?,?,?,?,?,?)
                    """,
                    (str(principal_id), creature_name, purchase_ref, now, amount_paid, network),
                )
        except sqlite3.IntegrityError as exc:
            raise AlreadyUsedReference(purchase_ref) from exc
        return OwnedCreature(creature_name, purchase_ref, now, amount_paid, network)

    def list_owned(self, principal_id: str) -> List[OwnedCreature]:
        rows = self.conn.execute(
            "SELECT * FROM owned_creatures WHERE principal_id=? ORDER BY purchase_time, id",
            (str(principal_id),),
        ).fetchall()
        return [OwnedCreature.from_row(row) for row in rows]

    def add_pending(
        self,
        principal_id: str,
        creature_name: str,
        *,
        wallet: str,
        amount: float,
        purchase_ref: Optional[str] = None,
    ) -> PendingPurchase:
        now = time.time()
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO pending_purchases(
                  principal_id, creature_name, request_time, wallet, amount, purchase_ref, status
                ) VALUES (?,?,?,?,?,?,?)
                """,
                (str(principal_id), creature_name, now, wallet, amount, purchase_ref, PENDING),
            )
        return PendingPurchase(cur.lastrowid, creature_name, now, wallet, amount, PENDING, purchase_ref)

    def confirm_pending(self, purchase_id: int) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE pending_purchases SET status=? WHERE id=?",
                (CONFIRMED, purchase_id),
            )

    def supersede_pending(self, principal_id: str, creature_name: str, keep_id: int) -> int:
        """Retire other open requests for a creature once one of them is paid."""
        with self.conn:
            cur = self.conn.execute(
                """
                UPDATE pending_purchases SET status=?
                WHERE principal_id=? AND creature_name=? AND status=? AND id<>?
                """,
                (SUPERSEDED, str(principal_id), creature_name, PENDING, keep_id),
            )
        return cur.rowcount

    def list_pending(self, principal_id: str, status: Optional[str] = PENDING) -> List[PendingPurchase]:
        if status is None:
            rows = self.conn.execute(
                "SELECT * FROM pending_purchases WHERE principal_id=? ORDER BY id",
                (str(principal_id),),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM pending_purchases WHERE principal_id=? AND status=? ORDER BY id",
                (str(principal_id), status),
            ).fetchall()
        return [PendingPurchase.from_row(row) for row in rows]

    # ----- poll cursor -----
    def get_cursor(self, name: str = MENTIONS_CURSOR) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM checkpoints WHERE name=?", (name,)).fetchone()
        return row["value"] if row else None

    def advance_cursor(self, value: str, name: str = MENTIONS_CURSOR) -> str:
        """Move the cursor forward; an older id never rewinds it."""
        current = self.get_cursor(name)
        if current is not None and id_key(value) <= id_key(current):
            return current
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO checkpoints(name, value, updated_at) VALUES(?,?,?)
                ON CONFLICT(name) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (name, str(value), time.time()),
            )
        return str(value)

    # ----- handled message journal -----
    def get_handled(self, message_id: str) -> Optional[HandledMessage]:
        row = self.conn.execute(
            "SELECT * FROM handled_messages WHERE message_id=?", (str(message_id),)
        ).fetchone()
        return HandledMessage.from_row(row) if row else None

    def record_handled(self, message_id: str, reply_text: str, media: Iterable[str] = ()) -> HandledMessage:
        with self.conn:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO handled_messages(message_id, reply_text, media, handled_at)
                VALUES(?,?,?,?)
                """,
                (str(message_id), reply_text, json.dumps([str(m) for m in media]), time.time()),
            )
        return self.get_handled(message_id)

    def note_delivery_failure(self, message_id: str) -> int:
        with self.conn:
            self.conn.execute(
                "UPDATE handled_messages SET attempts=attempts+1 WHERE message_id=?",
                (str(message_id),),
            )
        handled = self.get_handled(message_id)
        return handled.attempts if handled else 0

    def mark_replied(self, message_id: str) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE handled_messages SET replied=1 WHERE message_id=?",
                (str(message_id),),
            )

    def prune_handled(self, cursor: Optional[str], older_than: float) -> int:
        """Drop journal entries the cursor has already moved past."""
        if cursor is None:
            return 0
        rows = self.conn.execute(
            "SELECT message_id FROM handled_messages WHERE handled_at < ?", (older_than,)
        ).fetchall()
        settled = [row["message_id"] for row in rows if id_key(row["message_id"]) <= id_key(cursor)]
        if settled:
            with self.conn:
                self.conn.executemany(
                    "DELETE FROM handled_messages WHERE message_id=?",
                    [(message_id,) for message_id in settled],
                )
        return len(settled)
