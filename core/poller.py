"""Mention polling loop.

Each cycle fetches mentions newer than the stored cursor, answers them oldest
first and moves the cursor only after a reply went out. Replies are journalled
per message id before delivery, so a re-polled mention re-sends the stored reply
instead of running the game logic twice.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol, Sequence

from .errors import RateLimited
from .commands import mentioned_handles
from .game import Game
from .store import SessionStore, id_key

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mention:
    id: str
    author_id: str
    text: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Identity:
    id: str
    username: str


class FeedClient(Protocol):
    async def fetch_mentions(
        self, *, since_id: Optional[str] = None, start_time: Optional[datetime] = None
    ) -> List[Mention]:
        ...

    async def post_reply(
        self, text: str, in_reply_to_id: str, media_ids: Optional[Sequence[str]] = None
    ) -> str:
        ...

    async def upload_media(self, path: Path) -> Optional[str]:
        ...

    async def get_self_identity(self) -> Identity:
        ...


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay: float = 1.0
    max_delay: float = 60.0
    max_retries: int = 3
    rate_limit_margin: float = 1.0


@dataclass(frozen=True)
class BackoffDecision:
    wait: float
    stop: bool


def backoff(
    attempt: int,
    policy: BackoffPolicy,
    *,
    reset_at: Optional[float] = None,
    now: Optional[float] = None,
) -> BackoffDecision:
    """How long to wait after failure number ``attempt`` and whether to stop.

    A known rate-limit reset wins: wait it out plus the margin, then stop the
    cycle. Otherwise the wait doubles per attempt up to ``max_delay`` and the
    cycle stops once ``max_retries`` is exceeded.
    """
    if reset_at is not None:
        now = time.time() if now is None else now
        return BackoffDecision(max(0.0, reset_at - now) + policy.rate_limit_margin, True)
    if attempt > policy.max_retries:
        return BackoffDecision(0.0, True)
    return BackoffDecision(min(policy.base_delay * 2 ** attempt, policy.max_delay), False)


class MentionPoller:
    def __init__(
        self,
        feed: FeedClient,
        game: Game,
        store: SessionStore,
        *,
        bot_user_id: str,
        bot_username: str,
        policy: BackoffPolicy = BackoffPolicy(),
        lookback: timedelta = timedelta(hours=1),
        message_delay: float = 1.0,
        media_attempts: int = 3,
        media_retry_delay: float = 2.0,
        max_delivery_attempts: Optional[int] = None,
        journal_retention: timedelta = timedelta(days=7),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.feed = feed
        self.game = game
        self.store = store
        self.bot_user_id = str(bot_user_id)
        self.bot_username = bot_username.lstrip("@")
        self.policy = policy
        self.lookback = lookback
        self.message_delay = message_delay
        self.media_attempts = media_attempts
        self.media_retry_delay = media_retry_delay
        self.max_delivery_attempts = max_delivery_attempts
        self.journal_retention = journal_retention
        self.sleep = sleep
        self.clock = clock

    # ----- fetching -----
    async def fetch(self, cursor: Optional[str]) -> List[Mention]:
        if cursor:
            log.info("Checking mentions since %s", cursor)
            return await self.feed.fetch_mentions(since_id=cursor)
        start = datetime.fromtimestamp(self.clock(), tz=timezone.utc) - self.lookback
        log.info("First poll: checking mentions since %s", start.isoformat())
        return await self.feed.fetch_mentions(start_time=start)

    def select(self, mentions: Iterable[Mention], cursor: Optional[str]) -> List[Mention]:
        handle = f"@{self.bot_username.lower()}"
        selected: List[Mention] = []
        for mention in mentions:
            if str(mention.author_id) == self.bot_user_id:
                continue
            if cursor and id_key(mention.id) <= id_key(cursor):
                continue
            if handle not in mentioned_handles(mention.text):
                log.debug("mention %s does not address %s, skipping", mention.id, handle)
                continue
            selected.append(mention)
        return sorted(selected, key=lambda m: id_key(m.id))

    async def _fetch_with_retry(self, cursor: Optional[str]) -> Optional[List[Mention]]:
        attempt = 0
        while True:
            try:
                return await self.fetch(cursor)
            except Exception as exc:
                attempt += 1
                decision = backoff(
                    attempt,
                    self.policy,
                    reset_at=getattr(exc, "reset_at", None),
                    now=self.clock(),
                )
                if isinstance(exc, RateLimited) and exc.reset_at is not None:
                    log.warning("Rate limited. Waiting %.0f seconds...", decision.wait)
                    await self.sleep(decision.wait)
                    return None
                log.error("Polling error: %s", exc)
                if decision.stop:
                    log.error("Max retries reached. Will try again on next polling interval.")
                    return None
                log.info(
                    "Retrying in %.0f seconds... (attempt %d/%d)",
                    decision.wait,
                    attempt,
                    self.policy.max_retries,
                )
                await self.sleep(decision.wait)

    # ----- cycle -----
    async def poll_once(self, cursor: Optional[str]) -> Optional[str]:
        """Run one polling cycle and return the cursor it ended on."""
        mentions = await self._fetch_with_retry(cursor)
        if mentions is None:
            return cursor
        batch = self.select(mentions, cursor)
        if not batch:
            log.info("No new mentions found")
            return cursor
        log.info("Processing %d new mentions", len(batch))
        for index, mention in enumerate(batch):
            try:
                delivered = await self.process(mention)
            except RateLimited as exc:
                decision = backoff(0, self.policy, reset_at=exc.reset_at, now=self.clock())
                log.warning("Rate limited while replying. Waiting %.0f seconds...", decision.wait)
                await self.sleep(decision.wait)
                return cursor
            except Exception:
                log.exception("Cycle aborted while processing mention %s", mention.id)
                return cursor
            if not delivered and not self._give_up(mention):
                log.warning("Reply to %s failed; it will be retried next cycle", mention.id)
                return cursor
            cursor = self.store.advance_cursor(mention.id)
            if index + 1 < len(batch):
                await self.sleep(self.message_delay)
        horizon = self.clock() - self.journal_retention.total_seconds()
        pruned = self.store.prune_handled(cursor, horizon)
        if pruned:
            log.debug("Pruned %d settled journal entries", pruned)
        return cursor

    def _give_up(self, mention: Mention) -> bool:
        attempts = self.store.note_delivery_failure(mention.id)
        if self.max_delivery_attempts is not None and attempts >= self.max_delivery_attempts:
            log.warning(
                "Giving up on mention %s after %d failed deliveries", mention.id, attempts
            )
            return True
        return False

    async def process(self, mention: Mention) -> bool:
        handled = self.store.get_handled(mention.id)
        if handled is None:
            log.info("Processing mention %s from %s: %s", mention.id, mention.author_id, mention.text)
            reply = await self.game.handle_message(mention.author_id, mention.text)
            handled = self.store.record_handled(mention.id, reply.text, [str(p) for p in reply.media])
        elif handled.replied:
            log.info("Mention %s already answered, skipping", mention.id)
            return True
        else:
            log.info("Re-sending stored reply for mention %s", mention.id)
        sent = await self.send_reply(mention.id, handled.reply_text, [Path(p) for p in handled.media])
        if sent:
            self.store.mark_replied(mention.id)
        return sent

    # ----- replying -----
    async def upload_all(self, paths: Sequence[Path]) -> List[str]:
        for attempt in range(1, self.media_attempts + 1):
            media_ids: List[Optional[str]] = []
            for path in paths:
                try:
                    media_ids.append(await self.feed.upload_media(path))
                except RateLimited:
                    raise
                except Exception as exc:
                    log.warning("Error during media upload of %s: %s", path, exc)
                    media_ids.append(None)
            if all(media_ids):
                return [str(media_id) for media_id in media_ids]
            log.info("Media upload attempt %d/%d failed", attempt, self.media_attempts)
            if attempt < self.media_attempts:
                await self.sleep(self.media_retry_delay)
        log.warning("All media upload attempts failed, sending reply without media")
        return []

    async def send_reply(self, in_reply_to_id: str, text: str, media: Sequence[Path] = ()) -> bool:
        media_ids = await self.upload_all(media) if media else []
        try:
            await self.feed.post_reply(text, in_reply_to_id, media_ids=media_ids or None)
            log.info("Response sent to %s", in_reply_to_id)
            return True
        except RateLimited:
            raise
        except Exception as exc:
            log.warning("Error sending reply to %s: %s", in_reply_to_id, exc)
            if not media_ids:
                return False
        log.info("Retrying reply to %s without media", in_reply_to_id)
        try:
            await self.feed.post_reply(text, in_reply_to_id)
            log.info("Response sent to %s without media", in_reply_to_id)
            return True
        except RateLimited:
            raise
        except Exception as exc:
            log.warning("Error sending retry without media to %s: %s", in_reply_to_id, exc)
            return False

    async def run_forever(self, interval: float, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        cursor = self.store.get_cursor()
        log.info("Polling for mentions every %.0f seconds", interval)
        while not stop_event.is_set():
            try:
                cursor = await self.poll_once(cursor)
            except Exception:
                log.exception("Polling cycle failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
