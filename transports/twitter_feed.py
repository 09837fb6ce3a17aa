import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import aiohttp
import tweepy
from tweepy.asynchronous import AsyncClient

from core.errors import RateLimited, TransientProviderError
from core.poller import Identity, Mention

log = logging.getLogger(__name__)

MAX_MEDIA_BYTES = 5 * 1024 * 1024
MAX_RESULTS = 100


def _reset_time(exc: tweepy.TooManyRequests) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("x-rate-limit-reset")
    try:
        return float(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception) -> Exception:
    """Map tweepy/network failures onto the poller's transient error types."""
    if isinstance(exc, tweepy.TooManyRequests):
        return RateLimited(_reset_time(exc), str(exc))
    if isinstance(exc, (tweepy.TwitterServerError, aiohttp.ClientError, asyncio.TimeoutError)):
        return TransientProviderError(str(exc) or exc.__class__.__name__)
    return exc


class TwitterFeed:
    """X/Twitter API v2 mentions feed, with v1.1 media uploads."""

    def __init__(
        self,
        *,
        bot_user_id: str,
        api_key: str,
        api_secret: str,
        access_token: str,
        access_secret: str,
        bearer_token: Optional[str] = None,
    ):
        self.bot_user_id = str(bot_user_id)
        self.client = AsyncClient(
            bearer_token=bearer_token or None,
            consumer_key=api_key,
            consumer_secret=api_secret,
            access_token=access_token,
            access_token_secret=access_secret,
        )
        auth = tweepy.OAuth1UserHandler(api_key, api_secret, access_token, access_secret)
        self.media_api = tweepy.API(auth)

    async def get_self_identity(self) -> Identity:
        try:
            response = await self.client.get_me(user_auth=True)
        except Exception as exc:
            raise translate_error(exc) from exc
        user = response.data
        return Identity(id=str(user.id), username=str(user.username))

    async def fetch_mentions(
        self, *, since_id: Optional[str] = None, start_time: Optional[datetime] = None
    ) -> List[Mention]:
        params = {
            "max_results": MAX_RESULTS,
            "tweet_fields": ["author_id", "created_at", "text"],
            "expansions": ["referenced_tweets.id"],
            "user_auth": True,
        }
        if since_id:
            params["since_id"] = since_id
        elif start_time:
            params["start_time"] = start_time
        # pages arrive newest first
        tweets = []
        while True:
            try:
                response = await self.client.get_users_mentions(self.bot_user_id, **params)
            except Exception as exc:
                raise translate_error(exc) from exc
            tweets.extend(response.data or [])
            meta = getattr(response, "meta", None) or {}
            log.debug("mentions page: %d tweets, meta=%s", len(response.data or []), meta)
            next_token = meta.get("next_token")
            if not next_token:
                break
            params["pagination_token"] = next_token
        return [
            Mention(
                id=str(tweet.id),
                author_id=str(tweet.author_id),
                text=tweet.text or "",
                created_at=tweet.created_at,
            )
            for tweet in tweets
        ]

    async def post_reply(
        self, text: str, in_reply_to_id: str, media_ids: Optional[Sequence[str]] = None
    ) -> str:
        try:
            response = await self.client.create_tweet(
                text=text,
                in_reply_to_tweet_id=in_reply_to_id,
                media_ids=list(media_ids) if media_ids else None,
                user_auth=True,
            )
        except Exception as exc:
            raise translate_error(exc) from exc
        data = response.data or {}
        return str(data.get("id", ""))

    async def upload_media(self, path: Path) -> Optional[str]:
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as exc:
            log.warning("Media file %s unavailable: %s", path, exc)
            return None
        if size > MAX_MEDIA_BYTES:
            log.error(
                "File %s is too large (%.2fMB). Max size is 5MB.", path, size / (1024 * 1024)
            )
            return None

        def _upload() -> str:
            media = self.media_api.media_upload(filename=str(path))
            return str(media.media_id_string)

        loop = asyncio.get_running_loop()
        try:
            media_id = await loop.run_in_executor(None, _upload)
        except Exception as exc:
            raise translate_error(exc) from exc
        log.info("Uploaded media %s as %s", path, media_id)
        return media_id
