from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .catalog import CATALOG_FILE
from .errors import FatalStartupError
from .payments import DEFAULT_RPC_URL

log = logging.getLogger(__name__)

REQUIRED = {
    "BOT_USER_ID": "Please add the bot's account id to your .env file as BOT_USER_ID",
    "BOT_USERNAME": "Please add the bot username to your .env file as BOT_USERNAME",
}


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring non-numeric %s=%r; using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    bot_user_id: str
    bot_username: str
    twitter_api_key: str = ""
    twitter_api_secret: str = ""
    twitter_access_token: str = ""
    twitter_access_secret: str = ""
    twitter_bearer_token: str = ""
    rpc_url: str = DEFAULT_RPC_URL
    payment_wallet: str = ""
    db_path: str = "mentionmon.db"
    assets_dir: Path = Path("assets/creatures")
    catalog_path: Path = CATALOG_FILE
    poll_interval: float = 120.0
    lookback_minutes: float = 60.0
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        missing = [name for name in REQUIRED if not (env.get(name) or "").strip()]
        if missing:
            raise FatalStartupError("\n".join(REQUIRED[name] for name in missing))
        payment_wallet = (env.get("PAYMENT_WALLET_ADDRESS") or "").strip()
        if not payment_wallet:
            log.warning("PAYMENT_WALLET_ADDRESS is not set; purchases cannot be confirmed.")
        return cls(
            bot_user_id=env["BOT_USER_ID"].strip(),
            bot_username=env["BOT_USERNAME"].strip().lstrip("@"),
            twitter_api_key=env.get("TWITTER_API_KEY", ""),
            twitter_api_secret=env.get("TWITTER_API_SECRET", ""),
            twitter_access_token=env.get("TWITTER_ACCESS_TOKEN", ""),
            twitter_access_secret=env.get("TWITTER_ACCESS_SECRET", ""),
            twitter_bearer_token=env.get("TWITTER_BEARER_TOKEN", ""),
            rpc_url=env.get("BASE_NODE_URL") or DEFAULT_RPC_URL,
            payment_wallet=payment_wallet,
            db_path=env.get("DB_PATH") or "mentionmon.db",
            assets_dir=Path(env.get("ASSETS_DIR") or "assets/creatures"),
            catalog_path=Path(env["CATALOG_PATH"]) if env.get("CATALOG_PATH") else CATALOG_FILE,
            poll_interval=_number(env, "POLL_INTERVAL_SECONDS", 120.0),
            lookback_minutes=_number(env, "LOOKBACK_MINUTES", 60.0),
            port=int(_number(env, "PORT", 3000)),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
