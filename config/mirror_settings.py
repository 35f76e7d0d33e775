"""
Trade Mirror Configuration for Polymarket
Watch a wallet's fills and replicate them through the CLOB
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional, List

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

# === POLYMARKET APIS ===
CLOB_API_URL = "https://clob.polymarket.com"
DATA_API_URL = "https://data-api.polymarket.com"
CHAIN_ID = 137  # Polygon mainnet

# === POLYGON WEBSOCKET ===
# Any node exposing eth_subscribe works; dedicated providers are more reliable:
# - Alchemy: wss://polygon-mainnet.g.alchemy.com/v2/YOUR_API_KEY
POLYGON_WSS_URL = "wss://polygon-bor-rpc.publicnode.com"

# === POLYMARKET CONTRACTS (Polygon) ===
CTF_EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_CTF_EXCHANGE = "0xC5d563A36AE78145C45a50134d48A1215220f80a"

EXCHANGES = {
    "CTF_EXCHANGE": CTF_EXCHANGE_ADDRESS,
    "NEG_RISK_CTF_EXCHANGE": NEG_RISK_CTF_EXCHANGE,
}

# === FEEDS ===
# Seconds to wait before resubscribing after the websocket drops
RECONNECT_DELAY = 5.0

# Activity polling
POLL_INTERVAL = 1.0
ACTIVITY_LIMIT = 200
# Activity rows this many seconds older than the watermark are backlog
WATERMARK_TOLERANCE = 5

# === DEDUP ===
SEEN_TRADES_CAPACITY = 10_000

# === EXECUTION ===
# FAK = fill-and-kill (immediate-or-cancel)
ORDER_TYPE = "FAK"
ORDER_TYPES = ("FAK", "FOK", "GTC", "GTD")
SIGNATURE_TYPE = 2  # Polymarket proxy wallet
MIRROR_WORKERS = 1
MIRROR_QUEUE_SIZE = 100

# === LOGGING ===
LOG_FILE = "data/mirror_logs/mirror.log"
LOG_LEVEL = "INFO"
TRADE_LOG_FILE = "data/mirror_logs/trades.jsonl"

FEEDS = ("events", "poll")

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[a-fA-F0-9]{64}$")


class ConfigError(ValueError):
    """Missing or malformed startup configuration"""


def load_env(env_file: Optional[str] = None) -> None:
    """Load a .env file into the process environment (existing vars win)"""
    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_feeds() -> List[str]:
    raw = os.getenv("FEEDS", ",".join(FEEDS))
    return [f.strip().lower() for f in raw.split(",") if f.strip()]


@dataclass
class MirrorSettings:
    """
    Runtime settings, each field defaulting from the environment

    Authentication:
    - private_key: key of the wallet that signs mirrored orders
    - funder_address: Polymarket proxy wallet (shown under the profile picture)
    - signature_type: 2 for proxy wallets, 1 for Magic.link, 0 for plain EOA
    """

    # Authentication
    private_key: str = field(default_factory=lambda: os.getenv("PRIVATE_KEY", ""))
    funder_address: str = field(default_factory=lambda: os.getenv("FUNDER_ADDRESS", ""))
    signature_type: int = field(default_factory=lambda: _env_number("SIGNATURE_TYPE", SIGNATURE_TYPE, int))

    # Wallet to mirror
    target_address: str = field(default_factory=lambda: os.getenv("TARGET_ADDRESS", ""))

    # Endpoints
    polygon_wss_url: str = field(default_factory=lambda: os.getenv("POLYGON_WSS_URL", POLYGON_WSS_URL))
    clob_api_url: str = field(default_factory=lambda: os.getenv("CLOB_API_URL", CLOB_API_URL))
    data_api_url: str = field(default_factory=lambda: os.getenv("DATA_API_URL", DATA_API_URL))

    # Feeds
    feeds: List[str] = field(default_factory=_env_feeds)
    poll_interval: float = field(default_factory=lambda: _env_number("POLL_INTERVAL", POLL_INTERVAL, float))
    activity_limit: int = field(default_factory=lambda: _env_number("ACTIVITY_LIMIT", ACTIVITY_LIMIT, int))
    reconnect_delay: float = field(default_factory=lambda: _env_number("RECONNECT_DELAY", RECONNECT_DELAY, float))
    seen_capacity: int = field(default_factory=lambda: _env_number("SEEN_TRADES_CAPACITY", SEEN_TRADES_CAPACITY, int))

    # Execution
    order_type: str = field(default_factory=lambda: os.getenv("ORDER_TYPE", ORDER_TYPE).upper())
    mirror_workers: int = field(default_factory=lambda: _env_number("MIRROR_WORKERS", MIRROR_WORKERS, int))
    dry_run: bool = field(default_factory=lambda: _env_bool("DRY_RUN", "true"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", LOG_LEVEL))
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", LOG_FILE))
    trade_log_file: str = field(default_factory=lambda: os.getenv("TRADE_LOG_FILE", TRADE_LOG_FILE))

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate settings

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if not self.target_address:
            errors.append("TARGET_ADDRESS is required")
        elif not Web3.is_address(self.target_address):
            errors.append(f"TARGET_ADDRESS is not a valid address: {self.target_address}")

        if self.private_key or not self.dry_run:
            if not self.private_key:
                errors.append("PRIVATE_KEY is required for live trading")
            elif not _PRIVATE_KEY_RE.match(self.private_key):
                errors.append("PRIVATE_KEY should be 64 hex characters (with or without 0x prefix)")
            else:
                try:
                    Account.from_key(self.private_key)
                except Exception as e:
                    errors.append(f"PRIVATE_KEY rejected: {e}")

        if not self.dry_run and self.signature_type in (1, 2) and not self.funder_address:
            errors.append(
                "FUNDER_ADDRESS is required for proxy wallets. "
                "It is shown under the profile picture on polymarket.com"
            )
        if self.funder_address and not Web3.is_address(self.funder_address):
            errors.append(f"FUNDER_ADDRESS is not a valid address: {self.funder_address}")

        if self.order_type not in ORDER_TYPES:
            errors.append(f"ORDER_TYPE must be one of {', '.join(ORDER_TYPES)}")

        unknown = [f for f in self.feeds if f not in FEEDS]
        if unknown or not self.feeds:
            errors.append(f"FEEDS must be a subset of {','.join(FEEDS)}, got {self.feeds}")

        if self.poll_interval <= 0:
            errors.append("POLL_INTERVAL must be > 0")
        if self.activity_limit <= 0:
            errors.append("ACTIVITY_LIMIT must be > 0")
        if self.mirror_workers < 1:
            errors.append("MIRROR_WORKERS must be >= 1")
        if self.seen_capacity < 1:
            errors.append("SEEN_TRADES_CAPACITY must be >= 1")

        return len(errors) == 0, errors

    def require_valid(self) -> "MirrorSettings":
        """Raise ConfigError listing every problem"""
        is_valid, errors = self.validate()
        if not is_valid:
            raise ConfigError("; ".join(errors))
        return self

    def print_summary(self):
        """Print configuration summary"""
        funder = self.funder_address
        print("=" * 60)
        print("POLYMARKET TRADE MIRROR CONFIGURATION")
        print("=" * 60)

        print("\n[Authentication]")
        print(f"  PRIVATE_KEY:    {'Set' if self.private_key else 'MISSING'}")
        print(f"  FUNDER_ADDRESS: {funder[:10] + '...' + funder[-6:] if funder else 'MISSING'}")
        print(f"  SIGNATURE_TYPE: {self.signature_type}")

        print("\n[Target]")
        print(f"  TARGET_ADDRESS: {self.target_address or 'MISSING'}")
        print(f"  FEEDS:          {','.join(self.feeds)}")
        print(f"  POLL_INTERVAL:  {self.poll_interval}s (limit {self.activity_limit})")

        print("\n[Execution]")
        print(f"  ORDER_TYPE:     {self.order_type}")
        print(f"  WORKERS:        {self.mirror_workers}")
        print(f"  DRY_RUN:        {self.dry_run}")

        print("=" * 60)


def load_settings(env_file: Optional[str] = None) -> MirrorSettings:
    """
    Load settings from the environment after reading the .env file

    Raises:
        ConfigError: If a numeric variable does not parse
    """
    load_env(env_file)
    return MirrorSettings()
