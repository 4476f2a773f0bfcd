import os
from dotenv import load_dotenv
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional

load_dotenv()

# namespace for everything we persist; not configurable on purpose
APP_KEY = "vault-saga"

@dataclass
class Settings:
    # signing / chain
    RPC_URL_DEFAULT: str
    PRIVATE_KEY: str  # hex 0x...
    READ_ONLY_MODE: bool

    # protocol contracts (spenders)
    LENDING_POOL: str
    SWAP_ENGINE: str

    # legacy pool that predates the on-chain registry
    LEGACY_POOL_TOKEN_A: str
    LEGACY_POOL_TOKEN_B: str
    LEGACY_POOL_ID: str

    # tx behaviour
    GAS_STRATEGY: str = "buffered"
    MAX_GAS_USD: Optional[float] = None
    ETH_USD_HINT: Optional[float] = None
    CONFIRMATION_TIMEOUT_SEC: float = 120.0

    # quotes
    TOKEN_DECIMALS: int = 18
    QUOTE_QUIET_PERIOD_SEC: float = 2.0
    DEFAULT_MAX_SLIPPAGE_BPS: int = 50
    DEFAULT_POOL_FEE_RATE_BPS: int = 30

    # persistence
    STORE_BACKEND: str = "file"               # file | mongo
    DATA_ROOT: str = "data"                   # ./data/session_store.json
    SESSION_ID: str = "default"
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "vault_saga"

    # asset address (lower) -> shadow ledger category
    ASSET_CATEGORIES: Dict[str, str] = field(default_factory=dict)

    # generic
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"


def _bool(s: str | None) -> bool:
    return str(s or "").strip().lower() in ("1", "true", "yes", "y", "on")

def _float_or_none(s: str | None) -> Optional[float]:
    if s is None or not str(s).strip():
        return None
    return float(s)

def parse_categories(s: str | None) -> Dict[str, str]:
    """
    "0xabc:gold,0xdef:real_estate" -> {"0xabc": "gold", "0xdef": "real_estate"}
    """
    out: Dict[str, str] = {}
    if not s:
        return out
    for item in s.split(","):
        item = item.strip()
        if not item:
            continue
        addr, sep, cat = item.partition(":")
        if not sep or not cat.strip():
            raise ValueError(f"bad ASSET_CATEGORIES entry: {item!r}")
        out[addr.strip().lower()] = cat.strip()
    return out

@lru_cache()
def get_settings() -> Settings:
    return Settings(
        RPC_URL_DEFAULT=os.environ["RPC_URL"],
        PRIVATE_KEY=os.environ.get("PRIVATE_KEY", ""),  # keep empty when missing
        READ_ONLY_MODE=_bool(os.environ.get("READ_ONLY_MODE")),

        LENDING_POOL=os.environ.get("LENDING_POOL", "0xFeE2CC90da44D83A4C1426d67EdD0F3b03d0204e"),
        SWAP_ENGINE=os.environ.get("SWAP_ENGINE", "0x4536b242ea3d3b5c412f5db159353b7ca6ed003e"),

        LEGACY_POOL_TOKEN_A=os.environ.get("LEGACY_POOL_TOKEN_A", "0x0000000000000000000000000000000000636359"),
        LEGACY_POOL_TOKEN_B=os.environ.get("LEGACY_POOL_TOKEN_B", "0x00000000000000000000000000000000006363ad"),
        LEGACY_POOL_ID=os.environ.get(
            "LEGACY_POOL_ID",
            "0xf91ed1b328aa7736110334f0687e7904734786118bac577039dd662f566f04e2",
        ),

        GAS_STRATEGY=os.environ.get("GAS_STRATEGY", "buffered"),
        MAX_GAS_USD=_float_or_none(os.environ.get("MAX_GAS_USD")),
        ETH_USD_HINT=_float_or_none(os.environ.get("ETH_USD_HINT")),
        CONFIRMATION_TIMEOUT_SEC=float(os.environ.get("CONFIRMATION_TIMEOUT_SEC", "120")),

        TOKEN_DECIMALS=int(os.environ.get("TOKEN_DECIMALS", "18")),
        QUOTE_QUIET_PERIOD_SEC=float(os.environ.get("QUOTE_QUIET_PERIOD_SEC", "2.0")),
        DEFAULT_MAX_SLIPPAGE_BPS=int(os.environ.get("DEFAULT_MAX_SLIPPAGE_BPS", "50")),
        DEFAULT_POOL_FEE_RATE_BPS=int(os.environ.get("DEFAULT_POOL_FEE_RATE_BPS", "30")),

        STORE_BACKEND=os.environ.get("STORE_BACKEND", "file"),
        DATA_ROOT=os.environ.get("DATA_ROOT", "data"),
        SESSION_ID=os.environ.get("SESSION_ID", "default"),
        MONGODB_URI=os.environ.get("MONGODB_URI", "mongodb://localhost:27017"),
        MONGODB_DB_NAME=os.environ.get("MONGODB_DB_NAME", "vault_saga"),

        ASSET_CATEGORIES=parse_categories(os.environ.get("ASSET_CATEGORIES")),

        ENV=os.environ.get("ENV", "dev"),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
