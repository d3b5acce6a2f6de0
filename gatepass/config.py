from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

# ----------------------------
# Config & Constants
# ----------------------------
DEFAULT_TICKET_TIERS = {"Solo": 50000, "Couple": 90000, "Group": 180000}
DEFAULT_MAX_QUANTITY = 10
DEFAULT_CURRENCY = "INR"


def _parse_tiers(raw: Optional[str]) -> Dict[str, int]:
    if not raw:
        return dict(DEFAULT_TICKET_TIERS)
    tiers = json.loads(raw)
    if not isinstance(tiers, dict):
        raise ValueError("TICKET_TIERS must be a JSON object of tier -> price")
    return tiers


def _parse_admins(env: Mapping[str, str]) -> Dict[str, str]:
    # ADMIN_USERS="alice:pw1,bob:pw2" wins over the single-admin pair
    raw = env.get("ADMIN_USERS", "")
    admins: Dict[str, str] = {}
    for chunk in raw.split(","):
        if ":" not in chunk:
            continue
        user, password = chunk.split(":", 1)
        if user.strip():
            admins[user.strip()] = password
    if not admins:
        admins[env.get("ADMIN_USERNAME", "admin")] = env.get(
            "ADMIN_PASSWORD", "supasecret"
        )
    return admins


@dataclass(frozen=True)
class Config:
    database_url: str = "sqlite:///./gatepass.db"
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_gate_limit: Optional[int] = None

    paysession_backend: str = "sql"  # 'sql' | 'redis'
    redis_url: str = "redis://127.0.0.1:6379"
    redis_max_conn: int = 512
    payment_session_ttl_seconds: int = 24 * 3600

    gateway: str = "razorpay"  # 'razorpay' | 'mock'
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_base: str = "https://api.razorpay.com"
    mock_secret: str = "supersecret"

    currency: str = DEFAULT_CURRENCY
    ticket_tiers: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_TICKET_TIERS)
    )
    max_quantity: int = DEFAULT_MAX_QUANTITY

    session_secret: str = "dev-secret-change-me"
    credential_secret: str = ""
    admins: Dict[str, str] = field(
        default_factory=lambda: {"admin": "supasecret"}
    )
    admin_token_ttl_seconds: int = 12 * 3600
    user_token_ttl_seconds: int = 7 * 24 * 3600

    log_level: str = "INFO"
    log_file: str = ""

    @property
    def signing_secret_for_credentials(self) -> str:
        return self.credential_secret or self.session_secret

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if env is None else env
        gate = env.get("DB_GATE_LIMIT")
        return cls(
            database_url=env.get("DATABASE_URL", cls.database_url),
            db_pool_size=int(env.get("DB_POOL_SIZE", "10")),
            db_max_overflow=int(env.get("DB_MAX_OVERFLOW", "10")),
            db_pool_timeout=int(env.get("DB_POOL_TIMEOUT", "30")),
            db_gate_limit=int(gate) if gate else None,
            paysession_backend=env.get("PAYSESSION_BACKEND", "sql").lower(),
            redis_url=env.get("REDIS_URL", cls.redis_url),
            redis_max_conn=int(env.get("REDIS_MAX_CONN", "512")),
            payment_session_ttl_seconds=int(
                env.get("PAYMENT_SESSION_TTL_SECONDS", str(24 * 3600))
            ),
            gateway=env.get("GATEWAY", "razorpay").lower(),
            razorpay_key_id=env.get("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=env.get("RAZORPAY_KEY_SECRET", ""),
            razorpay_api_base=env.get(
                "RAZORPAY_API_BASE", cls.razorpay_api_base
            ),
            mock_secret=env.get("MOCK_SECRET", cls.mock_secret),
            currency=env.get("CURRENCY", DEFAULT_CURRENCY),
            ticket_tiers=_parse_tiers(env.get("TICKET_TIERS")),
            max_quantity=int(
                env.get("MAX_QUANTITY", str(DEFAULT_MAX_QUANTITY))
            ),
            session_secret=env.get("SESSION_SECRET", cls.session_secret),
            credential_secret=env.get("CREDENTIAL_SECRET", ""),
            admins=_parse_admins(env),
            admin_token_ttl_seconds=int(
                env.get("ADMIN_TOKEN_TTL_SECONDS", str(12 * 3600))
            ),
            user_token_ttl_seconds=int(
                env.get("USER_TOKEN_TTL_SECONDS", str(7 * 24 * 3600))
            ),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_file=env.get("LOG_FILE", ""),
        )
