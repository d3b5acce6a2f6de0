import time
import re
import uuid
from datetime import datetime, timezone
import hmac
import hashlib
from typing import Optional


# ----------------------------
# Helpers
# ----------------------------
def now_ts() -> float:
    return time.time()


def to_iso(ts: float | None) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip()
    # simple but effective email check
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def _utf8(s: str) -> bytes:
    # untrusted input may carry lone surrogates; they must compare, not raise
    return s.encode("utf-8", "surrogatepass")


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(_utf8(a), _utf8(b))


def hmac_hex(secret: str, message: str) -> str:
    return hmac.new(
        _utf8(secret), _utf8(message), hashlib.sha256
    ).hexdigest()


def utf8_len(s: str) -> int:
    return len(_utf8(s))
