"""Signed user and admin tokens.

Passcode login happens elsewhere; that service mints user tokens with the
shared session secret and gatepass only reads them. Admins trade configured
credentials for a token, and every admin operation receives the decoded
`AdminSession` explicitly.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import Forbidden, Unauthenticated
from .helpers import ct_equal, is_valid_email

USER_SALT = "gatepass.user"
ADMIN_SALT = "gatepass.admin"


@dataclass(frozen=True)
class Payer:
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AdminSession:
    admin_id: str


class TokenService:
    def __init__(self, secret: str, admins: Dict[str, str],
                 admin_ttl_seconds: int = 12 * 3600,
                 user_ttl_seconds: int = 7 * 24 * 3600) -> None:
        self._users = URLSafeTimedSerializer(secret, salt=USER_SALT)
        self._admins = URLSafeTimedSerializer(secret, salt=ADMIN_SALT)
        self.admin_credentials = dict(admins)
        self.admin_ttl = admin_ttl_seconds
        self.user_ttl = user_ttl_seconds

    # ---- users

    def issue_user_token(self, user_id: str,
                         email: Optional[str] = None) -> str:
        return self._users.dumps({"sub": user_id, "email": email})

    def read_user_token(self, token: Optional[str]) -> Payer:
        data = self._load(self._users, token, self.user_ttl)
        sub = data.get("sub") if isinstance(data, dict) else None
        if not isinstance(sub, str) or not sub:
            raise Unauthenticated("Invalid token")
        email = data.get("email")
        return Payer(
            user_id=sub,
            email=email.strip() if is_valid_email(email) else None,
        )

    # ---- admins

    def login(self, username: str, password: str) -> str:
        username = (username or "").strip()
        ok = False
        for known, known_pw in self.admin_credentials.items():
            # compare every entry so timing does not reveal which user exists
            if ct_equal(username, known) & ct_equal(password or "", known_pw):
                ok = True
        if not ok:
            raise Unauthenticated("Invalid credentials.")
        return self._admins.dumps({"admin": username})

    def read_admin_token(self, token: Optional[str]) -> AdminSession:
        data = self._load(self._admins, token, self.admin_ttl)
        admin_id = data.get("admin") if isinstance(data, dict) else None
        if not isinstance(admin_id, str) or not admin_id:
            raise Unauthenticated("Invalid token")
        if admin_id not in self.admin_credentials:
            raise Forbidden()
        return AdminSession(admin_id=admin_id)

    @staticmethod
    def _load(serializer: URLSafeTimedSerializer, token: Optional[str],
              max_age: int):
        if not token:
            raise Unauthenticated()
        try:
            return serializer.loads(token, max_age=max_age)
        except SignatureExpired:
            raise Unauthenticated("Token expired") from None
        except BadSignature:
            raise Unauthenticated("Invalid token") from None
