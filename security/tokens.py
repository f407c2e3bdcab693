"""
HS256 bearer tokens for sessions and email-verification links.

Expiry is checked against the injected clock instead of PyJWT's wall clock so
that every time comparison in the subsystem goes through one place.
"""
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from security.errors import InvalidOrExpiredToken

SESSION = "session"
VERIFY_EMAIL = "verify-email"


def _to_ts(when: datetime) -> int:
    return int(when.replace(tzinfo=timezone.utc).timestamp())


def _from_ts(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


class TokenSigner:
    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        if not secret_key:
            raise ValueError("A secret key is required to sign tokens")
        self.secret_key = secret_key
        self.algorithm = algorithm

    def issue(self, purpose: str, subject, issued_at: datetime, ttl: timedelta, **claims) -> str:
        payload = {
            **claims,
            "sub": str(subject),
            "purpose": purpose,
            "iat": _to_ts(issued_at),
            "exp": _to_ts(issued_at + ttl),
            # two tokens minted in the same second must still differ
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def read(self, token: str, purpose: str, now: datetime) -> dict:
        """Return the claims of a token that is authentic, of `purpose`, and unexpired at `now`."""
        if not token or not isinstance(token, str):
            raise InvalidOrExpiredToken()
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={
                    "require": ["sub", "exp", "iat", "purpose"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidOrExpiredToken() from exc

        if claims.get("purpose") != purpose:
            raise InvalidOrExpiredToken()
        if now >= _from_ts(claims["exp"]):
            raise InvalidOrExpiredToken()
        return claims

    @staticmethod
    def subject_id(claims: dict) -> int:
        try:
            return int(claims["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidOrExpiredToken() from exc
