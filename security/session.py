import hmac
from datetime import datetime, timedelta

from security.errors import InvalidOrExpiredToken, SessionAlreadyActive
from security.password import hash_token
from security.tokens import SESSION

UNKNOWN_DEVICE = "Unknown Device"


class SessionGuard:
    """
    One live bearer token per account.

    The raw token goes to the client; only its hash is stored on the account.
    A token is accepted for a request only while it is still the account's
    stored token, which is what makes "logged in on another device" visible.
    """

    def __init__(self, store, signer, clock, ttl: timedelta = timedelta(hours=1)):
        self.store = store
        self.signer = signer
        self.clock = clock
        self.ttl = ttl

    def is_active(self, account, now: datetime) -> bool:
        if account.active_session_token_hash is None:
            return False
        # a stored session whose token has expired can no longer be used by anyone,
        # so it is reclaimed here instead of blocking login until an explicit logout
        if account.session_created_at is not None and now >= account.session_created_at + self.ttl:
            return False
        return True

    def try_acquire(self, account, device_label: str = None) -> str:
        """Issue and store a new token. Persists the account, along with any pending changes on it."""
        now = self.clock.now()
        if self.is_active(account, now):
            raise SessionAlreadyActive(account.active_device)

        role = getattr(account.role, "value", account.role)
        raw_token = self.signer.issue(SESSION, account.id, now, self.ttl, role=role)

        account.active_session_token_hash = hash_token(raw_token)
        account.active_device = (device_label or UNKNOWN_DEVICE)[:255]
        account.session_created_at = now
        self.store.save(account)
        return raw_token

    def release(self, account) -> None:
        if (
            account.active_session_token_hash is None
            and account.active_device is None
            and account.session_created_at is None
        ):
            return
        account.active_session_token_hash = None
        account.active_device = None
        account.session_created_at = None
        self.store.save(account)

    def validate(self, raw_token: str, account) -> bool:
        try:
            claims = self.signer.read(raw_token, SESSION, self.clock.now())
            subject = self.signer.subject_id(claims)
        except InvalidOrExpiredToken:
            return False

        stored = account.active_session_token_hash
        if subject != account.id or stored is None:
            return False
        return hmac.compare_digest(stored, hash_token(raw_token))
