"""Identity provider contract and an in-process implementation.

The provider only knows credentials and principals. Profiles and roles belong
to the application and live in the document store (see ``IdentityGate``).
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import logging
import secrets
from threading import Lock
from typing import Callable, Protocol
from uuid import uuid4

from classroom_app.core.errors import AuthError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated subject as reported by the identity provider."""

    uid: str
    email: str


PrincipalListener = Callable[[str, "Principal | None"], None]


class IdentityProvider(Protocol):
    def sign_in(self, email: str, password: str) -> Principal: ...

    def sign_out(self, uid: str) -> None: ...

    def on_principal_changed(self, callback: PrincipalListener) -> Callable[[], None]: ...

    def create_account(self, email: str, password: str) -> Principal: ...

    def delete_account(self, email: str) -> None: ...


@dataclass(slots=True)
class _Account:
    principal: Principal
    password_hash: str


class InMemoryIdentityProvider:
    """Email/password provider holding salted password hashes in memory."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._accounts: dict[str, _Account] = {}
        self._signed_in: set[str] = set()
        self._listeners: dict[str, PrincipalListener] = {}

    def create_account(self, email: str, password: str) -> Principal:
        key = _normalize_email(email)
        if not key or not password:
            raise ValidationError("Email and password are required.")
        with self._lock:
            if key in self._accounts:
                raise ValidationError(f"An account for {key} already exists.")
            principal = Principal(uid=uuid4().hex, email=key)
            self._accounts[key] = _Account(principal=principal, password_hash=_hash_password(password))
        logger.info("Created identity for %s", key)
        return principal

    def delete_account(self, email: str) -> None:
        key = _normalize_email(email)
        with self._lock:
            account = self._accounts.pop(key, None)
            if account is None:
                raise NotFoundError(f"No account for {key}.")
            self._signed_in.discard(account.principal.uid)

    def sign_in(self, email: str, password: str) -> Principal:
        key = _normalize_email(email)
        with self._lock:
            account = self._accounts.get(key)
            if account is None or not _verify_password(password, account.password_hash):
                raise AuthError("Invalid credentials.")
            self._signed_in.add(account.principal.uid)
            principal = account.principal
        self._emit(principal.uid, principal)
        return principal

    def sign_out(self, uid: str) -> None:
        with self._lock:
            was_signed_in = uid in self._signed_in
            self._signed_in.discard(uid)
        if was_signed_in:
            self._emit(uid, None)

    def is_signed_in(self, uid: str) -> bool:
        with self._lock:
            return uid in self._signed_in

    def on_principal_changed(self, callback: PrincipalListener) -> Callable[[], None]:
        key = uuid4().hex
        with self._lock:
            self._listeners[key] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(key, None)

        return unsubscribe

    def _emit(self, uid: str, principal: Principal | None) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(uid, principal)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _hash_password(password: str) -> str:
    salt = secrets.token_hex(8)
    digest = hashlib.sha256((salt + password).encode()).hexdigest()
    return f"{salt}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        salt, digest = password_hash.split("$")
    except ValueError:
        return False
    candidate = hashlib.sha256((salt + password).encode()).hexdigest()
    return hmac.compare_digest(candidate, digest)
