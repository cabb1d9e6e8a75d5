"""Service mapping identity-provider principals onto application profiles."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
import secrets
import string
from threading import Lock
from typing import Callable, Mapping
from uuid import uuid4

from classroom_app.constants.course_constants import (
    DEFAULT_EMAIL_DOMAIN,
    DEFAULT_GENDER,
    GENERATED_PASSWORD_LENGTH,
    USERS,
)
from classroom_app.core.document_store import DocumentStore, FieldFilter
from classroom_app.core.errors import AuthError, NotFoundError, ValidationError
from classroom_app.core.identity_provider import IdentityProvider, Principal
from classroom_app.core.models import Role, UserProfile

logger = logging.getLogger(__name__)

SessionListener = Callable[["UserProfile | None"], None]


@dataclass(slots=True)
class Session:
    token: str
    principal_id: str
    profile: UserProfile


class RoleDirectory:
    """Email -> role assignments, loaded from configuration at startup."""

    def __init__(self, assignments: Mapping[str, str] | None = None) -> None:
        self._lock = Lock()
        self._roles: dict[str, Role] = {}
        for email, role in (assignments or {}).items():
            self.assign(email, role)

    def role_for(self, email: str) -> Role | None:
        with self._lock:
            return self._roles.get(email.strip().lower())

    def assign(self, email: str, role: Role | str) -> None:
        try:
            resolved = Role(role)
        except ValueError as exc:
            raise ValidationError(f"Unknown role {role!r} for {email}.") from exc
        with self._lock:
            self._roles[email.strip().lower()] = resolved

    def remove(self, email: str) -> None:
        with self._lock:
            self._roles.pop(email.strip().lower(), None)


class IdentityGate:
    """Login, logout, session lookup and profile management."""

    def __init__(
        self,
        store: DocumentStore,
        provider: IdentityProvider,
        roles: RoleDirectory,
        email_domain: str = DEFAULT_EMAIL_DOMAIN,
    ) -> None:
        self._store = store
        self._provider = provider
        self._roles = roles
        self._email_domain = email_domain
        self._lock = Lock()
        self._sessions: dict[str, Session] = {}
        self._listeners: dict[str, SessionListener] = {}
        self._provider.on_principal_changed(self._handle_principal_changed)

    # --- Sessions ---

    def compose_email(self, username: str) -> str:
        cleaned = username.strip().lower()
        if not cleaned:
            raise ValidationError("Username is required.")
        if "@" in cleaned:
            return cleaned
        return f"{cleaned}@{self._email_domain}"

    def login(self, username: str, password: str, selected_role: Role | str) -> Session:
        email = self.compose_email(username)
        try:
            selected = Role(selected_role)
        except ValueError as exc:
            raise AuthError(f"Unknown role {selected_role!r}.") from exc

        designated = self._roles.role_for(email)
        if designated is None:
            logger.warning("Login rejected for %s: no role assigned", email)
            raise AuthError("Invalid credentials.")
        admin_via_teacher = designated is Role.ADMIN and selected is Role.TEACHER
        if designated is not selected and not admin_via_teacher:
            logger.warning("Login rejected for %s: selected %s", email, selected.value)
            raise AuthError(f"You are not registered as a {selected.value}.")

        principal = self._provider.sign_in(email, password)
        profile = self.get_profile(principal.uid)
        if profile is None:
            profile = self._create_profile(principal, designated)

        session = Session(token=uuid4().hex, principal_id=principal.uid, profile=profile)
        with self._lock:
            self._sessions[session.token] = session
        logger.info("User %s signed in as %s", email, profile.role.value)
        self._emit(profile)
        return session

    def logout(self, token: str) -> None:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            return
        self._provider.sign_out(session.principal_id)
        logger.info("User %s signed out", session.profile.email)

    def current_session(self, token: str | None) -> Session | None:
        if not token:
            return None
        with self._lock:
            return self._sessions.get(token)

    def require_session(self, token: str | None) -> Session:
        session = self.current_session(token)
        if session is None:
            raise AuthError("Not signed in.")
        return session

    def refresh_profile(self, token: str) -> Session:
        session = self.require_session(token)
        profile = self.get_profile(session.principal_id)
        if profile is None:
            raise NotFoundError("Profile no longer exists.")
        with self._lock:
            session.profile = profile
        return session

    def on_session_changed(self, callback: SessionListener) -> Callable[[], None]:
        key = uuid4().hex
        with self._lock:
            self._listeners[key] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(key, None)

        return unsubscribe

    # --- Profiles ---

    def get_profile(self, user_id: str) -> UserProfile | None:
        snapshot = self._store.get(USERS, user_id)
        if snapshot is None:
            return None
        return UserProfile.from_document(snapshot.id, snapshot.data)

    def update_profile(
        self,
        user_id: str,
        first_name: str | None = None,
        last_name: str | None = None,
        gender: str | None = None,
    ) -> UserProfile:
        changes: dict[str, str] = {}
        if first_name is not None:
            changes["firstName"] = _require_text(first_name, "First name")
        if last_name is not None:
            changes["lastName"] = _require_text(last_name, "Last name")
        if gender is not None:
            changes["gender"] = gender.strip() or DEFAULT_GENDER
        if self.get_profile(user_id) is None:
            raise NotFoundError(f"Profile {user_id} not found.")
        if changes:
            self._store.update(USERS, user_id, changes)
        updated = self.get_profile(user_id)
        if updated is None:
            raise NotFoundError(f"Profile {user_id} not found.")
        with self._lock:
            for session in self._sessions.values():
                if session.principal_id == user_id:
                    session.profile = updated
        return updated

    def list_students(self) -> list[UserProfile]:
        snapshots = self._store.query(USERS, [FieldFilter("role", "==", Role.STUDENT.value)])
        return [UserProfile.from_document(item.id, item.data) for item in snapshots]

    # --- Account provisioning ---

    def provision_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        role: Role | str,
    ) -> tuple[UserProfile, str]:
        """Create credentials, role assignment and profile; return the generated password."""
        address = self.compose_email(email)
        try:
            resolved = Role(role)
        except ValueError as exc:
            raise ValidationError(f"Unknown role {role!r}.") from exc
        first = _require_text(first_name, "First name")
        last = _require_text(last_name, "Last name")

        password = _generate_password()
        principal = self._provider.create_account(address, password)
        self._roles.assign(address, resolved)
        profile = UserProfile(
            id=principal.uid,
            email=address,
            first_name=first,
            last_name=last,
            role=resolved,
        )
        self._store.set(USERS, profile.id, profile.to_document())
        logger.info("Provisioned %s account for %s", resolved.value, address)
        return profile, password

    def register_account(self, email: str, password: str, role: Role | str) -> None:
        """Register seed credentials; the profile is created on first login."""
        address = self.compose_email(email)
        self._roles.assign(address, role)
        self._provider.create_account(address, password)

    def list_accounts(self) -> list[UserProfile]:
        return [UserProfile.from_document(item.id, item.data) for item in self._store.query(USERS)]

    def delete_account(self, user_id: str) -> None:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found.")
        self._provider.delete_account(profile.email)
        self._roles.remove(profile.email)
        self._store.delete(USERS, user_id)
        logger.info("Deleted account %s", profile.email)

    # --- Internals ---

    def _create_profile(self, principal: Principal, role: Role) -> UserProfile:
        local_part = principal.email.split("@")[0]
        name_parts = re.sub(r"\d+", " ", local_part).split()
        profile = UserProfile(
            id=principal.uid,
            email=principal.email,
            first_name=name_parts[0] if name_parts else "New",
            last_name=" ".join(name_parts[1:]) or "User",
            role=role,
        )
        self._store.set(USERS, profile.id, profile.to_document())
        logger.info("Created profile for %s on first login", principal.email)
        return profile

    def _handle_principal_changed(self, uid: str, principal: Principal | None) -> None:
        if principal is not None:
            return
        with self._lock:
            stale = [token for token, session in self._sessions.items() if session.principal_id == uid]
            for token in stale:
                del self._sessions[token]
        self._emit(None)

    def _emit(self, profile: UserProfile | None) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(profile)


def _require_text(value: str, label: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(f"{label} must not be empty.")
    return cleaned


def _generate_password() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(GENERATED_PASSWORD_LENGTH))
