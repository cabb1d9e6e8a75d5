"""Runtime settings loaded from the environment.

Role assignments and seed accounts live in JSON files pointed to by environment
variables. A roles file maps an email address to a role name::

    {"srcsteach01@srcs.edu": "teacher", "srcslearn01@srcs.edu": "student"}

An accounts file seeds the in-memory identity provider and also implies the
role of each account::

    {"admin001@srcs.edu": {"password": "change-me", "role": "admin"}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Mapping

from classroom_app.constants.course_constants import DEFAULT_EMAIL_DOMAIN
from classroom_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT


class SettingsError(Exception):
    """Raised when a settings file cannot be read or has the wrong shape."""


@dataclass(slots=True)
class SeedAccount:
    email: str
    password: str
    role: str


@dataclass(slots=True)
class AppSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    email_domain: str = DEFAULT_EMAIL_DOMAIN
    log_level: str = "INFO"
    role_assignments: dict[str, str] = field(default_factory=dict)
    seed_accounts: list[SeedAccount] = field(default_factory=list)

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> "AppSettings":
        env = os.environ if environ is None else environ
        port_text = env.get("CLASSROOM_PORT", str(DEFAULT_PORT))
        try:
            port = int(port_text)
        except ValueError as exc:
            raise SettingsError(f"CLASSROOM_PORT must be an integer, got {port_text!r}.") from exc

        seed_accounts: list[SeedAccount] = []
        accounts_file = env.get("CLASSROOM_ACCOUNTS_FILE")
        if accounts_file:
            seed_accounts = load_seed_accounts(Path(accounts_file))

        role_assignments = {account.email: account.role for account in seed_accounts}
        roles_file = env.get("CLASSROOM_ROLES_FILE")
        if roles_file:
            role_assignments.update(load_role_assignments(Path(roles_file)))

        return cls(
            host=env.get("CLASSROOM_HOST", DEFAULT_HOST),
            port=port,
            email_domain=env.get("CLASSROOM_EMAIL_DOMAIN", DEFAULT_EMAIL_DOMAIN),
            log_level=env.get("CLASSROOM_LOG_LEVEL", "INFO"),
            role_assignments=role_assignments,
            seed_accounts=seed_accounts,
        )


def load_role_assignments(file_path: Path) -> dict[str, str]:
    """Read an email -> role mapping from a JSON file."""
    raw = _read_json(file_path)
    if not isinstance(raw, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in raw.items()
    ):
        raise SettingsError(f"{file_path} must contain a JSON object of email -> role.")
    return {email.strip().lower(): role.strip().lower() for email, role in raw.items()}


def load_seed_accounts(file_path: Path) -> list[SeedAccount]:
    """Read seed accounts from a JSON file."""
    raw = _read_json(file_path)
    if not isinstance(raw, dict):
        raise SettingsError(f"{file_path} must contain a JSON object keyed by email.")
    accounts: list[SeedAccount] = []
    for email, entry in raw.items():
        if not isinstance(entry, dict) or "password" not in entry or "role" not in entry:
            raise SettingsError(f"Account {email!r} needs both 'password' and 'role'.")
        accounts.append(
            SeedAccount(
                email=email.strip().lower(),
                password=str(entry["password"]),
                role=str(entry["role"]).strip().lower(),
            )
        )
    return accounts


def _read_json(file_path: Path) -> object:
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SettingsError(f"Cannot read settings file {file_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Settings file {file_path} is not valid JSON: {exc}") from exc
