"""Network configuration constants for the classroom service."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
SESSION_COOKIE: str = "classroom_session"
SESSION_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 12
