"""Database infrastructure helpers (engine, sessions, migrations)."""

from .base import Base
from .session import build_engine, build_session_factory, create_all, session_scope

__all__ = ["Base", "build_engine", "build_session_factory", "create_all", "session_scope"]
