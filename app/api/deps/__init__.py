"""API dependencies - re-exports from submodules."""

from .auth import (
    CurrentUser,
    RlsDbSession,
    get_current_user,
    get_db_with_rls,
    get_jwks,
    get_signing_key,
    security,
)

__all__ = [
    "security",
    "get_jwks",
    "get_signing_key",
    "get_current_user",
    "get_db_with_rls",
    "RlsDbSession",
    "CurrentUser",
]
