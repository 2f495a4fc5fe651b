from __future__ import annotations

from .identity import AuthResult, IdentityClient, IdentityError
from .session import (
    AuthRedirect,
    get_current_user,
    redirect_if_authenticated,
    require_auth,
    token_provider_for,
)

__all__ = [
    "AuthRedirect",
    "AuthResult",
    "IdentityClient",
    "IdentityError",
    "get_current_user",
    "redirect_if_authenticated",
    "require_auth",
    "token_provider_for",
]
