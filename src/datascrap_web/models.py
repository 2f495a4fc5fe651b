from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class User:
    id: str
    email: str | None
    full_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Account"


@dataclass(frozen=True)
class Session:
    access_token: str
    refresh_token: str | None
    expires_at: int | None
    user_id: str | None

    def is_expired(self, now: int, leeway: int = 30) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - leeway <= now


@dataclass(frozen=True)
class Profile:
    user_id: str
    subscription_status: str | None
    subscription_tier: str | None
    data: dict[str, Any] = field(default_factory=dict)
