"""
Client session

The session is {user, token} held in exactly one storage tier: durable when
the user asked to be remembered, ephemeral otherwise.

The token is built on the client from the user ID, a timestamp and random
characters. It only gates client-side behaviour. The server never sees or
checks it, so anyone who knows a user ID can fabricate a session here.
"""

from typing import Any, Dict, Optional

from client.storage import KeyValueStore, StorageKeys
from ids import now_ms, random_base36


def make_token(user_id: str, clock=now_ms, rng=None) -> str:
    return f"{user_id}_{clock()}_{random_base36(10, rng)}"


class SessionContext:
    def __init__(self, durable: KeyValueStore, ephemeral: KeyValueStore):
        self.durable = durable
        self.ephemeral = ephemeral

    def active_tier(self) -> Optional[KeyValueStore]:
        for tier in (self.durable, self.ephemeral):
            if tier.get(StorageKeys.TOKEN) and tier.get(StorageKeys.USER):
                return tier
        return None

    def get_user(self) -> Optional[Dict[str, Any]]:
        return self.durable.get(StorageKeys.USER) or self.ephemeral.get(StorageKeys.USER) or None

    def get_token(self) -> Optional[str]:
        return self.durable.get(StorageKeys.TOKEN) or self.ephemeral.get(StorageKeys.TOKEN) or None

    def is_logged_in(self) -> bool:
        return bool(self.get_token() and self.get_user())

    def user_id(self) -> Optional[str]:
        user = self.get_user()
        return str(user.get("userId")) if isinstance(user, dict) and user.get("userId") else None

    def start(self, user: Dict[str, Any], token: str, remember_me: bool = True) -> None:
        target, other = (self.durable, self.ephemeral) if remember_me else (self.ephemeral, self.durable)
        other.delete(StorageKeys.TOKEN)
        other.delete(StorageKeys.USER)
        target.set(StorageKeys.TOKEN, token)
        target.set(StorageKeys.USER, user)

    def update_user(self, user: Dict[str, Any]) -> None:
        tier = self.active_tier() or self.durable
        tier.set(StorageKeys.USER, user)

    def clear(self) -> None:
        # Both tiers, whichever one was in use
        for tier in (self.durable, self.ephemeral):
            tier.delete(StorageKeys.TOKEN)
            tier.delete(StorageKeys.USER)
