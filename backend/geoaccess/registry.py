"""Server-side session registry: one profile session store per signed-in uid.

Stores are opened on sign-in (or lazily from a valid token after a restart)
and closed on sign-out. Idle stores are pruned by a scheduler job in
``main.py``, which also refreshes the shared ``OrgDirectory``.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from geoaccess.config import settings
from geoaccess.schemas import Identity, OrgDirectory
from geoaccess.session import IdentityProvider, ProfileSessionStore, ProfileSource

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        identity_provider: IdentityProvider,
        profile_source: ProfileSource,
        directory: OrgDirectory | None = None,
        developer_emails: Iterable[str] | None = None,
        settle_seconds: float | None = None,
    ) -> None:
        self.identity_provider = identity_provider
        self.profile_source = profile_source
        self.directory = directory or OrgDirectory()
        self.developer_emails = developer_emails
        self.settle_seconds = (
            settings.SESSION_SETTLE_SECONDS if settle_seconds is None else settle_seconds
        )
        self._stores: dict[str, ProfileSessionStore] = {}
        self._last_seen: dict[str, float] = {}
        # uid -> wall-clock time of its last sign-out
        self._signed_out_at: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, uid: str) -> bool:
        return uid in self._stores

    def new_store(self) -> ProfileSessionStore:
        return ProfileSessionStore(
            self.identity_provider,
            self.profile_source,
            directory=self.directory,
            developer_emails=self.developer_emails,
        )

    async def login(self, email: str, password: str) -> ProfileSessionStore:
        """Sign in on a fresh store and register it under the identity's uid.

        ``IdentityError`` from the provider propagates to the caller.
        """
        store = self.new_store()
        identity = await store.login(email, password)
        self._replace(identity.uid, store)
        await store.wait_until_settled(self.settle_seconds)
        logger.info(f"[sessions] {identity.uid}: signed in ({store.state.value})")
        return store

    async def get_or_open(self, identity: Identity) -> ProfileSessionStore:
        """Store for *identity*, opened from the token's claims if absent."""
        store = self._stores.get(identity.uid)
        if store is None:
            store = self.new_store()
            store.handle_identity_changed(identity)
            self._replace(identity.uid, store)
            logger.info(f"[sessions] {identity.uid}: reopened from token")
        self._last_seen[identity.uid] = time.monotonic()
        await store.wait_until_settled(self.settle_seconds)
        return store

    def get(self, uid: str) -> ProfileSessionStore | None:
        return self._stores.get(uid)

    def is_revoked(self, uid: str, issued_at: float | None) -> bool:
        """True for a token of *uid* issued before its last sign-out."""
        signed_out_at = self._signed_out_at.get(uid)
        if signed_out_at is None:
            return False
        return issued_at is None or float(issued_at) <= signed_out_at

    async def logout(self, uid: str) -> None:
        """Sign out and forget the store; local state is dropped even if the
        provider fails, and its ``IdentityError`` is re-raised. Tokens
        issued before this call stop opening sessions."""
        store = self._stores.pop(uid, None)
        self._last_seen.pop(uid, None)
        self._signed_out_at[uid] = time.time()
        if store is None:
            return
        try:
            await store.logout()
        finally:
            store.close()

    def set_directory(self, directory: OrgDirectory) -> None:
        self.directory = directory
        for store in self._stores.values():
            store.directory = directory

    def prune_idle(self, max_idle_seconds: float | None = None) -> list[str]:
        """Close stores not used for *max_idle_seconds*; returns their uids."""
        if max_idle_seconds is None:
            max_idle_seconds = settings.SESSION_IDLE_MINUTES * 60
        cutoff = time.monotonic() - max_idle_seconds
        stale = [uid for uid, seen in self._last_seen.items() if seen < cutoff]
        for uid in stale:
            self._stores.pop(uid).close()
            del self._last_seen[uid]
        if stale:
            logger.info(f"[sessions] pruned {len(stale)} idle session(s)")
        return stale

    def close_all(self) -> None:
        for store in self._stores.values():
            store.close()
        self._stores.clear()
        self._last_seen.clear()

    def _replace(self, uid: str, store: ProfileSessionStore) -> None:
        previous = self._stores.get(uid)
        if previous is not None and previous is not store:
            previous.close()
        self._stores[uid] = store
        self._last_seen[uid] = time.monotonic()
