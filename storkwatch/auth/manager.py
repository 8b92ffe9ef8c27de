"""Owner of the single live Credential.

Renewal is single-flight: the first caller that finds the credential
missing or expired starts one renewal task, and every caller arriving
while it runs awaits that same task. Cognito refresh tokens are not safe
to exchange twice concurrently, so a second renewal is never started
while one is in flight.

A renewed credential is written to the store before it replaces the
held one, so the on-disk copy is never older than the in-memory one. If
that write fails the credential is still used, the breach is logged and
the write is retried on every later call until it lands.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable

import bittensor as bt

from storkwatch.errors import AuthFailure

from .identity import IdentityClient
from .models import Credential
from .store import CredentialStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialManager:
    """Hands out a currently valid credential, renewing transparently."""

    def __init__(
        self,
        identity: IdentityClient,
        store: CredentialStore,
        username: str,
        password: str,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.identity = identity
        self.store = store
        self.username = username
        self._password = password
        self._clock = clock

        self._credential: Credential | None = None
        self._inflight: asyncio.Task[Credential] | None = None
        self._persist_pending = False
        self.renewal_count = 0

    @property
    def current(self) -> Credential | None:
        return self._credential

    def load(self) -> Credential | None:
        """Seed the held credential from the store (startup only)."""
        self._credential = self.store.load()
        return self._credential

    async def obtain_valid(self, min_ttl: float = 0.0) -> Credential:
        """Return a credential valid for at least ``min_ttl`` more seconds.

        Raises:
            AuthFailure: both refresh and password authentication failed.
        """
        cred = self._credential
        if cred is not None and not cred.is_expired(self._clock(), min_ttl):
            self._retry_pending_persist(cred)
            return cred
        return await self._join_renewal()

    async def renew(self, stale: Credential | None) -> Credential:
        """Force renewal after the server rejected ``stale``.

        If someone already replaced ``stale`` with a still-valid credential,
        that one is returned and no identity call is made.
        """
        cred = self._credential
        if (
            self._inflight is None
            and cred is not None
            and cred != stale
            and not cred.is_expired(self._clock())
        ):
            self._retry_pending_persist(cred)
            return cred
        return await self._join_renewal()

    async def _join_renewal(self) -> Credential:
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._renew())
        # shield: one waiter being cancelled must not cancel the renewal for the rest
        return await asyncio.shield(self._inflight)

    async def _renew(self) -> Credential:
        try:
            held = self._credential
            credential: Credential | None = None
            method = "password"

            if held is not None and held.refresh_token:
                try:
                    credential = await self.identity.refresh(held.refresh_token)
                    method = "refresh"
                except AuthFailure as e:
                    bt.logging.warning({
                        "credential_manager": {
                            "event": "refresh_rejected",
                            "username": self.username,
                            "error": str(e),
                            "fallback": "password",
                        }
                    })

            if credential is None:
                if not self._password:
                    raise AuthFailure("no password configured", code="MissingPassword")
                try:
                    credential = await self.identity.authenticate(self.username, self._password)
                except AuthFailure as e:
                    bt.logging.error({
                        "credential_manager": {
                            "event": "authentication_failed",
                            "username": self.username,
                            "error": str(e),
                        }
                    })
                    raise

            self._persist(credential)
            self._credential = credential
            self.renewal_count += 1

            bt.logging.info({
                "credential_manager": {
                    "event": "renewed",
                    "method": method,
                    "username": self.username,
                    "token": credential.token_hint,
                    "expires_at": credential.expires_at.isoformat(),
                }
            })
            return credential
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

    @property
    def persist_pending(self) -> bool:
        """True while the store holds an older credential than memory."""
        return self._persist_pending

    def _persist(self, credential: Credential) -> None:
        try:
            self.store.save(credential)
        except OSError as e:
            self._persist_pending = True
            bt.logging.error({
                "credential_manager": {
                    "event": "persist_failed",
                    "username": self.username,
                    "token": credential.token_hint,
                    "error": str(e),
                    "store_behind_memory": True,
                }
            })
            return
        if self._persist_pending:
            bt.logging.info({"credential_manager": {"event": "persist_recovered", "username": self.username}})
        self._persist_pending = False

    def _retry_pending_persist(self, credential: Credential) -> None:
        if self._persist_pending and self._inflight is None:
            self._persist(credential)


__all__ = ["CredentialManager"]
