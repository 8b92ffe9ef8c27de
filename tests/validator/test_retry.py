"""Tests for the renew-and-retry policy."""

from __future__ import annotations

import asyncio

import pytest

from storkwatch.auth.manager import CredentialManager
from storkwatch.auth.models import Credential
from storkwatch.errors import AuthFailure, TransientFailure, Unauthorized
from storkwatch.validator.retry import RetryPolicy


class CountingIdentity:
    def __init__(self):
        self.calls = 0

    async def authenticate(self, username: str, password: str) -> Credential:
        self.calls += 1
        return Credential.issued(f"token-{self.calls}", "id", "refresh", expires_in=3600)

    async def refresh(self, refresh_token: str) -> Credential:
        return await self.authenticate("", "")


class NullStore:
    def load(self):
        return None

    def save(self, credential):
        pass


def _credentials(identity: CountingIdentity) -> CredentialManager:
    return CredentialManager(identity=identity, store=NullStore(), username="u", password="p")


class Operation:
    """Raises the queued errors in order, then returns the token it was called with."""

    def __init__(self, *errors: BaseException):
        self.errors = list(errors)
        self.tokens: list[str] = []

    async def __call__(self, credential: Credential) -> str:
        self.tokens.append(credential.access_token)
        if self.errors:
            raise self.errors.pop(0)
        return credential.access_token


@pytest.mark.asyncio
class TestRetryPolicy:

    async def test_success_needs_one_attempt(self):
        identity = CountingIdentity()
        op = Operation()

        result = await RetryPolicy().run(op, _credentials(identity))

        assert result == "token-1"
        assert op.tokens == ["token-1"]
        assert identity.calls == 1

    async def test_single_unauthorized_renews_once_and_retries(self):
        identity = CountingIdentity()
        op = Operation(Unauthorized("401"))

        result = await RetryPolicy().run(op, _credentials(identity))

        assert result == "token-2"
        assert op.tokens == ["token-1", "token-2"]
        assert identity.calls == 2

    async def test_second_unauthorized_propagates(self):
        identity = CountingIdentity()
        op = Operation(Unauthorized("401"), Unauthorized("401"), Unauthorized("401"))

        with pytest.raises(Unauthorized):
            await RetryPolicy().run(op, _credentials(identity))

        assert len(op.tokens) == 2
        assert identity.calls == 2

    async def test_transient_failure_is_not_retried(self):
        identity = CountingIdentity()
        op = Operation(TransientFailure("500", status_code=500))

        with pytest.raises(TransientFailure):
            await RetryPolicy().run(op, _credentials(identity))

        assert len(op.tokens) == 1
        assert identity.calls == 1

    async def test_renewal_failure_propagates_as_auth_failure(self):
        class FailingRenewal(CountingIdentity):
            async def refresh(self, refresh_token: str) -> Credential:
                raise AuthFailure("refresh revoked", code="NotAuthorizedException")

            async def authenticate(self, username: str, password: str) -> Credential:
                if self.calls:
                    raise AuthFailure("password changed", code="NotAuthorizedException")
                return await super().authenticate(username, password)

        op = Operation(Unauthorized("401"))

        with pytest.raises(AuthFailure):
            await RetryPolicy().run(op, _credentials(FailingRenewal()))
        assert len(op.tokens) == 1

    async def test_custom_attempt_budget(self):
        identity = CountingIdentity()
        op = Operation(Unauthorized("a"), Unauthorized("b"))

        result = await RetryPolicy(max_attempts=3).run(op, _credentials(identity))

        assert result == "token-3"
        assert len(op.tokens) == 3

    async def test_concurrent_unauthorized_share_one_renewal(self):
        identity = CountingIdentity()
        credentials = _credentials(identity)
        await credentials.obtain_valid()
        ops = [Operation(Unauthorized("401")) for _ in range(10)]

        results = await asyncio.gather(*(RetryPolicy().run(op, credentials) for op in ops))

        assert set(results) == {"token-2"}
        assert identity.calls == 2


class TestRetryPolicyConfig:

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
