"""Identity-provider exchanges producing a Credential.

Cognito's ``initiate_auth`` is a public API, so requests go out unsigned
and no AWS account credentials are needed. Every failure mode (rejected
password, locked user, unreachable endpoint, unexpected challenge) is
raised as AuthFailure; callers only branch on success/failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import bittensor as bt
import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storkwatch.errors import AuthFailure

from .models import Credential


@runtime_checkable
class IdentityClient(Protocol):
    """Password and refresh-token exchanges."""

    async def authenticate(self, username: str, password: str) -> Credential:
        ...

    async def refresh(self, refresh_token: str) -> Credential:
        ...


class CognitoIdentityClient:
    """IdentityClient backed by an AWS Cognito user pool app client."""

    def __init__(
        self,
        client_id: str,
        region: str = "ap-northeast-1",
        auth_flow: str = "USER_PASSWORD_AUTH",
        endpoint_url: str | None = None,
        timeout: float = 30.0,
        client: Any = None,
    ):
        self.client_id = client_id
        self.auth_flow = auth_flow
        if client is None:
            kwargs: dict[str, Any] = {
                "region_name": region,
                "config": Config(
                    signature_version=UNSIGNED,
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 2},
                ),
            }
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("cognito-idp", **kwargs)
        self._client = client

    async def authenticate(self, username: str, password: str) -> Credential:
        resp = await self._initiate(
            self.auth_flow,
            {"USERNAME": username, "PASSWORD": password},
        )
        bt.logging.info({"identity": {"event": "authenticated", "username": username}})
        return self._to_credential(resp, fallback_refresh_token="")

    async def refresh(self, refresh_token: str) -> Credential:
        if not refresh_token:
            raise AuthFailure("no refresh token held", code="MissingRefreshToken")
        resp = await self._initiate(
            "REFRESH_TOKEN_AUTH",
            {"REFRESH_TOKEN": refresh_token},
        )
        bt.logging.info({"identity": {"event": "refreshed"}})
        # Cognito only rotates the refresh token when rotation is enabled on the pool
        return self._to_credential(resp, fallback_refresh_token=refresh_token)

    async def _initiate(self, flow: str, params: dict[str, str]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self._client.initiate_auth,
                AuthFlow=flow,
                ClientId=self.client_id,
                AuthParameters=params,
            )
        except ClientError as e:
            err = e.response.get("Error", {})
            raise AuthFailure(
                err.get("Message", str(e)),
                code=err.get("Code", "ClientError"),
            ) from e
        except BotoCoreError as e:
            raise AuthFailure(str(e), code=type(e).__name__) from e

    @staticmethod
    def _to_credential(resp: dict[str, Any], fallback_refresh_token: str) -> Credential:
        result = resp.get("AuthenticationResult")
        if not result:
            challenge = resp.get("ChallengeName", "unknown")
            raise AuthFailure(f"unsupported auth challenge: {challenge}", code="ChallengeRequired")
        try:
            return Credential.issued(
                access_token=result["AccessToken"],
                id_token=result.get("IdToken", ""),
                refresh_token=result.get("RefreshToken") or fallback_refresh_token,
                expires_in=float(result.get("ExpiresIn", 3600)),
            )
        except KeyError as e:
            raise AuthFailure(f"token response missing {e}", code="MalformedResponse") from e


__all__ = ["CognitoIdentityClient", "IdentityClient"]
