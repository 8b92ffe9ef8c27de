"""HTTP client for the Stork oracle partner API.

Classifies every failure into the shared taxonomy: 401 is Unauthorized,
any other non-2xx, timeout or transport error is TransientFailure, and an
undecodable or incomplete body is MalformedResponse. Retrying is left to
RetryPolicy; this client makes exactly one request per call.
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
import httpx

from storkwatch.auth.models import Credential
from storkwatch.errors import MalformedResponse, TransientFailure, Unauthorized

from .models import Attestation, UserStats
from .proxies import ProxyDescriptor

DEFAULT_BASE_URL = "https://app-api.jp.stork-oracle.network/v1"
DEFAULT_ORIGIN = "chrome-extension://knnliglhgkmlblppdejchidfihjnockl"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
)


class StorkApiClient:
    """One httpx.AsyncClient, optionally routed through a single proxy."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        proxy: ProxyDescriptor | None = None,
        origin: str = DEFAULT_ORIGIN,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.proxy = proxy
        headers = {
            "Content-Type": "application/json",
            "Origin": origin,
            "User-Agent": user_agent,
        }
        kwargs: dict[str, Any] = {"timeout": timeout, "headers": headers}
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy is not None:
            kwargs["proxy"] = proxy.url
        self._client = httpx.AsyncClient(**kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StorkApiClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _auth_headers(self, credential: Credential) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential.access_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        credential: Credential,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        endpoint = f"{method} {path}"
        try:
            resp = await self._client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._auth_headers(credential),
                json=payload,
            )
        except httpx.TimeoutException as e:
            raise TransientFailure(f"{endpoint} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransientFailure(f"{endpoint} transport error: {e}") from e

        if resp.status_code == 401:
            bt.logging.debug({"stork_request": {"endpoint": endpoint, "status": 401}})
            raise Unauthorized(f"{endpoint} rejected the access token")
        if not resp.is_success:
            raise TransientFailure(
                f"{endpoint} failed: {resp.status_code} {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _data(resp: httpx.Response) -> Any:
        try:
            body = resp.json()
        except ValueError as e:
            raise MalformedResponse(f"undecodable body: {e}") from e
        if not isinstance(body, dict) or "data" not in body:
            raise MalformedResponse("response has no data field")
        return body["data"]

    # -- Endpoints --

    async def fetch_attestations(self, credential: Credential) -> list[Attestation]:
        """GET /stork_signed_prices; insertion order of the mapping is kept."""
        resp = await self._request("GET", "/stork_signed_prices", credential)
        data = self._data(resp)
        if not isinstance(data, dict):
            raise MalformedResponse("signed prices payload is not a mapping")
        return [Attestation.from_payload(str(asset), entry) for asset, entry in data.items()]

    async def submit_validation(
        self, credential: Credential, message_hash: str, valid: bool,
    ) -> None:
        """POST /stork_signed_prices/validations."""
        await self._request(
            "POST",
            "/stork_signed_prices/validations",
            credential,
            payload={"msg_hash": message_hash, "valid": valid},
        )

    async def get_user_stats(self, credential: Credential) -> UserStats:
        """GET /me."""
        resp = await self._request("GET", "/me", credential)
        return UserStats.from_payload(self._data(resp))


__all__ = ["DEFAULT_BASE_URL", "StorkApiClient"]
