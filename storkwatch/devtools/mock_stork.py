"""In-process fake of the Stork partner API for local runs and tests.

Routes (under ``/v1``):
  GET  /stork_signed_prices              - current attestation mapping
  POST /stork_signed_prices/validations  - record a verdict, bump counters
  GET  /me                               - account info + cumulative counters

Only tokens in ``accepted_tokens`` are honoured; everything else gets 401.
Setting ``force_unauthorized`` to N rejects the next N requests regardless
of token, which imitates a server-side session revocation.
"""

from __future__ import annotations

import time
from typing import Any

import bittensor as bt
from aiohttp import web

from storkwatch.auth.models import Credential


def signed_price(msg_hash: str, price: str = "1000000000000000000", age_seconds: float = 0.0) -> dict[str, Any]:
    """Build one ``stork_signed_prices`` entry produced ``age_seconds`` ago."""
    timestamp_ns = int((time.time() - age_seconds) * 1_000_000_000)
    return {
        "price": price,
        "timestamped_signature": {
            "msg_hash": msg_hash,
            "timestamp": timestamp_ns,
            "signature": {"r": "0x0", "s": "0x0", "v": "0x1b"},
        },
    }


class StaticIdentityClient:
    """IdentityClient issuing sequential tokens the mock server accepts."""

    def __init__(self, server: "MockStorkServer", expires_in: float = 3600.0):
        self.server = server
        self.expires_in = expires_in
        self.calls: list[str] = []

    def _issue(self) -> Credential:
        n = len(self.calls)
        token = f"dev-access-{n}"
        self.server.accepted_tokens.add(token)
        return Credential.issued(
            access_token=token,
            id_token=f"dev-id-{n}",
            refresh_token=f"dev-refresh-{n}",
            expires_in=self.expires_in,
        )

    async def authenticate(self, username: str, password: str) -> Credential:
        self.calls.append("authenticate")
        return self._issue()

    async def refresh(self, refresh_token: str) -> Credential:
        self.calls.append("refresh")
        return self._issue()


class MockStorkServer:
    """Lightweight aiohttp server imitating the partner API."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8790,
        accepted_tokens: set[str] | None = None,
        prices: dict[str, Any] | None = None,
        valid_count: int = 0,
        invalid_count: int = 0,
        email: str = "validator@example.com",
    ):
        self.host = host
        self.port = port
        self.accepted_tokens: set[str] = set(accepted_tokens or ())
        self.prices: dict[str, Any] = dict(prices or {})
        self.valid_count = valid_count
        self.invalid_count = invalid_count
        self.email = email

        self.force_unauthorized = 0
        self.validations: list[dict[str, Any]] = []
        self.request_counts: dict[str, int] = {}
        self._runner: web.AppRunner | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/v1"

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v1/stork_signed_prices", self._handle_prices)
        app.router.add_post("/v1/stork_signed_prices/validations", self._handle_validation)
        app.router.add_get("/v1/me", self._handle_me)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._runner = web.AppRunner(self._build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        bt.logging.info({"mock_stork": {"status": "started", "port": self.port}})

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            bt.logging.info({"mock_stork": "stopped"})

    # -- Auth --

    def _authorized(self, request: web.Request, endpoint: str) -> bool:
        self.request_counts[endpoint] = self.request_counts.get(endpoint, 0) + 1
        if self.force_unauthorized > 0:
            self.force_unauthorized -= 1
            return False
        auth = request.headers.get("Authorization", "")
        return auth.startswith("Bearer ") and auth[7:] in self.accepted_tokens

    # -- Routes --

    async def _handle_prices(self, request: web.Request) -> web.Response:
        if not self._authorized(request, "prices"):
            return web.json_response({"error": "unauthorized"}, status=401)
        return web.json_response({"data": self.prices})

    async def _handle_validation(self, request: web.Request) -> web.Response:
        if not self._authorized(request, "validations"):
            return web.json_response({"error": "unauthorized"}, status=401)
        try:
            body = await request.json()
            msg_hash = body["msg_hash"]
            valid = bool(body["valid"])
        except (KeyError, TypeError, ValueError):
            return web.json_response({"error": "invalid_body"}, status=400)

        self.validations.append({"msg_hash": msg_hash, "valid": valid})
        if valid:
            self.valid_count += 1
        else:
            self.invalid_count += 1
        return web.json_response({"message": "ok"})

    async def _handle_me(self, request: web.Request) -> web.Response:
        if not self._authorized(request, "me"):
            return web.json_response({"error": "unauthorized"}, status=401)
        return web.json_response({
            "data": {
                "email": self.email,
                "id": "user-1",
                "referral_code": "REF123",
                "stats": {
                    "stork_signed_prices_valid_count": self.valid_count,
                    "stork_signed_prices_invalid_count": self.invalid_count,
                    "stork_signed_prices_last_verified_at": None,
                    "referral_usage_count": 0,
                },
            }
        })


__all__ = ["MockStorkServer", "StaticIdentityClient", "signed_price"]
