"""Dry-run the validator against the in-process fake partner API.

Starts MockStorkServer with a mix of fresh, stale and incomplete signed
prices, then runs a few validation cycles with a static identity client
(no Cognito round-trip) and prints each cycle's reconciled outcome.

Usage:
    python scripts/dev/run_mock_stork.py
    python scripts/dev/run_mock_stork.py --cycles 3 --workers 4 --port 8790
"""

from __future__ import annotations

import argparse
import asyncio
import tempfile
from pathlib import Path

import bittensor as bt

from storkwatch.auth import CredentialManager, FileCredentialStore
from storkwatch.devtools.mock_stork import MockStorkServer, StaticIdentityClient, signed_price
from storkwatch.validator import (
    AttestationFetcher,
    CycleScheduler,
    ProxyPool,
    StorkApiClient,
    ValidationDispatcher,
)


def _seed_prices(n_fresh: int, n_stale: int) -> dict:
    prices = {}
    for i in range(n_fresh):
        prices[f"FRESH{i}USD"] = signed_price(f"0xfresh{i:04d}", age_seconds=30)
    for i in range(n_stale):
        prices[f"STALE{i}USD"] = signed_price(f"0xstale{i:04d}", age_seconds=2 * 3600)
    prices["BROKENUSD"] = {"price": "1"}
    return prices


async def _run(args: argparse.Namespace) -> None:
    server = MockStorkServer(port=args.port, prices=_seed_prices(args.fresh, args.stale))
    await server.start()
    identity = StaticIdentityClient(server)

    with tempfile.TemporaryDirectory() as tmp:
        credentials = CredentialManager(
            identity=identity,
            store=FileCredentialStore(Path(tmp) / "tokens.json"),
            username="dev@example.com",
            password="dev",
        )

        def client_factory(proxy=None) -> StorkApiClient:
            return StorkApiClient(base_url=server.base_url, timeout=5.0, proxy=proxy)

        client = client_factory()
        scheduler = CycleScheduler(
            credentials=credentials,
            client=client,
            fetcher=AttestationFetcher(client=client, credentials=credentials),
            dispatcher=ValidationDispatcher(credentials, client_factory, max_concurrency=args.workers),
            proxy_pool=ProxyPool(),
        )

        try:
            for i in range(args.cycles):
                outcome = await scheduler.run_cycle()
                print(f"cycle {i + 1}: {outcome.model_dump() if outcome else 'no outcome'}")
        finally:
            await client.close()
            await server.stop()

    print(f"identity calls: {identity.calls}")
    print(f"validations recorded: {len(server.validations)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Dry-run the validator against a fake Stork API")
    bt.logging.add_args(parser)
    parser.add_argument("--port", type=int, default=8790)
    parser.add_argument("--cycles", type=int, default=2)
    parser.add_argument("--workers", type=int, default=4)
    parser.add_argument("--fresh", type=int, default=6, help="Number of fresh signed prices")
    parser.add_argument("--stale", type=int, default=2, help="Number of stale signed prices")
    args = parser.parse_args()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
