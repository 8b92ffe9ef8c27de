"""End-to-end cycle test against the in-process mock partner API.

Spins up a real MockStorkServer on localhost and drives full cycles
through the same component graph the entrypoint builds: credential
manager with a file store, httpx client, fetcher, dispatcher, reconciler.
"""

from __future__ import annotations

import json

import pytest
import pytest_asyncio

from storkwatch.base.config import AccountConfig, StorkConfig, ThreadsConfig, WatchSettings
from storkwatch.devtools.mock_stork import MockStorkServer, StaticIdentityClient, signed_price
from storkwatch.entrypoints.validator import build_scheduler, run
from storkwatch.errors import Unauthorized
from storkwatch.validator.proxies import ProxyPool

ACCOUNT = AccountConfig(username="validator@example.com", password="pw")


def _settings(server: MockStorkServer, data_dir, max_workers: int = 2) -> WatchSettings:
    return WatchSettings(
        accounts=[ACCOUNT],
        stork=StorkConfig(base_url=server.base_url, request_timeout_seconds=5),
        threads=ThreadsConfig(max_workers=max_workers),
        data_dir=str(data_dir),
    )


def _prices() -> dict:
    return {
        "BTCUSD": signed_price("0xaaa1", age_seconds=30),
        "ETHUSD": signed_price("0xaaa2", age_seconds=600),
        "SOLUSD": signed_price("0xaaa3", age_seconds=2 * 3600),
    }


@pytest_asyncio.fixture
async def server():
    srv = MockStorkServer(port=18941, prices=_prices(), valid_count=100, invalid_count=10)
    await srv.start()
    yield srv
    await srv.stop()


@pytest.mark.asyncio
class TestEndToEndCycle:

    async def test_cycle_submits_verdicts_and_reconciles(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        verdicts = {v["msg_hash"]: v["valid"] for v in server.validations}
        assert verdicts == {"0xaaa1": True, "0xaaa2": True, "0xaaa3": False}
        assert (outcome.valid_delta, outcome.invalid_delta) == (2, 1)
        assert not outcome.counter_reset
        assert (scheduler.totals.valid_count, scheduler.totals.invalid_count) == (102, 11)
        assert identity.calls == ["authenticate"]

    async def test_token_file_written_on_first_auth(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        saved = json.loads((tmp_path / "tokens.json").read_text())
        assert saved["access_token"] == "dev-access-1"

    async def test_revoked_token_is_renewed_mid_run(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await scheduler.run_cycle()
            server.accepted_tokens.clear()
            server.prices = {"BTCUSD": signed_price("0xbbb1", age_seconds=5)}

            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        assert identity.calls == ["authenticate", "refresh"]
        assert (outcome.valid_delta, outcome.invalid_delta) == (1, 0)
        assert scheduler.credentials.current.access_token == "dev-access-2"
        saved = json.loads((tmp_path / "tokens.json").read_text())
        assert saved["access_token"] == "dev-access-2"

    async def test_single_forced_401_costs_one_renewal(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await scheduler.credentials.obtain_valid()
            server.force_unauthorized = 1
            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        assert identity.calls == ["authenticate", "refresh"]
        assert outcome is not None
        assert len(server.validations) == 3

    async def test_repeated_401_on_stats_fails_the_cycle(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await scheduler.credentials.obtain_valid()
            server.force_unauthorized = 2
            with pytest.raises(Unauthorized):
                await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        assert identity.calls == ["authenticate", "refresh"]
        assert server.validations == []

    async def test_persisted_token_survives_restart(self, server, tmp_path):
        identity = StaticIdentityClient(server)
        first = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await first.run_cycle()
        finally:
            await first.client.close()

        second = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            await second.run_cycle()
        finally:
            await second.client.close()

        assert identity.calls == ["authenticate"]

    async def test_empty_price_feed(self, server, tmp_path):
        server.prices = {}
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        assert (outcome.valid_delta, outcome.invalid_delta) == (0, 0)
        assert server.request_counts.get("validations", 0) == 0

    async def test_broken_entry_is_skipped(self, server, tmp_path):
        server.prices = {
            "BTCUSD": signed_price("0xccc1", age_seconds=5),
            "BROKEN": {"price": "1"},
        }
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        assert [v["msg_hash"] for v in server.validations] == ["0xccc1"]
        assert (outcome.valid_delta, outcome.invalid_delta) == (1, 0)

    async def test_unrepresentable_fields_do_not_abort_the_cycle(self, server, tmp_path):
        far_future = signed_price("0xddd1")
        far_future["timestamped_signature"]["timestamp"] = 10**30
        numeric_hash = signed_price("0xddd2", age_seconds=5)
        numeric_hash["timestamped_signature"]["msg_hash"] = 123
        server.prices = {
            "BTCUSD": signed_price("0xccc1", age_seconds=5),
            "FARUSD": far_future,
            "NUMUSD": numeric_hash,
        }
        identity = StaticIdentityClient(server)
        scheduler = build_scheduler(_settings(server, tmp_path), ACCOUNT, identity, ProxyPool())
        try:
            outcome = await scheduler.run_cycle()
        finally:
            await scheduler.client.close()

        verdicts = {v["msg_hash"]: v["valid"] for v in server.validations}
        assert verdicts == {"0xccc1": True, "0xddd1": False}
        assert (outcome.valid_delta, outcome.invalid_delta) == (1, 1)


@pytest.mark.asyncio
class TestRunExitStatus:

    async def test_no_account_authenticates(self, tmp_path):
        settings = WatchSettings(
            accounts=[AccountConfig(username="nobody@example.com", password="")],
            data_dir=str(tmp_path),
        )
        assert await run(settings) == 1
