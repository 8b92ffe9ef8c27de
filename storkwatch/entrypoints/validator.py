"""Validator agent entrypoint.

Authenticates every configured account, then runs one CycleScheduler per
account concurrently until SIGINT/SIGTERM. Failing to obtain an initial
credential for every account is the only fatal condition.
"""

import argparse
import asyncio
import os
import signal
import sys
from datetime import timedelta

import bittensor as bt
from dotenv import load_dotenv

from storkwatch.auth import CognitoIdentityClient, CredentialManager, FileCredentialStore
from storkwatch.base.config import AccountConfig, WatchSettings, add_args, load_settings
from storkwatch.errors import AuthFailure
from storkwatch.validator import (
    AttestationFetcher,
    CycleScheduler,
    ProxyPool,
    StorkApiClient,
    ValidationDispatcher,
)


def build_scheduler(
    settings: WatchSettings,
    account: AccountConfig,
    identity: CognitoIdentityClient,
    proxy_pool: ProxyPool,
    index: int = 0,
) -> CycleScheduler:
    """Wire the per-account component graph.

    Account ``index`` routes its fetch and stats calls through the proxy at
    the same round-robin position; submissions are spread per batch.
    """
    stork = settings.stork
    credentials = CredentialManager(
        identity=identity,
        store=FileCredentialStore(settings.token_path(account)),
        username=account.username,
        password=account.password,
    )
    credentials.load()

    def client_factory(proxy=None) -> StorkApiClient:
        return StorkApiClient(
            base_url=stork.base_url,
            timeout=stork.request_timeout_seconds,
            proxy=proxy,
            origin=stork.origin,
            user_agent=stork.user_agent,
        )

    client = client_factory(proxy_pool.assign(index))
    return CycleScheduler(
        credentials=credentials,
        client=client,
        fetcher=AttestationFetcher(client=client, credentials=credentials),
        dispatcher=ValidationDispatcher(
            credentials=credentials,
            client_factory=client_factory,
            max_concurrency=settings.threads.max_workers,
            max_age=timedelta(minutes=stork.max_age_minutes),
        ),
        proxy_pool=proxy_pool,
        interval=stork.interval_seconds,
        keepalive_interval=stork.keepalive_interval_seconds,
        name=account.username,
    )


async def _authenticate_all(schedulers: list[CycleScheduler]) -> list[CycleScheduler]:
    ready = []
    for scheduler in schedulers:
        try:
            await scheduler.credentials.obtain_valid()
            ready.append(scheduler)
        except AuthFailure as e:
            bt.logging.error({"validator": {"account": scheduler.name, "initial_auth_failed": str(e)}})
            await scheduler.client.close()
    return ready


async def run(settings: WatchSettings) -> int:
    """Run all accounts. Returns the process exit status."""
    proxy_pool = ProxyPool.load(settings.proxies, settings.proxy_file)
    identity = CognitoIdentityClient(
        client_id=settings.cognito.client_id,
        region=settings.cognito.region,
        auth_flow=settings.cognito.auth_flow,
        endpoint_url=settings.cognito.endpoint_url,
        timeout=settings.stork.request_timeout_seconds,
    )

    schedulers = [
        build_scheduler(settings, a, identity, proxy_pool, i)
        for i, a in enumerate(settings.accounts)
    ]
    schedulers = await _authenticate_all(schedulers)
    if not schedulers:
        bt.logging.error({"validator": "no_account_authenticated"})
        return 1

    loop = asyncio.get_running_loop()

    def _shutdown() -> None:
        bt.logging.info({"validator": "shutdown_signal_received"})
        for s in schedulers:
            s.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            signal.signal(sig, lambda *_: _shutdown())

    try:
        await asyncio.gather(*(s.run() for s in schedulers))
    finally:
        for s in schedulers:
            await s.client.close()
    return 0


def main() -> None:
    # Load .env if not in test mode
    if os.environ.get("STORKWATCH_TEST_MODE") != "true":
        load_dotenv()

    parser = argparse.ArgumentParser(description="Stork oracle validator agent")
    bt.logging.add_args(parser)
    add_args(parser)
    args = parser.parse_args()

    try:
        settings = load_settings(args)
    except ValueError as e:
        bt.logging.error({"validator": {"config_error": str(e)}})
        sys.exit(1)

    if not settings.accounts:
        bt.logging.error("No accounts configured (config.json accounts or STORKWATCH__ACCOUNT__USERNAME)")
        sys.exit(1)

    bt.logging.info({
        "validator_config": {
            "accounts": [a.username for a in settings.accounts],
            "base_url": settings.stork.base_url,
            "interval": settings.stork.interval_seconds,
            "max_workers": settings.threads.max_workers,
            "user_pool_id": settings.cognito.user_pool_id,
            "proxies": len(settings.proxies),
            "proxy_file": settings.proxy_file,
        }
    })

    try:
        status = asyncio.run(run(settings))
    except KeyboardInterrupt:
        bt.logging.info({"validator": "keyboard_interrupt"})
        status = 0
    except ValueError as e:
        # invalid proxy entries surface here
        bt.logging.error({"validator": {"startup_error": str(e)}})
        status = 1

    bt.logging.info({"validator": "stopped"})
    sys.exit(status)


if __name__ == "__main__":
    main()
