"""Outbound proxy descriptors and round-robin assignment."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable
from urllib.parse import quote, unquote, urlsplit

import bittensor as bt

# httpx routes http(s) and SOCKS5 proxies; SOCKS4 has no transport there
SUPPORTED_SCHEMES = ("http", "https", "socks5", "socks5h")


@dataclass(frozen=True)
class ProxyDescriptor:
    """One outbound route: scheme://[user[:pass]@]host:port."""

    scheme: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None

    @classmethod
    def parse(cls, raw: str) -> "ProxyDescriptor":
        """Parse a proxy URL. Raises ValueError for unsupported or incomplete URLs."""
        value = raw.strip()
        if "://" not in value:
            raise ValueError(f"Proxy URL has no scheme: {value!r}")
        parts = urlsplit(value)
        scheme = parts.scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported proxy protocol: {scheme}")
        if not parts.hostname:
            raise ValueError(f"Proxy URL has no host: {value!r}")
        try:
            port = parts.port
        except ValueError as e:
            raise ValueError(f"Proxy URL has an invalid port: {value!r}") from e
        if port is None:
            port = 443 if scheme == "https" else 1080 if scheme.startswith("socks") else 80
        return cls(
            scheme=scheme,
            host=parts.hostname,
            port=port,
            username=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
        )

    @property
    def url(self) -> str:
        auth = ""
        if self.username:
            auth = quote(self.username, safe="")
            if self.password:
                auth += ":" + quote(self.password, safe="")
            auth += "@"
        return f"{self.scheme}://{auth}{self.host}:{self.port}"

    def __str__(self) -> str:
        # never log credentials
        return f"{self.scheme}://{self.host}:{self.port}"


class ProxyPool:
    """Ordered, read-only proxy list; empty means direct connections."""

    def __init__(self, proxies: Iterable[ProxyDescriptor] = ()):
        self._proxies: tuple[ProxyDescriptor, ...] = tuple(proxies)

    @classmethod
    def from_urls(cls, urls: Iterable[str]) -> "ProxyPool":
        return cls(ProxyDescriptor.parse(u) for u in urls if u and u.strip())

    @classmethod
    def load(cls, urls: Iterable[str] = (), path: str | Path | None = None) -> "ProxyPool":
        """Build a pool from configured URLs plus an optional one-per-line file."""
        entries = [u for u in urls if u and u.strip()]
        if path is not None:
            proxy_file = Path(path)
            if proxy_file.exists():
                for line in proxy_file.read_text().splitlines():
                    line = line.strip()
                    if line and not line.startswith("#"):
                        entries.append(line)
            else:
                bt.logging.warning({"proxy_pool": "proxy_file_missing", "path": str(proxy_file)})
        pool = cls.from_urls(entries)
        bt.logging.info({"proxy_pool": {"loaded": len(pool)}})
        return pool

    def __len__(self) -> int:
        return len(self._proxies)

    def __iter__(self):
        return iter(self._proxies)

    def assign(self, index: int) -> ProxyDescriptor | None:
        """Proxy for dispatch slot ``index`` (round-robin), or None if the pool is empty."""
        if not self._proxies:
            return None
        return self._proxies[index % len(self._proxies)]


__all__ = ["ProxyDescriptor", "ProxyPool", "SUPPORTED_SCHEMES"]
