from __future__ import annotations

import re
import typing
from dataclasses import dataclass, field

import httpx

from ._utils import PROXY_SCHEMES, PatternLike, get_environment_proxies, matches_any

DEFAULT_MAX_REDIRECTS = 50


@dataclass
class ProxyConfiguration:
    """Forward proxy used for every request whose URL is not bypassed.

    `proxy_bypass_hosts` holds regular expressions searched, case
    insensitively, in the full request URL.
    """

    proxy_url: str
    proxy_username: str | None = None
    proxy_password: str | None = None
    proxy_bypass_hosts: list[PatternLike] = field(default_factory=list)

    @classmethod
    def from_environment(cls, scheme: str = "https") -> ProxyConfiguration | None:
        """Build the configuration for `scheme` requests from ``HTTP(S)_PROXY``,
        ``ALL_PROXY`` and ``NO_PROXY``.
        """
        proxies, bypass = get_environment_proxies()
        proxy_url = proxies.get(scheme)
        if proxy_url is None:
            return None
        return cls(proxy_url, proxy_bypass_hosts=list(bypass))

    def is_bypassed(self, url: str) -> bool:
        return matches_any(self.proxy_bypass_hosts, url, re.IGNORECASE)

    def to_httpx(self) -> httpx.Proxy:
        auth = None
        if self.proxy_username:
            auth = (self.proxy_username, self.proxy_password or "")
        return httpx.Proxy(self.proxy_url, auth=auth)


@dataclass
class RequestOptions:
    """Client-wide transport options, fixed at construction."""

    socket_timeout: float | None = None
    ignore_ssl_error: bool = False
    proxy: ProxyConfiguration | None = None
    presigned_url_patterns: list[PatternLike] = field(default_factory=list)
    allow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    trust_env: bool = True

    def is_presigned(self, url: str) -> bool:
        return matches_any(self.presigned_url_patterns, url)

    def effective_proxy(self, scheme: str = "https") -> ProxyConfiguration | None:
        if self.proxy is not None:
            return self.proxy
        if self.trust_env:
            return ProxyConfiguration.from_environment(scheme)
        return None

    def effective_proxies(self) -> dict[str, ProxyConfiguration]:
        """The proxy to use for each request scheme that has one."""
        proxies = {}
        for scheme in PROXY_SCHEMES:
            proxy = self.effective_proxy(scheme)
            if proxy is not None:
                proxies[scheme] = proxy
        return proxies

    @property
    def timeout(self) -> httpx.Timeout:
        if self.socket_timeout is None:
            return httpx.Timeout(5.0)
        return httpx.Timeout(self.socket_timeout)

    def client_kwargs(self) -> dict[str, typing.Any]:
        """Keyword arguments shared by every `httpx` client we build."""
        return {
            "timeout": self.timeout,
            "verify": not self.ignore_ssl_error,
            "follow_redirects": self.allow_redirects,
            "max_redirects": self.max_redirects,
            "trust_env": False,
        }
