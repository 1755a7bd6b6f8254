from __future__ import annotations

import ipaddress
import re
import typing
from urllib.request import getproxies

PatternLike = typing.Union[str, re.Pattern[str]]

PROXY_SCHEMES = ("http", "https")


def get_environment_proxies() -> tuple[dict[str, str], list[str]]:
    """Read the proxy URLs and bypass patterns from the environment.

    Returns ``(proxies, bypass_patterns)`` where `proxies` maps a request
    scheme (``http``/``https``) to its proxy URL. ``ALL_PROXY`` fills the
    schemes that have no proxy of their own. A ``NO_PROXY`` of ``*`` disables
    proxying entirely.
    """
    proxy_info = getproxies()
    proxies: dict[str, str] = {}

    for scheme in PROXY_SCHEMES:
        hostname = proxy_info.get(scheme) or proxy_info.get("all")
        if hostname:
            proxies[scheme] = hostname if "://" in hostname else f"http://{hostname}"

    bypass: list[str] = []
    no_proxy_hosts = [host.strip() for host in proxy_info.get("no", "").split(",")]
    for hostname in no_proxy_hosts:
        if hostname == "*":
            return {}, []
        elif hostname:
            bypass.append(no_proxy_pattern(hostname))

    return proxies, bypass


def no_proxy_pattern(hostname: str) -> str:
    """Turn one ``NO_PROXY`` entry into a regex searched against full URLs."""
    if "://" in hostname:
        return "^" + re.escape(hostname)

    if _is_ip_hostname(hostname, ipaddress.IPv6Address):
        host_regex = re.escape(f"[{hostname.split('/')[0]}]")
    elif _is_ip_hostname(hostname, ipaddress.IPv4Address):
        host_regex = re.escape(hostname.split("/")[0])
    elif hostname.startswith("*."):
        host_regex = f".+\\.{re.escape(hostname[2:])}"
    elif hostname.startswith(("*", ".")):
        host_regex = f"(.+\\.)?{re.escape(hostname[1:])}"
    else:
        host_regex = re.escape(hostname)

    return f"^[a-z][a-z0-9+.-]*://([^@/]*@)?{host_regex}(:[0-9]+)?([/?#]|$)"


def _is_ip_hostname(
    hostname: str,
    address_class: type[ipaddress.IPv4Address] | type[ipaddress.IPv6Address],
) -> bool:
    try:
        address_class(hostname.split("/")[0])
    except ValueError:
        return False
    return True


def compile_pattern(pattern: PatternLike, flags: int = 0) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern, flags)


def matches_any(patterns: typing.Iterable[PatternLike], url: str, flags: int = 0) -> bool:
    return any(compile_pattern(pattern, flags).search(url) for pattern in patterns)
