"""
URL parsing, base-URL resolution and query-string composition.

`urlparse` splits a URL string into `UrlComponents` using the RFC 3986 generic
syntax, validating and normalising each component. `resolve_url` merges a
per-request resource reference into a client's base URL, and `attach_query`
appends structured query parameters to the result.
"""

from __future__ import annotations

import ipaddress
import posixpath
import re
import typing
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import idna

from ._exceptions import InvalidURL

MAX_URL_LENGTH = 65536

UNRESERVED_CHARACTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
SUB_DELIMS = "!$&'()*+,;="

PERCENT_ENCODED_REGEX = re.compile("%[A-Fa-f0-9]{2}")

_ALWAYS_EXCLUDED = (0x20, 0x22, 0x3C, 0x3E)
_PATH_EXCLUDED = _ALWAYS_EXCLUDED + (0x23, 0x3F, 0x60, 0x7B, 0x7D)
_USERINFO_EXTRA = (0x2F, 0x3B, 0x3D, 0x40, 0x5B, 0x5C, 0x5D, 0x5E, 0x7C)


def _safe_chars(*excluded: int) -> str:
    excluded_set = set(excluded)
    return "".join(chr(i) for i in range(0x20, 0x7F) if i not in excluded_set)


FRAG_SAFE = _safe_chars(*_ALWAYS_EXCLUDED, 0x60)
QUERY_SAFE = _safe_chars(*_ALWAYS_EXCLUDED, 0x23)
PATH_SAFE = _safe_chars(*_PATH_EXCLUDED)
USERINFO_SAFE = _safe_chars(*_PATH_EXCLUDED, *_USERINFO_EXTRA)

URL_REGEX = re.compile(
    r"(?:(?P<scheme>([a-zA-Z][a-zA-Z0-9+.-]*)?):)?"
    r"(?://(?P<authority>[^/?#]*))?"
    r"(?P<path>[^?#]*)"
    r"(?:\?(?P<query>[^#]*))?"
    r"(?:#(?P<fragment>.*))?"
)

AUTHORITY_REGEX = re.compile(
    r"(?:(?P<userinfo>.*)@)?(?P<host>(\[.*\]|[^:@]*)):?(?P<port>.*)?"
)

COMPONENT_REGEX = {
    "scheme": re.compile("([a-zA-Z][a-zA-Z0-9+.-]*)?"),
    "authority": re.compile("[^/?#]*"),
    "path": re.compile("[^?#]*"),
    "query": re.compile("[^#]*"),
    "fragment": re.compile(".*"),
}

IPv4_STYLE_HOSTNAME = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$")
IPv6_STYLE_HOSTNAME = re.compile(r"^\[.*\]$")


class UrlComponents(typing.NamedTuple):
    scheme: str
    userinfo: str
    host: str
    port: int | None
    path: str
    query: str | None
    fragment: str | None

    @property
    def authority(self) -> str:
        return "".join([
            f"{self.userinfo}@" if self.userinfo else "",
            self.netloc,
        ])

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return host + (f":{self.port}" if self.port is not None else "")

    def copy_with(self, **kwargs: str | None) -> UrlComponents:
        if not kwargs:
            return self
        defaults = {
            "scheme": self.scheme,
            "authority": self.authority,
            "path": self.path,
            "query": self.query,
            "fragment": self.fragment,
        }
        defaults.update(kwargs)
        return urlparse("", **defaults)

    def __str__(self) -> str:
        authority = self.authority
        return "".join([
            f"{self.scheme}:" if self.scheme else "",
            f"//{authority}" if authority else "",
            self.path,
            f"?{self.query}" if self.query is not None else "",
            f"#{self.fragment}" if self.fragment is not None else "",
        ])


def _validate_non_printable(value: str, label: str) -> None:
    if any(char.isascii() and not char.isprintable() for char in value):
        char = next(c for c in value if c.isascii() and not c.isprintable())
        raise InvalidURL(f"Invalid non-printable ASCII character in {label}, {char!r} at position {value.find(char)}.")


def urlparse(url: str = "", **kwargs: str | None) -> UrlComponents:
    if len(url) > MAX_URL_LENGTH:
        raise InvalidURL("URL too long")

    _validate_non_printable(url, "URL")

    for key, value in kwargs.items():
        if value is not None:
            if len(value) > MAX_URL_LENGTH:
                raise InvalidURL(f"URL component '{key}' too long")
            _validate_non_printable(value, f"URL {key} component")
            if not COMPONENT_REGEX[key].fullmatch(value):
                raise InvalidURL(f"Invalid URL component '{key}'")

    url_dict = URL_REGEX.match(url).groupdict()  # type: ignore[union-attr]

    scheme = kwargs.get("scheme", url_dict["scheme"]) or ""
    authority = kwargs.get("authority", url_dict["authority"]) or ""
    path = kwargs.get("path", url_dict["path"]) or ""
    query = kwargs.get("query", url_dict["query"])
    frag = kwargs.get("fragment", url_dict["fragment"])

    authority_dict = AUTHORITY_REGEX.match(authority).groupdict()  # type: ignore[union-attr]

    userinfo = authority_dict["userinfo"] or ""
    host = authority_dict["host"] or ""
    port = authority_dict["port"]

    parsed_scheme = scheme.lower()
    parsed_userinfo = quote(userinfo, safe=USERINFO_SAFE)
    parsed_host = encode_host(host)
    parsed_port = validate_port(port)

    has_scheme = bool(parsed_scheme)
    has_authority = bool(parsed_userinfo or parsed_host or parsed_port is not None)

    validate_path(path, has_scheme=has_scheme, has_authority=has_authority)

    return UrlComponents(
        parsed_scheme,
        parsed_userinfo,
        parsed_host,
        parsed_port,
        quote(path, safe=PATH_SAFE),
        None if query is None else quote(query, safe=QUERY_SAFE),
        None if frag is None else quote(frag, safe=FRAG_SAFE),
    )


def encode_host(host: str) -> str:
    if not host:
        return ""

    if IPv4_STYLE_HOSTNAME.match(host):
        try:
            ipaddress.IPv4Address(host)
        except ipaddress.AddressValueError:
            raise InvalidURL(f"Invalid IPv4 address: {host!r}")
        return host

    if IPv6_STYLE_HOSTNAME.match(host):
        try:
            ipaddress.IPv6Address(host[1:-1])
        except ipaddress.AddressValueError:
            raise InvalidURL(f"Invalid IPv6 address: {host!r}")
        return host[1:-1]

    if host.isascii():
        WHATWG_SAFE = '"`{}%|\\'
        return quote(host.lower(), safe=SUB_DELIMS + WHATWG_SAFE)

    try:
        return idna.encode(host.lower()).decode("ascii")
    except idna.IDNAError:
        raise InvalidURL(f"Invalid IDNA hostname: {host!r}")


def validate_port(port: str | None) -> int | None:
    # The port is kept as written, default ports included.
    if not port:
        return None
    if not port.isdigit():
        raise InvalidURL(f"Invalid port: {port!r}")
    port_as_int = int(port)
    if port_as_int > 65535:
        raise InvalidURL(f"Invalid port: {port!r}")
    return port_as_int


def validate_path(path: str, has_scheme: bool, has_authority: bool) -> None:
    if has_authority and path and not path.startswith("/"):
        raise InvalidURL("For absolute URLs, path must be empty or begin with '/'")
    if not has_scheme and not has_authority:
        if path.startswith("//"):
            raise InvalidURL("Relative URLs cannot have a path starting with '//'")
        if path.startswith(":"):
            raise InvalidURL("Relative URLs cannot have a path starting with ':'")


def _percent_encode(string: str) -> str:
    return "".join(f"%{byte:02X}" for byte in string.encode("utf-8"))


def percent_encoded(string: str, safe: str) -> str:
    non_escaped = UNRESERVED_CHARACTERS + safe
    if not string.rstrip(non_escaped):
        return string
    return "".join(c if c in non_escaped else _percent_encode(c) for c in string)


def quote(string: str, safe: str) -> str:
    parts: list[str] = []
    pos = 0
    for match in re.finditer(PERCENT_ENCODED_REGEX, string):
        start, end = match.start(), match.end()
        if start != pos:
            parts.append(percent_encoded(string[pos:start], safe=safe))
        parts.append(match.group(0))
        pos = end
    if pos != len(string):
        parts.append(percent_encoded(string[pos:], safe=safe))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Base URL resolution
# ---------------------------------------------------------------------------


def resolve_path(base_path: str, path: str) -> str:
    """Resolve `path` against `base_path` the way a POSIX filesystem would.

    An absolute `path` replaces `base_path`; `.` and `..` segments, repeated
    and trailing slashes are normalised away. The result is always rooted.
    """
    resolved = posixpath.normpath(posixpath.join("/", base_path, path))
    if resolved.startswith("//"):
        resolved = "/" + resolved.lstrip("/")
    return resolved


def resolve_url(
    resource: str | None,
    base_url: str | None = None,
    query_parameters: QueryParameters | Mapping[str, typing.Any] | None = None,
) -> str:
    """Merge a resource reference into an optional base URL.

    >>> resolve_url("get/foo", "http://httpbin.org/bar")
    'http://httpbin.org/bar/get/foo'
    >>> resolve_url("/get/foo", "http://httpbin.org/bar")
    'http://httpbin.org/get/foo'

    Without a base URL the resource is returned untouched, and without a
    resource the base URL is. Components of the resource win over those of the
    base; only the path is merged.
    """
    if not base_url:
        url = resource or ""
    elif not resource:
        url = base_url
    else:
        base = urlparse(base_url)
        reference = urlparse(resource)

        path = resolve_path(base.path, reference.path)
        if resource.endswith("/") and not path.endswith("/"):
            path += "/"

        userinfo = reference.userinfo or base.userinfo
        netloc = reference.netloc if reference.host else base.netloc
        resolved = reference.copy_with(
            scheme=reference.scheme or base.scheme,
            authority=f"{userinfo}@{netloc}" if userinfo else netloc,
            path=path,
        )
        url = str(resolved)

    if query_parameters is not None:
        url = attach_query(url, query_parameters)
    return url


# ---------------------------------------------------------------------------
# Query composition
# ---------------------------------------------------------------------------


def primitive_value_to_str(value: typing.Any) -> str:
    if value is True:
        return "true"
    elif value is False:
        return "false"
    elif value is None:
        return ""
    return str(value)


@dataclass
class QueryParameters:
    """Query parameters plus the characters used to serialise them.

    Sequence values (other than strings) repeat the key once per item.
    """

    params: Mapping[str, typing.Any] = field(default_factory=dict)
    separator: str = "&"
    assignment: str = "="

    def encode(self) -> str:
        pairs: list[str] = []
        for key, value in self.params.items():
            if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
                items = list(value)
            else:
                items = [value]
            for item in items:
                pairs.append(
                    percent_encoded(str(key), safe="")
                    + self.assignment
                    + percent_encoded(primitive_value_to_str(item), safe="")
                )
        return self.separator.join(pairs)


def attach_query(
    url: str, params: QueryParameters | Mapping[str, typing.Any]
) -> str:
    """Append `params` to `url` as a query string.

    A single trailing ``?`` on `url` is dropped first, then exactly one ``?``
    is written, even for an empty parameter mapping. The query goes before
    any ``#fragment``.
    """
    if not isinstance(params, QueryParameters):
        params = QueryParameters(params)
    url, hash_mark, fragment = url.partition("#")
    if url.endswith("?"):
        url = url[:-1]
    return f"{url}?{params.encode()}{hash_mark}{fragment}"
