from __future__ import annotations

import datetime
import json
import re
import typing

from ._models import MediaTypes

if typing.TYPE_CHECKING:
    from ._models import HttpClientResponse

ISO_DATE_REGEX = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}(?::?\d{2})?)?)?$"
)


def parse_iso_datetime(value: str) -> datetime.datetime | None:
    """Return the `datetime` an ISO-8601 looking string denotes, else `None`."""
    if not ISO_DATE_REGEX.match(value):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        return None


def _revive_dates(value: typing.Any) -> typing.Any:
    if isinstance(value, str):
        parsed = parse_iso_datetime(value)
        return value if parsed is None else parsed
    if isinstance(value, list):
        return [_revive_dates(item) for item in value]
    if isinstance(value, dict):
        return {key: _revive_dates(item) for key, item in value.items()}
    return value


class JsonContentHandler:
    """Parses JSON response bodies.

    With `deserialize_dates` set, every string value that looks like an
    ISO-8601 date or timestamp comes back as a `datetime.datetime`.
    """

    def __init__(self, deserialize_dates: bool = False) -> None:
        self.deserialize_dates = deserialize_dates

    def can_handle(self, response: HttpClientResponse) -> bool:
        content_type = response.headers.get("content-type", "")
        return MediaTypes.APPLICATION_JSON in content_type

    def handle(self, contents: str | bytes) -> typing.Any:
        value = json.loads(contents)
        if self.deserialize_dates:
            return _revive_dates(value)
        return value
