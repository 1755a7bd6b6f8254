from __future__ import annotations

import base64
import typing

from ._base import HandlerKind, RequestHandler

if typing.TYPE_CHECKING:
    import httpx

FED_AUTH_REDIRECT_HEADER = "X-TFS-FedAuthRedirect"


def _build_basic_auth_header(username: str, password: str) -> str:
    userpass = f"{username}:{password}".encode("utf-8")
    token = base64.b64encode(userpass).decode("ascii")
    return f"Basic {token}"


class BasicCredentialHandler(RequestHandler):
    kind = HandlerKind.BASIC

    def __init__(self, username: str, password: str) -> None:
        self.username = username
        self.password = password

    def prepare_request(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = _build_basic_auth_header(
            self.username, self.password
        )
        request.headers[FED_AUTH_REDIRECT_HEADER] = "Suppress"


class BearerCredentialHandler(RequestHandler):
    kind = HandlerKind.BEARER

    def __init__(self, token: str) -> None:
        self.token = token

    def prepare_request(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = f"Bearer {self.token}"
        request.headers[FED_AUTH_REDIRECT_HEADER] = "Suppress"


class PersonalAccessTokenCredentialHandler(RequestHandler):
    """Azure DevOps / TFS personal access token.

    Sent as Basic credentials with the fixed user name ``PAT``; federated
    sign-in redirects are suppressed so an expired token yields a ``401``
    instead of an HTML login page.
    """

    kind = HandlerKind.PERSONAL_ACCESS_TOKEN

    def __init__(self, token: str) -> None:
        self.token = token

    def prepare_request(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = _build_basic_auth_header("PAT", self.token)
        request.headers[FED_AUTH_REDIRECT_HEADER] = "Suppress"
