from .__version__ import __description__, __title__, __version__
from . import handlers
from ._client import AsyncHttpClient, HttpClient
from ._config import ProxyConfiguration, RequestOptions
from ._content import JsonContentHandler
from ._exceptions import (
    AuthenticationHandshakeError,
    ConnectError,
    HTTPError,
    InvalidURL,
    RequestError,
    RestError,
    TimeoutException,
    TooManyRedirects,
    TransportError,
    UnsupportedProtocol,
)
from ._models import (
    Headers,
    HttpClientResponse,
    MediaTypes,
    RestRequestOptions,
    RestResponse,
)
from ._rest import AsyncRestClient, RestClient
from ._urlparse import (
    QueryParameters,
    UrlComponents,
    attach_query,
    resolve_url,
    urlparse,
)
from .handlers import (
    BasicCredentialHandler,
    BearerCredentialHandler,
    HandlerKind,
    NtlmCredentialHandler,
    PersonalAccessTokenCredentialHandler,
    RequestHandler,
)

get_url = resolve_url

_members = [
    member
    for member in list(vars().keys())
    if not member.startswith("_")
    or member in ["__description__", "__title__", "__version__"]
]

__all__ = sorted(_members, key=str.casefold)  # pyright: ignore[reportUnsupportedDunderAll]
