from ._base import AuthenticationFlow, HandlerKind, RequestHandler
from ._credentials import (
    BasicCredentialHandler,
    BearerCredentialHandler,
    PersonalAccessTokenCredentialHandler,
)
from ._ntlm import NtlmCredentialHandler, NtlmHandshake

__all__ = [
    "AuthenticationFlow",
    "BasicCredentialHandler",
    "BearerCredentialHandler",
    "HandlerKind",
    "NtlmCredentialHandler",
    "NtlmHandshake",
    "PersonalAccessTokenCredentialHandler",
    "RequestHandler",
]
