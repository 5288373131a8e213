"""Reactive Basic authentication: credentials supplied on a 401 challenge."""

from __future__ import annotations

import base64
import dataclasses
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from ..models.config import AuthConfig
from .request import Request
from .response import ResponseHead

logger = logging.getLogger(__name__)

# auth-param: token = ( token / quoted-string )
_PARAM_RE = re.compile(r'\s*([!#$%&\'*+\-.^_`|~0-9A-Za-z]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^,\s]*)\s*,?')
_SCHEME_RE = re.compile(r"\s*([!#$%&'*+\-.^_`|~0-9A-Za-z]+)(?:\s+|$)")


@dataclass(frozen=True)
class Credentials:
    """Username and secret; the secret never appears in repr()."""

    username: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class Challenge:
    """One challenge from a WWW-Authenticate header."""

    scheme: str
    realm: Optional[str] = None
    params: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class Authenticator(Protocol):
    """
    Supplies credentials on demand.

    Called at most once per logical request, when a 401 challenge is
    received. Returning None leaves the 401 response as the result.
    """

    def challenge(self, realm: Optional[str], host: str) -> Optional[Credentials]:
        ...


class StaticAuthenticator:
    """
    Answers every challenge with the same credentials.

    Args:
        username: Username to send
        secret: Password to send
        hosts: If set, only challenges from these hosts are answered
    """

    def __init__(self, username: str, secret: str, hosts: Optional[Iterable[str]] = None) -> None:
        self._credentials = Credentials(username, secret)
        self._hosts = {h.lower() for h in hosts} if hosts is not None else None

    @classmethod
    def from_config(cls, config: AuthConfig) -> StaticAuthenticator:
        if not config.username:
            raise ValueError("Basic auth requires a username")
        return cls(config.username, config.password or "")

    def challenge(self, realm: Optional[str], host: str) -> Optional[Credentials]:
        if self._hosts is not None and host.lower() not in self._hosts:
            return None
        return self._credentials

    def __repr__(self) -> str:
        return f"StaticAuthenticator(username={self._credentials.username!r})"


def parse_challenges(values: Iterable[str]) -> list[Challenge]:
    """
    Parse WWW-Authenticate header values.

    Handles several challenges per header, e.g.
    ``Basic realm="Fake Realm", Bearer realm="api"``.
    """
    challenges: list[Challenge] = []
    for value in values:
        pos = 0
        while pos < len(value):
            match = _SCHEME_RE.match(value, pos)
            if not match:
                break
            scheme = match.group(1)
            pos = match.end()
            params: dict[str, str] = {}
            while pos < len(value):
                param = _PARAM_RE.match(value, pos)
                if not param:
                    break
                name, raw = param.group(1).lower(), param.group(2)
                if raw.startswith('"'):
                    raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
                params[name] = raw
                pos = param.end()
            challenges.append(Challenge(scheme=scheme, realm=params.get("realm"), params=params))
            # skip a token68 or stray separator before the next scheme
            while pos < len(value) and value[pos] in ", ":
                pos += 1
    return challenges


def basic_authorization(credentials: Credentials) -> str:
    """Authorization header value for the Basic scheme (UTF-8 user-pass)."""
    token = f"{credentials.username}:{credentials.secret}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")


class AuthenticationHook:
    """
    Turns a 401 response into a single authenticated retry.

    The client calls retry_request() at most once per logical request, so
    a second 401 goes back to the caller untouched.
    """

    def __init__(self, authenticator: Authenticator) -> None:
        self.authenticator = authenticator

    def retry_request(self, request: Request, head: ResponseHead) -> Optional[Request]:
        """
        Build the authenticated retry for a 401, or None.

        Args:
            request: The request that was challenged
            head: The 401 response head

        Returns:
            ``request`` with an Authorization header, or None when there is
            no Basic challenge or the authenticator declines
        """
        if head.status_code != 401:
            return None

        basic = next(
            (c for c in parse_challenges(head.headers.get_all("WWW-Authenticate")) if c.scheme.lower() == "basic"),
            None,
        )
        if basic is None:
            logger.debug(f"401 from {request.uri} carries no Basic challenge")
            return None

        credentials = self.authenticator.challenge(basic.realm, request.host)
        if credentials is None:
            logger.debug(f"Authenticator declined realm {basic.realm!r} on {request.host}")
            return None

        logger.info(f"Retrying {request.uri} with credentials for realm {basic.realm!r}")
        headers = request.headers.replace("Authorization", basic_authorization(credentials))
        return dataclasses.replace(request, headers=headers)
