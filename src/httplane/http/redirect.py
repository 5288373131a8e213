"""Redirect policy: whether a 3xx response becomes a follow-up request."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from ..models.config import RedirectPolicy
from ..security.url_validator import UriValidator
from .request import Method, Request
from .response import ResponseHead

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({300, 301, 302, 303, 307, 308})

# Redirects that must repeat the original method and body
METHOD_PRESERVING_STATUSES = frozenset({307, 308})

# Describe the body; meaningless once a redirect turns the request into GET
BODY_HEADERS = ("Content-Type", "Content-Encoding", "Content-Language")

DEFAULT_MAX_REDIRECTS = 20


class RedirectEngine:
    """
    Decides how to continue after a 3xx response.

    Policy evaluation:
    - NEVER: never follows
    - ALWAYS: follows every redirect with a usable Location
    - NORMAL: like ALWAYS, except an https -> http downgrade is refused
      and the 3xx response is handed back to the caller

    A missing, unparsable or non-http(s) Location always ends following.
    The hop limit itself is enforced by the client, which counts hops
    per logical request.

    Example:
        engine = RedirectEngine(RedirectPolicy.NORMAL)
        next_request = engine.follow_up(request, head)
        if next_request is None:
            ...  # head is the terminal response
    """

    def __init__(
        self,
        policy: RedirectPolicy = RedirectPolicy.NEVER,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        validator: Optional[UriValidator] = None,
    ) -> None:
        self.policy = policy
        self.max_redirects = max_redirects
        self._validator = validator or UriValidator()

    def follow_up(self, request: Request, head: ResponseHead) -> Optional[Request]:
        """
        Build the follow-up request for ``head``, or None to stop.

        Args:
            request: The request that produced ``head``
            head: Response status line and headers

        Returns:
            The next request, or None when ``head`` is terminal
        """
        if self.policy == RedirectPolicy.NEVER or head.status_code not in REDIRECT_STATUSES:
            return None

        target = self.resolve_location(request, head)
        if target is None:
            return None

        if not self.permits(request.uri, target):
            logger.warning(
                f"Not following {head.status_code} redirect from {request.uri} to {target}: "
                f"insecure downgrade refused by {self.policy.value} policy"
            )
            return None

        logger.debug(f"Following {head.status_code} redirect {request.uri} -> {target}")
        return self._redirected_request(request, head.status_code, target)

    def resolve_location(self, request: Request, head: ResponseHead) -> Optional[str]:
        """Absolute target of the Location header, or None if unusable."""
        location = head.headers.get("Location")
        if not location or not location.strip():
            logger.debug(f"{head.status_code} from {request.uri} has no Location header")
            return None

        try:
            target = urljoin(request.uri, location.strip())
            parts = urlsplit(target)
            target = urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))
        except ValueError:
            logger.debug(f"Unparsable Location {location!r} from {request.uri}")
            return None

        reason = self._validator.get_rejection_reason(target)
        if reason is not None:
            logger.debug(f"Unusable Location {location!r} from {request.uri}: {reason}")
            return None
        return target

    def permits(self, source_uri: str, target_uri: str) -> bool:
        """Whether the policy allows moving from ``source_uri`` to ``target_uri``."""
        if self.policy == RedirectPolicy.NEVER:
            return False
        if self.policy == RedirectPolicy.ALWAYS:
            return True
        source_scheme = urlsplit(source_uri).scheme.lower()
        target_scheme = urlsplit(target_uri).scheme.lower()
        return not (source_scheme == "https" and target_scheme == "http")

    @staticmethod
    def _redirected_request(request: Request, status_code: int, target: str) -> Request:
        headers = request.headers
        method = request.method
        body = request.body

        if status_code not in METHOD_PRESERVING_STATUSES and method != Method.HEAD.value:
            method = Method.GET.value
            body = None
            headers = headers.without(*BODY_HEADERS)

        if urlsplit(target).hostname != request.host:
            headers = headers.without("Authorization")

        return dataclasses.replace(request, method=method, uri=target, headers=headers, body=body)
