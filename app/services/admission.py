"""Admission filter: rejects bot-like requests before they spend rate budget.

Policy, evaluated in order:

1. Trusted automation (user agent starting with an allow-listed prefix, such
   as the internal image resizer) is admitted unconditionally.
2. ``looks_like_content_fetch`` is true when the path requests a media file
   under the object route (known image extension) or the ``Accept`` header
   asks for image/binary content. Low-level HTTP clients fetching images
   legitimately omit browser headers, so this flag disables the two blocking
   rules below.
3. Empty user agent and not a content fetch: rejected.
4. User agent containing a known automation substring and not a content
   fetch: rejected.
5. Everything else is admitted.

Limitation: because of rule 2, a request for an image key under the object
route (``/uploads/a.png``) is admitted even with an empty user agent and an
empty ``Accept`` header. Only extensionless or non-image keys are protected by
the empty-agent rule. Such clients are still rate limited.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from app.core.logging import audit
from app.services.object_proxy import EXTENSION_CONTENT_TYPES, file_extension

logger = logging.getLogger(__name__)

BLOCKED_AGENT_PATTERNS: tuple[str, ...] = (
    "curl",
    "wget",
    "python-requests",
    "python-urllib",
    "httpx",
    "aiohttp",
    "go-http-client",
    "libwww-perl",
    "scrapy",
    "bot",
    "crawler",
    "spider",
    "scraper",
    "headless",
)

CONTENT_ACCEPT_MARKERS: tuple[str, ...] = ("image/", "application/octet-stream")


class RejectReason(str, Enum):
    EMPTY_USER_AGENT = "empty_user_agent"
    AUTOMATION_USER_AGENT = "automation_user_agent"


@dataclass(frozen=True)
class AdmissionRequest:
    """The parts of an HTTP request the filter looks at."""

    path: str
    headers: Mapping[str, str]
    client_address: str = ""

    def header(self, name: str) -> str:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return ""


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: RejectReason | None = None
    looks_like_content_fetch: bool = False
    trusted_agent: bool = False


class AdmissionFilter:
    """Header-based bot filter with a content-fetch escape hatch."""

    def __init__(
        self,
        *,
        object_route_prefix: str = "uploads",
        trusted_agent_prefixes: Iterable[str] = ("Cloudflare-Image-Resizing",),
        blocked_agent_patterns: Iterable[str] = BLOCKED_AGENT_PATTERNS,
    ) -> None:
        self._object_path_prefix = f"/{object_route_prefix.strip('/')}/"
        self._trusted_prefixes = tuple(p.lower() for p in trusted_agent_prefixes if p)
        self._blocked_patterns = tuple(p.lower() for p in blocked_agent_patterns if p)

    def is_trusted_agent(self, user_agent: str) -> bool:
        return bool(user_agent) and user_agent.lower().startswith(self._trusted_prefixes)

    def looks_like_content_fetch(self, path: str, accept: str) -> bool:
        if path.startswith(self._object_path_prefix) and file_extension(path) in EXTENSION_CONTENT_TYPES:
            return True
        accept = accept.lower()
        return any(marker in accept for marker in CONTENT_ACCEPT_MARKERS)

    def matches_automation(self, user_agent: str) -> bool:
        lowered = user_agent.lower()
        return any(pattern in lowered for pattern in self._blocked_patterns)

    def evaluate(self, request: AdmissionRequest) -> AdmissionDecision:
        user_agent = request.header("user-agent").strip()

        if self.is_trusted_agent(user_agent):
            logger.debug("admission.trusted_agent", extra={"user_agent": user_agent, "path": request.path})
            return AdmissionDecision(admitted=True, trusted_agent=True)

        accept = request.header("accept")
        content_fetch = self.looks_like_content_fetch(request.path, accept)

        reason: RejectReason | None = None
        if not content_fetch:
            if not user_agent:
                reason = RejectReason.EMPTY_USER_AGENT
            elif self.matches_automation(user_agent):
                reason = RejectReason.AUTOMATION_USER_AGENT

        if reason is None:
            return AdmissionDecision(admitted=True, looks_like_content_fetch=content_fetch)

        audit(
            "admission.rejected",
            client_address=request.client_address,
            user_agent=user_agent,
            accept=accept,
            path=request.path,
            looks_like_content_fetch=content_fetch,
            trusted_agent=False,
            reason=reason.value,
        )
        return AdmissionDecision(admitted=False, reason=reason, looks_like_content_fetch=content_fetch)
