"""Request body size enforcement for uploads."""
from __future__ import annotations

import logging

from fastapi import Request

from app.core.errors import PayloadTooLargeAppError

logger = logging.getLogger(__name__)


def _too_large(max_bytes: int) -> PayloadTooLargeAppError:
    return PayloadTooLargeAppError(
        code="payload_too_large",
        message=f"Upload too large. Maximum size: {max_bytes // (1024 * 1024)}MB",
        details={"limit": max_bytes},
    )


async def read_body_limited(request: Request, max_bytes: int) -> bytes:
    """Read the request body in chunks enforcing ``max_bytes``.

    Checks Content-Length first when the client sent one, then enforces the
    limit again while streaming since the header may lie.

    Raises:
        PayloadTooLargeAppError: If the body exceeds ``max_bytes``.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        logger.warning(
            "body_limit.rejected_by_header",
            extra={"content_length": int(declared), "max_bytes": max_bytes},
        )
        raise _too_large(max_bytes)

    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        if not chunk:
            continue
        size += len(chunk)
        if size > max_bytes:
            logger.warning(
                "body_limit.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise _too_large(max_bytes)
        chunks.append(chunk)

    return b"".join(chunks)
