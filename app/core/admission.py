"""Admission control stage of the request pipeline."""

from __future__ import annotations

from fastapi import Request, Response

from app.core.errors import ForbiddenAppError
from app.core.exception_handlers import build_error_response
from app.core.pipeline import RequestInterceptor
from app.core.rate_limit import fingerprint_for
from app.core.services import get_services
from app.services.admission import AdmissionRequest


class AdmissionInterceptor(RequestInterceptor):
    """Rejects bot-like requests with 403 before any rate budget is spent."""

    name = "admission"

    async def intercept(self, request: Request) -> Response | None:
        services = get_services(request)
        fingerprint = fingerprint_for(request)
        decision = services.admission_filter.evaluate(
            AdmissionRequest(
                path=request.url.path,
                headers=request.headers,
                client_address=fingerprint.address,
            )
        )
        if decision.admitted:
            return None
        return build_error_response(
            ForbiddenAppError(
                code="forbidden",
                message="Forbidden",
            )
        )
