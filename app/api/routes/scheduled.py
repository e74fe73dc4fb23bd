"""Scheduled-trigger entry point for the janitor.

External schedulers (cron, Cloud Scheduler, k8s CronJob) call this route;
it shares nothing with the request path except the backends.
"""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import APIRouter, Depends, Query

from app.core.auth import verify_admin_api_key
from app.core.services import GatewayServices, get_services
from app.schemas.janitor import JanitorReportResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


class SweepSelection(str, Enum):
    ALL = "all"
    OBJECTS = "objects"
    COUNTERS = "counters"


@router.post(
    "/_scheduled/cleanup",
    response_model=JanitorReportResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def run_cleanup(
    sweep: SweepSelection = Query(default=SweepSelection.ALL),
    services: GatewayServices = Depends(get_services),
) -> JanitorReportResponse:
    """Run the janitor synchronously and return its report.

    Sweep failures are reported in the body with ``ok: false``; the route
    itself answers 200.
    """
    janitor = services.janitor
    logger.info("janitor.triggered", extra={"sweep": sweep.value, "trigger": "http"})

    report = await janitor.run(
        objects=sweep in (SweepSelection.ALL, SweepSelection.OBJECTS),
        counters=sweep in (SweepSelection.ALL, SweepSelection.COUNTERS),
    )
    return JanitorReportResponse.from_report(report)
