from __future__ import annotations

from app.api.routes.debug import router as debug_router
from app.api.routes.health import router as health_router
from app.api.routes.objects import router as objects_router
from app.api.routes.scheduled import router as scheduled_router

__all__ = ["debug_router", "health_router", "objects_router", "scheduled_router"]
