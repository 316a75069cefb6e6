"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    trips, tracking, anomalies, reconciliation, analytics, admin_ops
)

router = APIRouter()

# Fixed /trips/* prefixes go before the /trips/{trip_id} routes
router.include_router(anomalies.router)
router.include_router(reconciliation.router)
router.include_router(analytics.router)

# Trip lifecycle and GPS tracking
router.include_router(trips.router)
router.include_router(tracking.router)

# Ops endpoints
router.include_router(admin_ops.router)
