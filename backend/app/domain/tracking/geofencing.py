"""
Site matcher.

Two-stage nearest-site search: a latitude-adjusted bounding box narrows the
organization's sites in SQL, exact haversine distance picks the nearest.
"""

import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.reliability import CircuitOpenError, site_directory_breaker
from backend.app.domain.tracking.geometry import bounding_box, haversine_meters
from backend.app.models.service_site import ServiceSite

logger = logging.getLogger(__name__)


class SiteMatch(NamedTuple):
    site_id: int
    site_name: str
    site_address: str
    distance_meters: int
    is_within_radius: bool


async def _load_candidate_sites(
    db: AsyncSession, organization_id: int, latitude: float, longitude: float
) -> List[ServiceSite]:
    min_lat, max_lat, min_lon, max_lon = bounding_box(
        latitude, longitude, settings.geofence_search_radius_km
    )
    # Savepoint keeps a directory failure from aborting the caller's transaction
    async with db.begin_nested():
        result = await db.execute(
            select(ServiceSite).where(
                ServiceSite.organization_id == organization_id,
                ServiceSite.is_active.is_(True),
                ServiceSite.deleted_at.is_(None),
                ServiceSite.latitude.is_not(None),
                ServiceSite.longitude.is_not(None),
                ServiceSite.latitude.between(min_lat, max_lat),
                ServiceSite.longitude.between(min_lon, max_lon),
            )
        )
        return result.scalars().all()


async def find_nearest_site(
    db: AsyncSession, organization_id: int, latitude: float, longitude: float
) -> Optional[SiteMatch]:
    """
    Nearest active site of the organization within the search radius.

    Returns None when no site is in range, when the directory query fails,
    or while the directory circuit is open.
    """
    try:
        sites = await site_directory_breaker.call(
            _load_candidate_sites, db, organization_id, latitude, longitude
        )
    except CircuitOpenError:
        logger.warning("Site directory circuit open, skipping geofence for org %s", organization_id)
        return None
    except SQLAlchemyError as e:
        logger.error("Site directory lookup failed for org %s: %s", organization_id, e)
        return None

    nearest = None
    nearest_distance = None
    for site in sites:
        distance = haversine_meters(latitude, longitude, site.latitude, site.longitude)
        if nearest_distance is None or distance < nearest_distance:
            nearest, nearest_distance = site, distance

    if nearest is None:
        return None

    return SiteMatch(
        site_id=nearest.id,
        site_name=nearest.display_name,
        site_address=nearest.address or "",
        distance_meters=round(nearest_distance),
        is_within_radius=nearest_distance <= settings.geofence_radius_meters,
    )
