"""
Trip Analytics Service.

Handles aggregation over finished trips and stops for dashboards.
Focused on READ-ONLY operations.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case

from backend.app.db.session import as_utc
from backend.app.models.trip import Trip
from backend.app.models.trip_stop import TripStop
from backend.app.models.trip_enums import TripStatus
from backend.app.schemas.analytics import (
    EmployeeTripStats, SiteVisitStats, SiteVisitStatsResponse, TripsSummary
)

FINISHED_STATUSES = (TripStatus.COMPLETED, TripStatus.AUTO_CLOSED)


class TripAnalyticsService:

    @staticmethod
    async def get_employee_stats(
        db: AsyncSession,
        organization_id: int,
        employee_id: int,
        date_from: datetime,
        date_to: datetime,
    ) -> EmployeeTripStats:
        """Totals for one employee over finished trips started in the period."""
        conditions = (
            Trip.organization_id == organization_id,
            Trip.employee_id == employee_id,
            Trip.deleted_at.is_(None),
            Trip.started_at >= date_from,
            Trip.started_at <= date_to,
            Trip.status.in_(FINISHED_STATUSES),
        )

        totals = (await db.execute(
            select(
                func.count(Trip.id),
                func.coalesce(func.sum(Trip.calculated_distance_meters), 0),
                func.coalesce(func.sum(Trip.visited_sites_count), 0),
                func.coalesce(func.sum(Trip.total_stops), 0),
                func.coalesce(func.sum(Trip.total_anomalies), 0),
            ).where(*conditions)
        )).one()

        # Durations are averaged in Python to stay dialect-neutral
        spans = (await db.execute(
            select(Trip.started_at, Trip.ended_at).where(*conditions, Trip.ended_at.is_not(None))
        )).all()
        durations = [(as_utc(end) - as_utc(start)).total_seconds() for start, end in spans]
        avg_minutes = (sum(durations) / len(durations) / 60) if durations else 0.0

        return EmployeeTripStats(
            employee_id=employee_id,
            total_trips=totals[0] or 0,
            total_distance_km=round((totals[1] or 0) / 1000, 2),
            total_sites_visited=totals[2] or 0,
            total_stops=totals[3] or 0,
            total_anomalies=totals[4] or 0,
            avg_trip_duration_minutes=round(avg_minutes, 1),
        )

    @staticmethod
    async def get_site_visit_stats(
        db: AsyncSession,
        organization_id: int,
        date_from: datetime,
        date_to: datetime,
        site_id: Optional[int] = None,
    ) -> SiteVisitStatsResponse:
        """Stops per matched site, most visited first."""
        visits = func.count(TripStop.id)
        query = (
            select(
                TripStop.site_id,
                TripStop.site_name,
                visits,
                func.coalesce(func.sum(case((TripStop.is_verified.is_(True), 1), else_=0)), 0),
                func.coalesce(func.sum(TripStop.duration_seconds), 0),
            )
            .join(Trip, Trip.id == TripStop.trip_id)
            .where(
                Trip.organization_id == organization_id,
                Trip.deleted_at.is_(None),
                TripStop.site_id.is_not(None),
                TripStop.started_at >= date_from,
                TripStop.started_at <= date_to,
            )
            .group_by(TripStop.site_id, TripStop.site_name)
            .order_by(visits.desc(), TripStop.site_id)
        )

        if site_id:
            query = query.where(TripStop.site_id == site_id)

        rows = (await db.execute(query)).all()

        sites = []
        for row_site_id, site_name, total_visits, verified, duration_seconds in rows:
            total_minutes = (duration_seconds or 0) / 60
            sites.append(SiteVisitStats(
                site_id=row_site_id,
                site_name=site_name,
                total_visits=total_visits,
                verified_visits=verified or 0,
                total_duration_minutes=round(total_minutes, 1),
                avg_duration_minutes=round(total_minutes / total_visits, 1) if total_visits else 0.0,
            ))

        return SiteVisitStatsResponse(sites=sites)

    @staticmethod
    async def get_trips_summary(
        db: AsyncSession,
        organization_id: int,
        date_from: datetime,
        date_to: datetime,
    ) -> TripsSummary:
        """Organization-wide summary for trips started in the period."""
        conditions = (
            Trip.organization_id == organization_id,
            Trip.deleted_at.is_(None),
            Trip.started_at >= date_from,
            Trip.started_at <= date_to,
        )

        totals = (await db.execute(
            select(
                func.count(Trip.id),
                func.coalesce(func.sum(Trip.calculated_distance_meters), 0),
                func.coalesce(func.sum(Trip.visited_sites_count), 0),
                func.coalesce(func.sum(Trip.total_anomalies), 0),
                func.count(func.distinct(Trip.employee_id)),
                func.count(func.distinct(Trip.vehicle_id)),
            ).where(*conditions)
        )).one()

        by_status = (await db.execute(
            select(Trip.status, func.count(Trip.id)).where(*conditions).group_by(Trip.status)
        )).all()
        trips_by_status = {status.value: 0 for status in TripStatus}
        for status, count in by_status:
            trips_by_status[status.value] = count

        return TripsSummary(
            total_trips=totals[0] or 0,
            trips_by_status=trips_by_status,
            total_distance_km=round((totals[1] or 0) / 1000, 2),
            total_sites_visited=totals[2] or 0,
            total_anomalies=totals[3] or 0,
            unique_employees=totals[4] or 0,
            unique_vehicles=totals[5] or 0,
        )
