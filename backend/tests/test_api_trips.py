"""
Trip API tests.

End-to-end flows through the HTTP layer: auth, validation, ownership and
error mapping on top of the tracking domain.
"""

import pytest
from sqlalchemy import select, func

from backend.app.core.config import settings
from backend.app.models.audit_log import AuditLog
from backend.app.models.enums import UserRole

from conftest import (
    ORG_ID, OTHER_ORG_ID, OPERATOR_ID, OTHER_OPERATOR_ID, MANAGER_ID, auth_headers
)

API = "/v1"

CLUSTER = [
    {"latitude": 41.31112, "longitude": 69.27972, "accuracy_meters": 8, "recorded_at": "2026-03-02T09:00:00Z"},
    {"latitude": 41.31115, "longitude": 69.27975, "accuracy_meters": 6, "recorded_at": "2026-03-02T09:02:30Z"},
    {"latitude": 41.31110, "longitude": 69.27978, "accuracy_meters": 7, "recorded_at": "2026-03-02T09:05:00Z"},
]


async def _start(client, headers, **body):
    response = await client.post(f"{API}/trips/start", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_full_trip_flow(client, operator_headers, manager_headers, vehicle, site, work_item):
    trip = await _start(
        client, operator_headers,
        vehicle_id=vehicle.id, task_type="FILLING", start_odometer=100, task_ids=[work_item.id],
    )
    assert trip["status"] == "ACTIVE"
    assert trip["employee_id"] == OPERATOR_ID
    assert trip["organization_id"] == ORG_ID
    trip_id = trip["id"]

    response = await client.get(f"{API}/trips/active", headers=operator_headers)
    assert response.json()["id"] == trip_id

    # Offline batch: a dwell at the site
    response = await client.post(
        f"{API}/trips/{trip_id}/points/batch", json={"points": CLUSTER}, headers=operator_headers
    )
    assert response.status_code == 200, response.text
    batch = response.json()
    assert batch["accepted"] == 3
    assert batch["rejected"] == 0
    assert len(batch["results"]) == 3

    # Drive away
    response = await client.post(
        f"{API}/trips/{trip_id}/points",
        json={"latitude": 41.3165, "longitude": 69.27975, "recorded_at": "2026-03-02T09:07:00Z"},
        headers=operator_headers,
    )
    assert response.status_code == 200
    assert response.json()["rejected"] is False

    stops = (await client.get(f"{API}/trips/{trip_id}/stops", headers=operator_headers)).json()
    assert len(stops) == 1
    assert stops[0]["site_id"] == site.id
    assert stops[0]["is_verified"] is True
    assert stops[0]["duration_seconds"] == 420

    tasks = (await client.get(f"{API}/trips/{trip_id}/tasks", headers=operator_headers)).json()
    assert tasks[0]["status"] == "IN_PROGRESS"
    assert tasks[0]["verified_by_gps"] is True

    response = await client.post(
        f"{API}/trips/{trip_id}/tasks/{work_item.id}/complete",
        json={"notes": "Refilled"},
        headers=operator_headers,
    )
    assert response.json()["status"] == "COMPLETED"

    route = (await client.get(f"{API}/trips/{trip_id}/route", headers=operator_headers)).json()
    assert len(route) == 4

    response = await client.post(
        f"{API}/trips/{trip_id}/end", json={"end_odometer": 101}, headers=operator_headers
    )
    assert response.status_code == 200, response.text
    ended = response.json()
    assert ended["status"] == "COMPLETED"
    assert ended["visited_sites_count"] == 1
    assert ended["start_site_id"] == site.id
    assert ended["calculated_distance_meters"] > 500
    assert ended["total_anomalies"] == 0

    # Supervisors see the finished trip
    response = await client.get(f"{API}/trips", headers=manager_headers)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_second_start_conflicts(client, operator_headers):
    await _start(client, operator_headers)

    response = await client.post(f"{API}/trips/start", json={}, headers=operator_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_start_with_foreign_vehicle(client, operator_headers):
    response = await client.post(f"{API}/trips/start", json={"vehicle_id": 999}, headers=operator_headers)

    assert response.status_code == 400
    assert response.json()["details"] == {"vehicle_id": 999}


@pytest.mark.asyncio
async def test_supervisor_starts_trip_for_employee(client, manager_headers, operator_headers):
    trip = await _start(client, manager_headers, employee_id=OPERATOR_ID)
    assert trip["employee_id"] == OPERATOR_ID

    # Operators cannot start trips for someone else
    trip = await _start(client, auth_headers(OTHER_OPERATOR_ID), employee_id=OPERATOR_ID)
    assert trip["employee_id"] == OTHER_OPERATOR_ID


@pytest.mark.asyncio
async def test_requires_valid_token(client):
    response = await client.get(f"{API}/trips/active")
    assert response.status_code in (401, 403)

    response = await client.get(f"{API}/trips/active", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_revoked_token_is_rejected(client, operator_headers, redis_client_session):
    await redis_client_session.set(f"user:tokens:{OPERATOR_ID}:revoked", "1")

    response = await client.get(f"{API}/trips/active", headers=operator_headers)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_point_validation(client, operator_headers):
    trip = await _start(client, operator_headers)

    response = await client.post(
        f"{API}/trips/{trip['id']}/points",
        json={"latitude": 91, "longitude": 69.2},
        headers=operator_headers,
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.post(
        f"{API}/trips/{trip['id']}/points/batch", json={"points": []}, headers=operator_headers
    )
    assert response.status_code == 422

    response = await client.post(
        f"{API}/trips/{trip['id']}/points",
        json={"latitude": 41.3, "longitude": 69.2, "speed_mps": -5},
        headers=operator_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_low_accuracy_point_is_soft_rejected(client, operator_headers):
    trip = await _start(client, operator_headers)

    response = await client.post(
        f"{API}/trips/{trip['id']}/points",
        json={"latitude": 41.3, "longitude": 69.2, "accuracy_meters": settings.min_gps_accuracy_meters + 1},
        headers=operator_headers,
    )

    assert response.status_code == 200
    assert response.json()["rejected"] is True
    assert response.json()["reason"] == "LOW_ACCURACY"


@pytest.mark.asyncio
async def test_points_on_cancelled_trip(client, operator_headers):
    trip = await _start(client, operator_headers)
    response = await client.post(
        f"{API}/trips/{trip['id']}/cancel", json={"reason": "Wrong vehicle"}, headers=operator_headers
    )
    assert response.json()["notes"] == "[Cancelled: Wrong vehicle]"

    response = await client.post(
        f"{API}/trips/{trip['id']}/points", json={"latitude": 41.3, "longitude": 69.2}, headers=operator_headers
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_cancel_and_end_without_body(client, operator_headers):
    trip = await _start(client, operator_headers)
    response = await client.post(f"{API}/trips/{trip['id']}/cancel", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["notes"] is None

    trip = await _start(client, operator_headers)
    response = await client.post(f"{API}/trips/{trip['id']}/end", headers=operator_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"


@pytest.mark.asyncio
async def test_trip_ownership(client, operator_headers):
    trip = await _start(client, operator_headers)
    url = f"{API}/trips/{trip['id']}"

    response = await client.get(url, headers=auth_headers(OTHER_OPERATOR_ID))
    assert response.status_code == 403

    response = await client.get(url, headers=auth_headers(MANAGER_ID, UserRole.MANAGER, OTHER_ORG_ID))
    assert response.status_code == 403

    response = await client.get(url, headers=auth_headers(MANAGER_ID, UserRole.MANAGER))
    assert response.status_code == 200

    response = await client.get(url, headers=auth_headers(1, UserRole.ADMIN, OTHER_ORG_ID))
    assert response.status_code == 200

    response = await client.get(f"{API}/trips/4040", headers=operator_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_operator_list_is_limited_to_own_trips(client, operator_headers, manager_headers):
    await _start(client, operator_headers)
    await _start(client, auth_headers(OTHER_OPERATOR_ID))

    response = await client.get(
        f"{API}/trips", params={"employee_id": OTHER_OPERATOR_ID}, headers=operator_headers
    )
    body = response.json()
    assert body["total"] == 1
    assert body["trips"][0]["employee_id"] == OPERATOR_ID

    response = await client.get(f"{API}/trips", params={"status": "ACTIVE"}, headers=manager_headers)
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_live_location(client, operator_headers):
    trip = await _start(client, operator_headers)

    response = await client.patch(
        f"{API}/trips/{trip['id']}/live-location", json={"is_active": True}, headers=operator_headers
    )

    assert response.status_code == 200
    assert response.json()["live_location_active"] is True


@pytest.mark.asyncio
async def test_duplicate_task_link(client, operator_headers):
    trip = await _start(client, operator_headers, task_ids=[5])

    response = await client.post(
        f"{API}/trips/{trip['id']}/tasks", json={"task_id": 5}, headers=operator_headers
    )
    assert response.status_code == 409

    response = await client.post(
        f"{API}/trips/{trip['id']}/tasks", json={"task_id": 6}, headers=operator_headers
    )
    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"


# --- review ------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anomaly_review(client, operator_headers, manager_headers):
    trip = await _start(client, operator_headers)
    await client.post(
        f"{API}/trips/{trip['id']}/points",
        json={"latitude": 41.3, "longitude": 69.2, "speed_mps": 55},
        headers=operator_headers,
    )

    response = await client.get(f"{API}/trips/anomalies/unresolved", headers=operator_headers)
    assert response.status_code == 403

    response = await client.get(
        f"{API}/trips/anomalies/unresolved", params={"type": "SPEED_VIOLATION"}, headers=manager_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    anomaly = body["anomalies"][0]
    assert anomaly["details"]["speed_kmh"] == 198

    trip_anomalies = (await client.get(f"{API}/trips/{trip['id']}/anomalies", headers=operator_headers)).json()
    assert [a["id"] for a in trip_anomalies] == [anomaly["id"]]

    response = await client.post(
        f"{API}/trips/anomalies/{anomaly['id']}/resolve",
        json={"notes": "Highway, confirmed with driver"},
        headers=manager_headers,
    )
    assert response.status_code == 200
    assert response.json()["resolved"] is True
    assert response.json()["resolved_by_id"] == MANAGER_ID

    response = await client.post(
        f"{API}/trips/anomalies/{anomaly['id']}/resolve",
        headers=auth_headers(MANAGER_ID, UserRole.MANAGER, OTHER_ORG_ID),
    )
    assert response.status_code == 403

    response = await client.get(f"{API}/trips/anomalies/unresolved", headers=manager_headers)
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_resolving_twice_keeps_first_resolution(client, db_session, operator_headers, manager_headers):
    trip = await _start(client, operator_headers)
    await client.post(
        f"{API}/trips/{trip['id']}/points",
        json={"latitude": 41.3, "longitude": 69.2, "speed_mps": 55},
        headers=operator_headers,
    )
    (anomaly,) = (await client.get(f"{API}/trips/{trip['id']}/anomalies", headers=operator_headers)).json()
    url = f"{API}/trips/anomalies/{anomaly['id']}/resolve"

    first = await client.post(url, json={"notes": "first"}, headers=manager_headers)
    second = await client.post(url, json={"notes": "second"}, headers=auth_headers(1, UserRole.ADMIN, OTHER_ORG_ID))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["resolution_notes"] == "first"

    audit_rows = (await db_session.execute(
        select(func.count(AuditLog.id)).where(
            AuditLog.action == "ANOMALY_RESOLVED", AuditLog.entity_id == anomaly["id"]
        )
    )).scalar()
    assert audit_rows == 1


@pytest.mark.asyncio
async def test_reconciliation_endpoints(client, manager_headers, operator_headers, vehicle):
    response = await client.post(
        f"{API}/trips/reconciliation",
        json={"vehicle_id": vehicle.id, "actual_odometer": 175},
        headers=manager_headers,
    )
    assert response.status_code == 201, response.text
    record = response.json()
    assert record["expected_odometer"] == 100
    assert record["difference_km"] == 75
    assert record["is_anomaly"] is True

    response = await client.get(
        f"{API}/trips/reconciliation/{vehicle.id}/history", headers=manager_headers
    )
    assert [r["id"] for r in response.json()] == [record["id"]]

    response = await client.post(
        f"{API}/trips/reconciliation",
        json={"vehicle_id": vehicle.id, "actual_odometer": 180},
        headers=operator_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_analytics_summary(client, operator_headers, manager_headers, vehicle):
    trip = await _start(client, operator_headers, vehicle_id=vehicle.id)
    await client.post(f"{API}/trips/{trip['id']}/end", headers=operator_headers)
    await _start(client, auth_headers(OTHER_OPERATOR_ID))

    params = {"date_from": "2020-01-01T00:00:00Z", "date_to": "2099-01-01T00:00:00Z"}
    response = await client.get(f"{API}/trips/analytics/summary", params=params, headers=manager_headers)

    assert response.status_code == 200, response.text
    summary = response.json()
    assert summary["total_trips"] == 2
    assert summary["trips_by_status"]["COMPLETED"] == 1
    assert summary["trips_by_status"]["ACTIVE"] == 1
    assert summary["unique_employees"] == 2
    assert summary["unique_vehicles"] == 1

    response = await client.get(
        f"{API}/trips/analytics/employee",
        params={**params, "employee_id": OPERATOR_ID},
        headers=manager_headers,
    )
    assert response.json()["total_trips"] == 1


@pytest.mark.asyncio
async def test_analytics_site_visits(client, manager_headers, site):
    for employee_id in (OPERATOR_ID, OTHER_OPERATOR_ID):
        headers = auth_headers(employee_id)
        trip = await _start(client, headers)
        await client.post(f"{API}/trips/{trip['id']}/points/batch", json={"points": CLUSTER}, headers=headers)
        await client.post(
            f"{API}/trips/{trip['id']}/points",
            json={"latitude": 41.3165, "longitude": 69.27975, "recorded_at": "2026-03-02T09:07:00Z"},
            headers=headers,
        )

    params = {"date_from": "2026-03-01T00:00:00Z", "date_to": "2026-03-03T00:00:00Z"}
    response = await client.get(f"{API}/trips/analytics/sites", params=params, headers=manager_headers)

    assert response.status_code == 200, response.text
    (stats,) = response.json()["sites"]
    assert stats["site_id"] == site.id
    assert stats["site_name"] == "Lobby snack machine"
    assert stats["total_visits"] == 2
    assert stats["verified_visits"] == 2
    assert stats["total_duration_minutes"] == 14.0
    assert stats["avg_duration_minutes"] == 7.0

    response = await client.get(
        f"{API}/trips/analytics/sites",
        params={"date_from": "2026-03-03T00:00:00Z", "date_to": "2026-03-04T00:00:00Z"},
        headers=manager_headers,
    )
    assert response.json()["sites"] == []


# --- admin ops ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_admin_sweep(client, operator_headers):
    await _start(client, operator_headers)
    admin_headers = auth_headers(1, UserRole.ADMIN)

    response = await client.post(f"{API}/admin/ops/sweep", headers=operator_headers)
    assert response.status_code == 403

    response = await client.post(f"{API}/admin/ops/sweep", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"auto_closed": 0, "long_stops_flagged": 0, "empty_trips": 0, "failed": 0}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
