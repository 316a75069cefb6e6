"""
Failure Injection Tests.

Validates resilience against component failures: the site directory
circuit breaker, Redis outages around the trip lock, and dead-lettered
sweeper work.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from backend.app.core.reliability import CircuitBreaker, CircuitOpenError
from backend.app.domain.tracking import point_filter
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.trip_tracking import PointRecord

from conftest import auth_headers


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker("test", failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    # Fail 1
    with pytest.raises(ValueError):
        await cb.call(failing_func)

    # Fail 2 (Threshold reached)
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Call 3 (Should be CircuitOpenError)
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers():
    cb = CircuitBreaker("test", failure_threshold=1, reset_timeout=30)

    async def failing_func():
        raise ValueError("Boom")

    async def healthy_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Pretend the reset timeout has passed
    cb.last_failure_time -= 31

    assert await cb.call(healthy_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_ingestion_survives_redis_outage(db_session, active_trip, redis_client_session, mocker):
    """Without Redis the row lock is the only serialization; ingestion still works."""
    class FailingLock:
        async def acquire(self):
            raise RedisConnectionError("redis down")

        async def release(self):
            raise AssertionError("never acquired")

    mocker.patch.object(redis_client_session, "lock", return_value=FailingLock())

    result = await point_filter.add_point(
        db_session, active_trip.id, PointRecord(latitude=41.3, longitude=69.2)
    )

    assert result.rejected is False


@pytest.mark.asyncio
async def test_dlq_listing_and_retry(client, db_session):
    """Failed sweeper items are visible to admins and can be replayed."""
    dlq_item = DeadLetterQueue(
        task_name="sweeper.auto_close_trip",
        error_message="OperationalError: database is locked",
        payload={"trip_id": 500},
        status=DLQStatus.FAILED,
    )
    db_session.add(dlq_item)
    await db_session.commit()

    admin_headers = auth_headers(1, UserRole.ADMIN)

    response = await client.get("/v1/admin/ops/dlq", params={"status": "FAILED"}, headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["entries"][0]["payload"] == {"trip_id": 500}

    response = await client.post(f"/v1/admin/ops/dlq/{dlq_item.id}/retry", headers=admin_headers)
    assert response.status_code == 200
    # Trip 500 does not exist any more, so there is nothing left to do
    assert response.json()["status"] == "PROCESSED"
    assert response.json()["retry_count"] == 1

    response = await client.post(f"/v1/admin/ops/dlq/{dlq_item.id}/retry", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"

    response = await client.post("/v1/admin/ops/dlq/9999/retry", headers=admin_headers)
    assert response.status_code == 404

    response = await client.get("/v1/admin/ops/dlq", headers=auth_headers(2, UserRole.MANAGER))
    assert response.status_code == 403
