"""
Odometer reconciliation tests.
"""

import pytest

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.tracking import reconciliation
from backend.app.models.vehicle import Vehicle

from conftest import ORG_ID, OTHER_ORG_ID, MANAGER_ID


@pytest.mark.asyncio
async def test_reading_within_threshold(db_session, vehicle):
    record = await reconciliation.perform_reconciliation(
        db_session, ORG_ID, vehicle.id, actual_odometer=130, performed_by_id=MANAGER_ID
    )

    assert record.expected_odometer == 100
    assert record.actual_odometer == 130
    assert record.difference_km == 30
    assert record.threshold_km == settings.mileage_threshold_km
    assert record.is_anomaly is False

    await db_session.refresh(vehicle)
    assert vehicle.current_odometer == 130
    assert vehicle.last_odometer_update is not None


@pytest.mark.asyncio
async def test_reading_beyond_threshold(db_session, vehicle):
    record = await reconciliation.perform_reconciliation(
        db_session, ORG_ID, vehicle.id, actual_odometer=40, performed_by_id=MANAGER_ID, notes="Checked twice"
    )

    assert record.difference_km == 60
    assert record.is_anomaly is True
    assert record.notes == "Checked twice"


@pytest.mark.asyncio
async def test_difference_equal_to_threshold_is_not_anomalous(db_session, vehicle):
    record = await reconciliation.perform_reconciliation(
        db_session, ORG_ID, vehicle.id,
        actual_odometer=100 + settings.mileage_threshold_km, performed_by_id=MANAGER_ID,
    )
    assert record.is_anomaly is False


@pytest.mark.asyncio
async def test_vehicle_of_other_organization(db_session):
    foreign = Vehicle(organization_id=OTHER_ORG_ID, plate_number="77X777XX", current_odometer=10)
    db_session.add(foreign)
    await db_session.commit()

    with pytest.raises(ResourceNotFoundError):
        await reconciliation.perform_reconciliation(db_session, ORG_ID, foreign.id, 20, MANAGER_ID)

    await db_session.refresh(foreign)
    assert foreign.current_odometer == 10


@pytest.mark.asyncio
async def test_history_newest_first(db_session, vehicle):
    for reading in (110, 120, 130):
        await reconciliation.perform_reconciliation(db_session, ORG_ID, vehicle.id, reading, MANAGER_ID)

    history = await reconciliation.get_reconciliation_history(db_session, ORG_ID, vehicle.id)
    assert [r.actual_odometer for r in history] == [130, 120, 110]
    assert [r.expected_odometer for r in history] == [120, 110, 100]

    history = await reconciliation.get_reconciliation_history(db_session, ORG_ID, vehicle.id, limit=1)
    assert len(history) == 1

    assert await reconciliation.get_reconciliation_history(db_session, OTHER_ORG_ID, vehicle.id) == []
