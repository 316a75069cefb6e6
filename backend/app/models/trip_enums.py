"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration. Every status except ACTIVE is terminal."""
    ACTIVE = "ACTIVE"  # Employee is on the road, points are accepted
    COMPLETED = "COMPLETED"  # Ended by the employee
    CANCELLED = "CANCELLED"  # Cancelled, no statistics computed
    AUTO_CLOSED = "AUTO_CLOSED"  # Closed by the stale-trip sweeper


TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED, TripStatus.AUTO_CLOSED)


class TripTaskType(str, enum.Enum):
    """What the employee set out to do on the trip."""
    FILLING = "FILLING"
    COLLECTION = "COLLECTION"
    REPAIR = "REPAIR"
    MAINTENANCE = "MAINTENANCE"
    INSPECTION = "INSPECTION"
    MERCHANDISING = "MERCHANDISING"
    OTHER = "OTHER"


class PointFilterReason(str, enum.Enum):
    """Why a GPS point was stored as rejected."""
    LOW_ACCURACY = "LOW_ACCURACY"
    GPS_JUMP = "GPS_JUMP"


class AnomalyType(str, enum.Enum):
    """Anomaly type enumeration."""
    GPS_JUMP = "GPS_JUMP"
    SPEED_VIOLATION = "SPEED_VIOLATION"
    LONG_STOP = "LONG_STOP"
    MILEAGE_DISCREPANCY = "MILEAGE_DISCREPANCY"
    ROUTE_DEVIATION = "ROUTE_DEVIATION"
    MISSED_LOCATION = "MISSED_LOCATION"
    UNPLANNED_STOP = "UNPLANNED_STOP"


class AnomalySeverity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class TripTaskLinkStatus(str, enum.Enum):
    """Status of a work item linked to a trip."""
    PENDING = "PENDING"  # Linked, site not reached yet
    IN_PROGRESS = "IN_PROGRESS"  # Employee stopped at the work item's site
    COMPLETED = "COMPLETED"  # Marked done by the employee
    SKIPPED = "SKIPPED"  # Trip ended without completing it
