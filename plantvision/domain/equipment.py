"""Equipment domain enums."""

from enum import StrEnum


class EquipmentStatus(StrEnum):
    """Operational status of a piece of equipment."""

    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"
