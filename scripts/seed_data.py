#!/usr/bin/env python3
"""Seed a development database with plants, users and equipment.

Usage:
    python scripts/seed_data.py [--reset]

Existing rows with the same unique codes are skipped, so the script can be
re-run safely. ``--reset`` deletes the seeded collections first.
"""

import asyncio
import logging
import sys
from typing import Any

from plantvision.core.config import settings
from plantvision.core.db_client import Store
from plantvision.core.security import hash_password
from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.user import UserRole
from plantvision.services.scope_policy import eq


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

PLANT_A = "550e8400-e29b-41d4-a716-446655440001"
PLANT_B = "550e8400-e29b-41d4-a716-446655440002"

PLANTS: list[dict[str, Any]] = [
    {
        "id": PLANT_A,
        "plant_code": "NTPC-A",
        "plant_name": "NTPC Plant A - Thermal Power Station",
        "description": "Main thermal power generation facility with 4 units",
        "location": "Singrauli, Madhya Pradesh",
    },
    {
        "id": PLANT_B,
        "plant_code": "NTPC-B",
        "plant_name": "NTPC Plant B - Hydro Power Station",
        "description": "Hydroelectric power generation facility",
        "location": "Tehri, Uttarakhand",
    },
]

# (username, password, first, last, role, employee_id, department, plant_area)
USERS: list[tuple[str, str, str, str, UserRole, str, str, str | None]] = [
    ("admin", "admin1234", "System", "Administrator", UserRole.ADMIN, "NTPC-ADM-001", "IT", None),
    ("manager1", "manager1234", "Amit", "Singh", UserRole.MANAGER, "NTPC-MGR-001", "Operations", "Boiler Area"),
    ("manager2", "manager1234", "Sunita", "Patel", UserRole.MANAGER, "NTPC-MGR-002", "Maintenance", "Turbine Area"),
    ("worker1", "worker1234", "Ramesh", "Yadav", UserRole.WORKER, "NTPC-WRK-001", "Operations", "Boiler Area"),
    ("worker2", "worker1234", "Kavita", "Devi", UserRole.WORKER, "NTPC-WRK-002", "Maintenance", "Turbine Area"),
    ("worker3", "worker1234", "Suresh", "Kumar", UserRole.WORKER, "NTPC-WRK-003", "Operations", "Generator Area"),
]

# (plant_id, code, name, type, area, specifications)
EQUIPMENT: list[tuple[str, str, str, str, str, dict[str, str]]] = [
    (
        PLANT_A,
        "BOILER-001",
        "Main Boiler Unit 1",
        "Boiler",
        "Boiler Area",
        {"capacity": "500 MW", "pressure": "165 bar", "fuel_type": "Coal"},
    ),
    (
        PLANT_A,
        "TURBINE-001",
        "Steam Turbine Unit 1",
        "Turbine",
        "Turbine Area",
        {"capacity": "500 MW", "rpm": "3000", "cooling": "Water cooled"},
    ),
    (
        PLANT_A,
        "GEN-001",
        "Generator Unit 1",
        "Generator",
        "Generator Area",
        {"capacity": "500 MW", "voltage": "21 kV", "frequency": "50 Hz"},
    ),
    (PLANT_A, "PUMP-001", "Boiler Feed Pump 1A", "Pump", "Boiler Area", {"flow_rate": "1500 m3/h"}),
    (PLANT_A, "TRANSFORMER-001", "Main Power Transformer 1", "Transformer", "Switchyard", {"rating": "600 MVA"}),
    (PLANT_B, "HYDRO-TURBINE-001", "Francis Turbine Unit 1", "Hydro Turbine", "Powerhouse", {"head": "188 m"}),
]


async def _create_if_missing(store: Store, collection: str, filter_query: str, data: dict[str, Any]) -> bool:
    if await store.get_first_record(collection=collection, filter_query=filter_query):
        return False
    await store.create_record(collection=collection, data=data)
    return True


async def seed(store: Store) -> None:
    """Insert the seed rows that are not present yet."""
    for plant in PLANTS:
        if await _create_if_missing(store, "plants", eq("plant_code", plant["plant_code"]), plant):
            logger.info(f"Created plant {plant['plant_code']}")

    for username, password, first, last, role, employee_id, department, area in USERS:
        data = {
            "username": username,
            "email": f"{username}@ntpc.co.in",
            "password_hash": hash_password(password),
            "first_name": first,
            "last_name": last,
            "role": role,
            "employee_id": employee_id,
            "department": department,
            "plant_area": area,
            "is_active": True,
        }
        if await _create_if_missing(store, "users", eq("username", username), data):
            logger.info(f"Created {role} {username}")

    for plant_id, code, name, equipment_type, area, specifications in EQUIPMENT:
        data = {
            "plant_id": plant_id,
            "equipment_code": code,
            "equipment_name": name,
            "equipment_type": equipment_type,
            "location_area": area,
            "qr_code": f"QR-{code}",
            "specifications": specifications,
            "status": EquipmentStatus.ACTIVE,
        }
        if await _create_if_missing(store, "equipment", eq("qr_code", f"QR-{code}"), data):
            logger.info(f"Created equipment {code}")


async def reset(store: Store) -> None:
    """Delete seeded collections (children first)."""
    for collection in ("audit_logs", "tasks", "photos", "equipment", "users", "plants"):
        deleted = await store.delete_records(collection=collection, filter_query='id != ""')
        logger.info(f"Deleted {deleted} rows from {collection}")


async def main() -> None:
    store = Store(settings.database_path)
    await store.init_db()
    try:
        if "--reset" in sys.argv[1:]:
            await reset(store)
        await seed(store)
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
