"""SQLite schema management (code-first approach).

Tables are declared as DDL strings; read views that join equipment, plant and
user columns onto the base records are declared once as ``ViewSpec`` objects so
the SQL views and any alternative store implementation share one definition.
"""

import logging
from dataclasses import dataclass, field

from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskPriority, TaskStatus
from plantvision.domain.user import UserRole


logger = logging.getLogger(__name__)


# Central list of all collections in the schema (creation order respects foreign keys)
COLLECTIONS = [
    "users",
    "plants",
    "equipment",
    "photos",
    "tasks",
    "audit_logs",
]

# Columns stored as JSON text and decoded on read
JSON_FIELDS = frozenset({"specifications", "preferences", "old_values", "new_values", "metadata"})

# Columns stored as INTEGER 0/1 and decoded to bool on read
BOOL_FIELDS = frozenset({"is_active"})


def _check(column: str, values: type) -> str:
    allowed = ", ".join(f"'{v.value}'" for v in values)
    return f"CHECK ({column} IN ({allowed}))"


TABLES: dict[str, str] = {
    "users": f"""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            username TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            role TEXT NOT NULL {_check("role", UserRole)},
            employee_id TEXT UNIQUE,
            department TEXT,
            plant_area TEXT,
            phone TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login_at TEXT,
            fcm_token TEXT,
            preferences TEXT NOT NULL DEFAULT '{{}}',
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "plants": """
        CREATE TABLE IF NOT EXISTS plants (
            id TEXT PRIMARY KEY,
            plant_code TEXT NOT NULL UNIQUE,
            plant_name TEXT NOT NULL,
            description TEXT,
            location TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "equipment": f"""
        CREATE TABLE IF NOT EXISTS equipment (
            id TEXT PRIMARY KEY,
            plant_id TEXT NOT NULL REFERENCES plants(id) ON DELETE CASCADE,
            equipment_code TEXT NOT NULL,
            equipment_name TEXT NOT NULL,
            equipment_type TEXT NOT NULL,
            description TEXT,
            manufacturer TEXT,
            model TEXT,
            serial_number TEXT,
            location_area TEXT,
            qr_code TEXT UNIQUE,
            specifications TEXT NOT NULL DEFAULT '{{}}',
            status TEXT NOT NULL DEFAULT 'active' {_check("status", EquipmentStatus)},
            created TEXT NOT NULL,
            updated TEXT NOT NULL,
            UNIQUE (plant_id, equipment_code)
        )
    """,
    "photos": f"""
        CREATE TABLE IF NOT EXISTS photos (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            equipment_id TEXT NOT NULL REFERENCES equipment(id) ON DELETE CASCADE,
            filename TEXT NOT NULL,
            blob_key TEXT NOT NULL,
            thumbnail_key TEXT,
            mime_type TEXT NOT NULL,
            file_size INTEGER NOT NULL,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            gps_accuracy REAL,
            captured_at TEXT NOT NULL,
            device_info TEXT,
            notes TEXT,
            checksum TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' {_check("status", PhotoStatus)},
            rejection_reason TEXT,
            approved_by TEXT REFERENCES users(id) ON DELETE SET NULL,
            approved_at TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "tasks": f"""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            assigned_to TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            assigned_by TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            equipment_id TEXT NOT NULL REFERENCES equipment(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT,
            priority TEXT NOT NULL DEFAULT 'medium' {_check("priority", TaskPriority)},
            status TEXT NOT NULL DEFAULT 'pending' {_check("status", TaskStatus)},
            due_date TEXT,
            started_at TEXT,
            completed_at TEXT,
            completion_notes TEXT,
            completion_photo_id TEXT REFERENCES photos(id) ON DELETE SET NULL,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "audit_logs": """
        CREATE TABLE IF NOT EXISTS audit_logs (
            id TEXT PRIMARY KEY,
            user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
            action TEXT NOT NULL,
            resource_type TEXT NOT NULL,
            resource_id TEXT,
            old_values TEXT,
            new_values TEXT,
            metadata TEXT,
            ip_address TEXT,
            user_agent TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_equipment_location_area ON equipment (location_area)",
    "CREATE INDEX IF NOT EXISTS idx_photos_user_id ON photos (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_photos_equipment_id ON photos (equipment_id)",
    "CREATE INDEX IF NOT EXISTS idx_photos_status ON photos (status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks (assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_created ON audit_logs (created)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_user_id ON audit_logs (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_resource ON audit_logs (resource_type, resource_id)",
]


@dataclass(frozen=True)
class Join:
    """A joined collection and the columns it contributes (alias -> source column)."""

    collection: str
    local_key: str
    columns: dict[str, str]
    outer: bool = False


@dataclass(frozen=True)
class ViewSpec:
    """Read view: every column of ``base`` plus the aliased columns of each join."""

    name: str
    base: str
    joins: tuple[Join, ...] = field(default_factory=tuple)

    def to_sql(self) -> str:
        select = ["b.*"]
        clauses = [f"FROM {self.base} AS b"]
        for index, join in enumerate(self.joins):
            alias = f"j{index}"
            select.extend(f"{alias}.{source} AS {column}" for column, source in join.columns.items())
            kind = "LEFT JOIN" if join.outer else "JOIN"
            clauses.append(f"{kind} {join.collection} AS {alias} ON b.{join.local_key} = {alias}.id")
        return f"CREATE VIEW IF NOT EXISTS {self.name} AS SELECT {', '.join(select)} {' '.join(clauses)}"


VIEWS: dict[str, ViewSpec] = {
    "equipment_details": ViewSpec(
        name="equipment_details",
        base="equipment",
        joins=(Join("plants", "plant_id", {"plant_code": "plant_code", "plant_name": "plant_name"}),),
    ),
    "photo_details": ViewSpec(
        name="photo_details",
        base="photos",
        joins=(
            Join(
                "equipment",
                "equipment_id",
                {
                    "location_area": "location_area",
                    "equipment_code": "equipment_code",
                    "equipment_name": "equipment_name",
                    "equipment_type": "equipment_type",
                },
            ),
            Join(
                "users",
                "user_id",
                {"username": "username", "user_first_name": "first_name", "user_last_name": "last_name"},
            ),
        ),
    ),
    "task_details": ViewSpec(
        name="task_details",
        base="tasks",
        joins=(
            Join(
                "equipment",
                "equipment_id",
                {
                    "location_area": "location_area",
                    "equipment_code": "equipment_code",
                    "equipment_name": "equipment_name",
                },
            ),
            Join("users", "assigned_to", {"assigned_username": "username"}),
            Join("users", "assigned_by", {"assigned_by_username": "username"}),
        ),
    ),
    "audit_log_details": ViewSpec(
        name="audit_log_details",
        base="audit_logs",
        joins=(
            Join(
                "users",
                "user_id",
                {"username": "username", "user_first_name": "first_name", "user_last_name": "last_name"},
                outer=True,
            ),
        ),
    ),
}


def schema_statements() -> list[str]:
    """Return every DDL statement needed to build the schema, in dependency order."""
    statements = [TABLES[name] for name in COLLECTIONS]
    statements.extend(INDEXES)
    statements.extend(view.to_sql() for view in VIEWS.values())
    return statements
