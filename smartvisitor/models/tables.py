# =======================================================================================
# smartvisitor/models/tables.py - Table Definitions
# =======================================================================================
from sqlalchemy import (
    MetaData, Table, Column, BigInteger, Integer, String, Text, Boolean,
    DateTime, Enum, ForeignKey, Index, UniqueConstraint, func,
)
from sqlalchemy.dialects import mysql

# BIGINT AUTO_INCREMENT on MySQL, rowid alias on SQLite
PK = BigInteger().with_variant(Integer(), "sqlite")
FK = BigInteger().with_variant(Integer(), "sqlite")
TS = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")

metadata = MetaData()

projects = Table(
    "projects", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("created_at", TS, nullable=False, server_default=func.current_timestamp()),
)

guests = Table(
    "guests", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("project_id", FK, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("email", String(255)),
    Column("phone", String(50)),
    Column("vip", Boolean, nullable=False, default=False, server_default="0"),
    Column("created_at", TS, nullable=False, server_default=func.current_timestamp()),
    Index("idx_guests_project_id", "project_id"),
)

scanners = Table(
    "scanners", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("mac_address", String(17), nullable=False, unique=True),
    Column("location", String(255)),
    Column("created_at", TS, nullable=False, server_default=func.current_timestamp()),
    Column("last_heartbeat", TS),
)

project_scanners = Table(
    "project_scanners", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("project_id", FK, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("scanner_id", FK, ForeignKey("scanners.id", ondelete="CASCADE"), nullable=False),
    Column("assigned_at", TS, nullable=False, server_default=func.current_timestamp()),
    UniqueConstraint("project_id", "scanner_id", name="unique_project_scanner"),
)

tag_assignments = Table(
    "tag_assignments", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("project_id", FK, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("guest_id", FK, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", String(255), nullable=False),
    Column("assigned_at", TS, nullable=False),
    UniqueConstraint("project_id", "guest_id", name="unique_project_guest"),
    UniqueConstraint("project_id", "tag_id", name="unique_project_tag"),
    Index("idx_tag_assignments_assigned_at", "assigned_at"),
)

pending_tag_assignments = Table(
    "pending_tag_assignments", metadata,
    Column("id", PK, primary_key=True, autoincrement=True),
    Column("project_id", FK, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("guest_id", FK, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False),
    Column("scanner_id", FK, ForeignKey("scanners.id", ondelete="CASCADE"), nullable=False),
    Column(
        "status",
        Enum("waiting", "completed", "cancelled", name="pending_status"),
        nullable=False,
        server_default="waiting",
    ),
    Column("created_at", TS, nullable=False),
    Column("completed_at", TS),
    Column("tag_id", String(255)),
    Index("idx_status_created", "status", "created_at"),
    Index("idx_project_guest", "project_id", "guest_id"),
    Index("idx_scanner_status", "scanner_id", "status"),
)
