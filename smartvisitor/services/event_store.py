# =======================================================================================
# smartvisitor/services/event_store.py - Event Store Adapter
# =======================================================================================
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Iterator

from sqlalchemy import text, bindparam
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..database import DatabaseManager
from ..models.entities import Scanner, Guest, Binding, PendingRequest
from ..models.tables import TS
from ..utils.exceptions import StorageFailureError, AlreadyResolvedError, InvalidIdentifierError

log = logging.getLogger("smartvisitor.store")


class EventStore:
    """
    Durable record of projects, guests, scanners, bindings and pending requests.

    Every method is a blocking key-based read or write; async callers go
    through run_in_threadpool. SQLAlchemy errors leave this class as
    StorageFailureError.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        try:
            with self.db.get_connection() as conn:
                yield conn
        except SQLAlchemyError as e:
            log.error("Storage failure: %s", e)
            raise StorageFailureError(str(e)) from e

    # ----------------------------------------------------------------------
    # Projects
    # ----------------------------------------------------------------------
    def list_projects(self) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                text("""
                    SELECT id, name, description, created_at
                    FROM projects
                    ORDER BY created_at DESC, id DESC
                """).columns(created_at=TS)
            ).mappings().all()
        return [dict(r) for r in rows]

    def get_project(self, project_id: int) -> Optional[Dict[str, Any]]:
        with self._transaction() as conn:
            row = conn.execute(
                text("SELECT id, name, description, created_at FROM projects WHERE id = :pid")
                .columns(created_at=TS),
                {"pid": project_id},
            ).mappings().first()
        return dict(row) if row else None

    def create_project(self, name: str, description: Optional[str] = None) -> int:
        with self._transaction() as conn:
            result = conn.execute(
                text("INSERT INTO projects (name, description) VALUES (:name, :description)"),
                {"name": name, "description": description},
            )
            return result.lastrowid

    def delete_project(self, project_id: int, cancel_ids: Iterable[int] = ()) -> bool:
        """Delete a project; guests, bindings and pending rows go with it."""
        with self._transaction() as conn:
            self._cancel_rows(conn, cancel_ids)
            result = conn.execute(
                text("DELETE FROM projects WHERE id = :pid"), {"pid": project_id}
            )
            return result.rowcount > 0

    # ----------------------------------------------------------------------
    # Guests
    # ----------------------------------------------------------------------
    _GUEST_SELECT = """
        SELECT g.id, g.project_id, g.name, g.email, g.phone, g.vip,
               ta.tag_id, ta.assigned_at
        FROM guests g
        LEFT JOIN tag_assignments ta
               ON ta.guest_id = g.id AND ta.project_id = g.project_id
    """

    def get_guest(self, project_id: int, guest_id: int) -> Optional[Guest]:
        """Guest with its bound tag, or None if the guest is not in the project."""
        with self._transaction() as conn:
            row = conn.execute(
                text(self._GUEST_SELECT + " WHERE g.id = :gid AND g.project_id = :pid")
                .columns(assigned_at=TS),
                {"gid": guest_id, "pid": project_id},
            ).mappings().first()
        return Guest.from_row(row) if row else None

    def list_guests(self, project_id: int) -> List[Guest]:
        with self._transaction() as conn:
            rows = conn.execute(
                text(self._GUEST_SELECT + " WHERE g.project_id = :pid ORDER BY g.name, g.id")
                .columns(assigned_at=TS),
                {"pid": project_id},
            ).mappings().all()
        return [Guest.from_row(r) for r in rows]

    def create_guest(self, project_id: int, name: str, email: Optional[str] = None,
                     phone: Optional[str] = None, vip: bool = False) -> int:
        with self._transaction() as conn:
            return self._insert_guest(conn, project_id, name, email, phone, vip)

    def create_guests(self, project_id: int, rows: Iterable[Dict[str, Any]]) -> int:
        """Insert many guests in one transaction; returns the number inserted."""
        inserted = 0
        with self._transaction() as conn:
            for row in rows:
                self._insert_guest(
                    conn, project_id, row["name"], row.get("email"),
                    row.get("phone"), bool(row.get("vip")),
                )
                inserted += 1
        return inserted

    @staticmethod
    def _insert_guest(conn: Connection, project_id: int, name: str, email: Optional[str],
                      phone: Optional[str], vip: bool) -> int:
        result = conn.execute(
            text("""
                INSERT INTO guests (project_id, name, email, phone, vip)
                VALUES (:pid, :name, :email, :phone, :vip)
            """),
            {"pid": project_id, "name": name, "email": email, "phone": phone, "vip": vip},
        )
        return result.lastrowid

    def delete_guest(self, project_id: int, guest_id: int, cancel_ids: Iterable[int] = ()) -> bool:
        with self._transaction() as conn:
            self._cancel_rows(conn, cancel_ids)
            result = conn.execute(
                text("DELETE FROM guests WHERE id = :gid AND project_id = :pid"),
                {"gid": guest_id, "pid": project_id},
            )
            return result.rowcount > 0

    # ----------------------------------------------------------------------
    # Scanners
    # ----------------------------------------------------------------------
    _SCANNER_SELECT = "SELECT id, mac_address, name, location, last_heartbeat FROM scanners"

    def get_scanner(self, scanner_id: int) -> Optional[Scanner]:
        with self._transaction() as conn:
            row = conn.execute(
                text(self._SCANNER_SELECT + " WHERE id = :sid").columns(last_heartbeat=TS),
                {"sid": scanner_id},
            ).mappings().first()
        return Scanner.from_row(row) if row else None

    def get_scanner_by_mac(self, mac: str) -> Optional[Scanner]:
        with self._transaction() as conn:
            row = conn.execute(
                text(self._SCANNER_SELECT + " WHERE mac_address = :mac").columns(last_heartbeat=TS),
                {"mac": mac},
            ).mappings().first()
        return Scanner.from_row(row) if row else None

    def list_project_scanners(self, project_id: int) -> List[Scanner]:
        with self._transaction() as conn:
            rows = conn.execute(
                text("""
                    SELECT s.id, s.mac_address, s.name, s.location, s.last_heartbeat
                    FROM scanners s
                    INNER JOIN project_scanners ps ON s.id = ps.scanner_id
                    WHERE ps.project_id = :pid
                    ORDER BY s.name
                """).columns(last_heartbeat=TS),
                {"pid": project_id},
            ).mappings().all()
        return [Scanner.from_row(r) for r in rows]

    def create_scanner(self, name: str, mac_address: str, location: Optional[str] = None) -> int:
        """Register reader hardware. Used for seeding; provisioning lives elsewhere."""
        with self._transaction() as conn:
            result = conn.execute(
                text("INSERT INTO scanners (name, mac_address, location) VALUES (:name, :mac, :loc)"),
                {"name": name, "mac": mac_address, "loc": location},
            )
            return result.lastrowid

    def link_scanner(self, project_id: int, scanner_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                text("INSERT INTO project_scanners (project_id, scanner_id) VALUES (:pid, :sid)"),
                {"pid": project_id, "sid": scanner_id},
            )

    def touch_scanner(self, scanner_id: int, seen_at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                text("UPDATE scanners SET last_heartbeat = :ts WHERE id = :sid")
                .bindparams(bindparam("ts", type_=TS)),
                {"ts": seen_at, "sid": scanner_id},
            )

    # ----------------------------------------------------------------------
    # Pending tag assignments
    # ----------------------------------------------------------------------
    def load_waiting(self) -> List[PendingRequest]:
        with self._transaction() as conn:
            rows = conn.execute(
                text("""
                    SELECT id, project_id, guest_id, scanner_id, status,
                           created_at, completed_at, tag_id
                    FROM pending_tag_assignments
                    WHERE status = 'waiting'
                    ORDER BY created_at ASC, id ASC
                """).columns(created_at=TS, completed_at=TS)
            ).mappings().all()
        return [PendingRequest.from_row(r) for r in rows]

    def open_pending(self, project_id: int, guest_id: int, scanner_id: int,
                     created_at: datetime, cancel_ids: Iterable[int] = ()) -> int:
        """
        Cancel the superseded rows and insert the new waiting row atomically.

        The row is only inserted while the guest still exists in the project;
        otherwise InvalidIdentifierError is raised and nothing is written.
        """
        with self._transaction() as conn:
            self._cancel_rows(conn, cancel_ids)
            result = conn.execute(
                text("""
                    INSERT INTO pending_tag_assignments
                        (project_id, guest_id, scanner_id, status, created_at)
                    SELECT :pid, :gid, :sid, 'waiting', :ts
                    FROM guests
                    WHERE id = :gid AND project_id = :pid
                """).bindparams(bindparam("ts", type_=TS)),
                {"pid": project_id, "gid": guest_id, "sid": scanner_id, "ts": created_at},
            )
            if result.rowcount != 1:
                raise InvalidIdentifierError(f"Guest {guest_id} not found in project {project_id}")
            return result.lastrowid

    def cancel_pending(self, request_ids: Iterable[int]) -> int:
        with self._transaction() as conn:
            return self._cancel_rows(conn, request_ids)

    @staticmethod
    def _cancel_rows(conn: Connection, request_ids: Iterable[int]) -> int:
        ids = list(request_ids)
        if not ids:
            return 0
        result = conn.execute(
            text("""
                UPDATE pending_tag_assignments
                SET status = 'cancelled'
                WHERE id IN :ids AND status = 'waiting'
            """).bindparams(bindparam("ids", expanding=True)),
            {"ids": ids},
        )
        return result.rowcount

    def complete_and_bind(self, request_id: int, project_id: int, guest_id: int,
                          tag_id: str, completed_at: datetime) -> Binding:
        """
        Mark the pending row completed and write the binding in one transaction.

        The UPDATE is guarded by status = 'waiting'; if the row was resolved
        behind our back AlreadyResolvedError is raised and nothing is written.
        Any existing binding for the same guest or the same tag in the
        project is replaced.
        """
        with self._transaction() as conn:
            result = conn.execute(
                text("""
                    UPDATE pending_tag_assignments
                    SET status = 'completed', completed_at = :ts, tag_id = :tag
                    WHERE id = :rid AND status = 'waiting'
                """).bindparams(bindparam("ts", type_=TS)),
                {"ts": completed_at, "tag": tag_id, "rid": request_id},
            )
            if result.rowcount != 1:
                raise AlreadyResolvedError(request_id)

            conn.execute(
                text("""
                    DELETE FROM tag_assignments
                    WHERE project_id = :pid AND (guest_id = :gid OR tag_id = :tag)
                """),
                {"pid": project_id, "gid": guest_id, "tag": tag_id},
            )
            conn.execute(
                text("""
                    INSERT INTO tag_assignments (project_id, guest_id, tag_id, assigned_at)
                    VALUES (:pid, :gid, :tag, :ts)
                """).bindparams(bindparam("ts", type_=TS)),
                {"pid": project_id, "gid": guest_id, "tag": tag_id, "ts": completed_at},
            )
        return Binding(project_id=project_id, guest_id=guest_id, tag_id=tag_id,
                       assigned_at=completed_at)

    def list_waiting_details(self) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                text("""
                    SELECT
                        pta.id, pta.project_id, pta.guest_id, pta.scanner_id, pta.status,
                        pta.created_at, pta.completed_at, pta.tag_id,
                        g.name        AS guest_name,
                        s.name        AS scanner_name,
                        s.mac_address AS scanner_mac,
                        p.name        AS project_name
                    FROM pending_tag_assignments pta
                    JOIN guests   g ON pta.guest_id = g.id
                    JOIN scanners s ON pta.scanner_id = s.id
                    JOIN projects p ON pta.project_id = p.id
                    WHERE pta.status = 'waiting'
                    ORDER BY pta.created_at DESC, pta.id DESC
                """).columns(created_at=TS, completed_at=TS)
            ).mappings().all()
        return [dict(r) for r in rows]

    # ----------------------------------------------------------------------
    # Bindings
    # ----------------------------------------------------------------------
    def remove_binding(self, project_id: int, guest_id: int,
                       cancel_ids: Iterable[int] = ()) -> bool:
        """Delete the guest's binding and cancel the given waiting rows together."""
        with self._transaction() as conn:
            result = conn.execute(
                text("DELETE FROM tag_assignments WHERE guest_id = :gid AND project_id = :pid"),
                {"gid": guest_id, "pid": project_id},
            )
            self._cancel_rows(conn, cancel_ids)
            return result.rowcount > 0

    def recent_bindings(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                text("""
                    SELECT
                        ta.tag_id,
                        ta.assigned_at AS timestamp,
                        g.name         AS guest_name,
                        p.name         AS project_name
                    FROM tag_assignments ta
                    JOIN guests g   ON ta.guest_id = g.id
                    JOIN projects p ON ta.project_id = p.id
                    ORDER BY ta.assigned_at DESC
                    LIMIT :limit
                """).columns(timestamp=TS),
                {"limit": limit},
            ).mappings().all()
        return [dict(r) for r in rows]

    # ----------------------------------------------------------------------
    # Counts
    # ----------------------------------------------------------------------
    def counts(self) -> Dict[str, int]:
        with self._transaction() as conn:
            row = conn.execute(
                text("""
                    SELECT
                      (SELECT COUNT(*) FROM projects)        AS projects,
                      (SELECT COUNT(*) FROM guests)          AS guests,
                      (SELECT COUNT(*) FROM scanners)        AS scanners,
                      (SELECT COUNT(*) FROM tag_assignments) AS assignments,
                      (SELECT COUNT(*) FROM pending_tag_assignments
                        WHERE status = 'waiting')            AS pending_assignments
                """)
            ).mappings().first()

        if not row:
            return {"projects": 0, "guests": 0, "scanners": 0, "assignments": 0,
                    "pending_assignments": 0}

        return {key: int(row[key] or 0) for key in
                ("projects", "guests", "scanners", "assignments", "pending_assignments")}
