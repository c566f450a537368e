"""
In-memory stand-ins for the database, blob storage and mailer, plus a
small seeded school shared by the test modules.
"""
import copy
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi.testclient import TestClient

from school_payments.core.dependencies import get_db, get_email_service, get_storage
from school_payments.core.exceptions import DatabaseError, StorageError
from school_payments.core.security import create_access_token
from school_payments.main import app
from school_payments.models.schemas import TokenPayload, UserRole

ID_COLUMNS = {
    "users": "user_id",
    "students": "student_id",
    "parents": "parent_id",
    "fees": "fee_id",
    "payments": "payment_id",
}


def _matches(row: dict, filters: Optional[Dict[str, Any]]) -> bool:
    return all(row.get(key) == value for key, value in (filters or {}).items())


class InMemoryQueries:
    """Same calls as SupabaseQueries, backed by lists of dicts"""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.fail_inserts = False
        self.failing_tables = set()

    def seed(self, table: str, *rows: dict) -> None:
        self.tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    def rows(self, table: str, **filters) -> List[dict]:
        return [copy.deepcopy(r) for r in self.tables.get(table, []) if _matches(r, filters)]

    def row(self, table: str, row_id: str) -> Optional[dict]:
        found = self.rows(table, **{ID_COLUMNS[table]: row_id})
        return found[0] if found else None

    async def insert_one(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.fail_inserts:
            raise DatabaseError(f"Failed to insert into {table}: connection reset")
        record = copy.deepcopy(data)
        id_column = ID_COLUMNS.get(table)
        if id_column and not record.get(id_column):
            record[id_column] = uuid.uuid4().hex
        self.tables.setdefault(table, []).append(record)
        return copy.deepcopy(record)

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        if table in self.failing_tables:
            raise DatabaseError(f"Failed to select from {table}: connection reset")
        found = [r for r in self.tables.get(table, []) if _matches(r, filters)]
        if order_by:
            found.sort(
                key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")),
                reverse=not ascending
            )
        if limit:
            found = found[:limit]
        return copy.deepcopy(found)

    async def select_by_id(self, table: str, id_column: str, id_value: Any) -> Optional[Dict[str, Any]]:
        found = await self.select_all(table, {id_column: id_value})
        return found[0] if found else None

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        found = await self.select_all(table, filters, limit=1)
        return found[0] if found else None

    async def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        updated = []
        for row in self.tables.get(table, []):
            if _matches(row, filters):
                row.update(copy.deepcopy(data))
                updated.append(copy.deepcopy(row))
        return updated

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return len([r for r in self.tables.get(table, []) if _matches(r, filters)])


class FakeStorage:
    def __init__(self):
        self.files: Dict[str, dict] = {}
        self.broken = False

    def put(self, pathname: str, content: bytes, content_type: str) -> Dict[str, Any]:
        if self.broken:
            raise StorageError(f"Failed to upload {pathname}: bucket unavailable")
        self.files[pathname] = {"content": content, "content_type": content_type}
        return {"url": f"https://files.test/{pathname}", "pathname": pathname, "size": len(content)}

    def list(self, prefix: str = "") -> List[Dict[str, Any]]:
        if self.broken:
            raise StorageError(f"Failed to list {prefix!r}: bucket unavailable")
        folder = prefix.strip("/")
        return [
            {
                "url": f"https://files.test/{pathname}",
                "pathname": pathname,
                "size": len(item["content"]),
                "uploaded_at": None,
            }
            for pathname, item in sorted(self.files.items())
            if not folder or pathname.startswith(folder + "/")
        ]

    def delete(self, pathname: str) -> None:
        if self.broken:
            raise StorageError(f"Failed to delete {pathname}: bucket unavailable")
        self.files.pop(pathname, None)


class RecordingEmail:
    def __init__(self):
        self.sent: List[tuple] = []

    async def send_payment_submitted(self, to_email, name, fee_type, payment) -> bool:
        self.sent.append(("submitted", to_email, fee_type, payment["payment_status"]))
        return True

    async def send_payment_decision(self, to_email, name, fee_type, payment) -> bool:
        self.sent.append(("decision", to_email, fee_type, payment["payment_status"]))
        return True


# ============================================
# SEEDED SCHOOL
# ============================================

ADMIN = ("u-admin", UserRole.ADMIN)
ACCOUNTING = ("u-accounting", UserRole.ACCOUNTING)
PRINCIPAL = ("u-principal", UserRole.PRINCIPAL)
STUDENT = ("u-student", UserRole.STUDENT)
OTHER_STUDENT = ("u-student-2", UserRole.STUDENT)
PARENT = ("u-parent", UserRole.PARENT)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def seed_school(db: InMemoryQueries) -> InMemoryQueries:
    db.seed(
        "users",
        {"user_id": "u-admin", "email": "admin@school.edu", "role": "admin", "is_active": True},
        {"user_id": "u-accounting", "email": "bursar@school.edu", "role": "accounting", "is_active": True},
        {"user_id": "u-principal", "email": "principal@school.edu", "role": "principal", "is_active": True},
        {"user_id": "u-student", "email": "ana@school.edu", "role": "student", "is_active": True},
        {"user_id": "u-student-2", "email": "ben@school.edu", "role": "student", "is_active": True},
        {"user_id": "u-parent", "email": "rosa@school.edu", "role": "parent", "is_active": True},
    )
    db.seed(
        "students",
        {"student_id": "s-1", "user_id": "u-student", "name": "Ana Cruz", "email": "ana@school.edu"},
        {"student_id": "s-2", "user_id": "u-student-2", "name": "Ben Reyes", "email": "ben@school.edu"},
    )
    db.seed("parents", {"parent_id": "p-1", "user_id": "u-parent", "name": "Rosa Cruz"})
    db.seed("parent_student", {"parent_id": "p-1", "student_id": "s-1"})
    db.seed(
        "fees",
        {"fee_id": "f-1", "student_id": "s-1", "fee_type": "Tuition", "amount": "500.00",
         "due_date": "2026-06-30", "status": "outstanding"},
        {"fee_id": "f-2", "student_id": "s-1", "fee_type": "Library", "amount": "150.00",
         "due_date": "2026-05-15", "status": "outstanding"},
        {"fee_id": "f-3", "student_id": "s-2", "fee_type": "Tuition", "amount": "800.00",
         "due_date": "2026-06-30", "status": "outstanding"},
        {"fee_id": "f-4", "student_id": "s-1", "fee_type": "Laboratory", "amount": "200.00",
         "due_date": "2026-03-01", "status": "paid"},
    )
    db.seed(
        "payments",
        {"payment_id": "pay-lab", "fee_id": "f-4", "student_id": "s-1", "amount_paid": "200.00",
         "payment_date": "2026-03-01T09:00:00+00:00", "payment_method": "cash",
         "payment_status": "verified", "reference_number": None, "receipt_url": None,
         "notes": None, "recorded_by": "u-accounting", "verified_by": "u-accounting",
         "verified_at": "2026-03-01T10:00:00+00:00"},
    )
    return db


def pending_payment(payment_id: str, fee_id: str, student_id: str, amount: str, payment_date: str, **extra) -> dict:
    payment = {
        "payment_id": payment_id,
        "fee_id": fee_id,
        "student_id": student_id,
        "amount_paid": amount,
        "payment_date": payment_date,
        "payment_method": "online",
        "payment_status": "pending",
        "reference_number": f"REF-{payment_id}",
        "receipt_url": f"https://files.test/receipts/{student_id}/{payment_id}.png",
        "notes": None,
        "recorded_by": "u-student",
        "verified_by": None,
        "verified_at": None,
    }
    payment.update(extra)
    return payment


def as_user(who: tuple) -> TokenPayload:
    user_id, role = who
    return TokenPayload(sub=user_id, role=role, exp=datetime.now() + timedelta(hours=1))


def token_for(who: tuple) -> str:
    user_id, role = who
    return create_access_token({"sub": user_id, "role": role.value})


def auth_header(who: tuple) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(who)}"}


class ApiTestMixin:
    """Wires the app to fresh in-memory fakes for every test"""

    def setUp(self):
        self.db = seed_school(InMemoryQueries())
        self.storage = FakeStorage()
        self.email = RecordingEmail()
        app.dependency_overrides[get_db] = lambda: self.db
        app.dependency_overrides[get_storage] = lambda: self.storage
        app.dependency_overrides[get_email_service] = lambda: self.email
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
