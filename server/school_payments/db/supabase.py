"""
school_payments/db/supabase.py
Supabase clients and the async query helper used by the services
"""
from supabase import create_client, Client
from school_payments.core.config import settings
from school_payments.core.exceptions import DatabaseError
from functools import lru_cache
from typing import Optional, Dict, List, Any
import logging

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# ============================================
# CLIENTS
# ============================================

def _connect(key: str, label: str) -> Client:
    try:
        client: Client = create_client(supabase_url=settings.SUPABASE_URL, supabase_key=key)
    except Exception as e:
        logger.error(f"Could not create {label} Supabase client: {e}")
        raise DatabaseError(f"Supabase {label} connection failed: {str(e)}") from e
    logger.info(f"Supabase {label} client ready")
    return client


@lru_cache()
def get_supabase_client() -> Client:
    """
    Shared client on the anon key, used for table reads and writes

    Raises:
        DatabaseError: If the client cannot be created
    """
    return _connect(settings.SUPABASE_KEY, "anon")


@lru_cache()
def get_supabase_admin_client() -> Client:
    """Client on the service-role key; storage uploads need it to bypass RLS"""
    return _connect(settings.SUPABASE_SERVICE_KEY, "service-role")


def _where(query, filters: Optional[Dict[str, Any]]):
    for column, value in (filters or {}).items():
        query = query.eq(column, value)
    return query


# ============================================
# QUERY HELPER
# ============================================

class SupabaseQueries:
    """
    Async helpers over the PostgREST query builder.
    Every failure is logged and re-raised as DatabaseError.
    """

    def __init__(self, client: Client = None):
        self.client = client or get_supabase_client()

    def _run(self, table: str, action: str, build) -> Any:
        try:
            return build(self.client.table(table)).execute()
        except Exception as e:
            logger.error(f"{action} on {table} failed: {e}")
            raise DatabaseError(f"Failed to {action} {table}: {str(e)}") from e

    async def insert_one(self, table: str, data: Row) -> Optional[Row]:
        """
        Insert one row and return it as the database stored it

        Example:
            >>> payment = await db.insert_one("payments", {
            ...     "fee_id": "uuid", "amount_paid": "500.00", "payment_status": "pending"
            ... })
        """
        response = self._run(table, "insert into", lambda t: t.insert(data))
        if not response.data:
            logger.warning(f"Insert into {table} came back empty")
            return None
        logger.info(f"Inserted one row into {table}")
        return response.data[0]

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None
    ) -> List[Row]:
        """
        Rows matching every equality filter

        Args:
            table: Table name
            filters: column -> value, all must match
            order_by: Column to sort on
            ascending: False sorts newest/largest first
            limit: Cap on the number of rows

        Example:
            >>> queue = await db.select_all(
            ...     "payments",
            ...     filters={"payment_status": "pending"},
            ...     order_by="payment_date"
            ... )
        """
        def build(t):
            query = _where(t.select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=not ascending)
            if limit:
                query = query.limit(limit)
            return query

        response = self._run(table, "select from", build)
        logger.info(f"{table}: {len(response.data)} rows for {filters or 'all'}")
        return response.data

    async def select_by_id(self, table: str, id_column: str, id_value: Any) -> Optional[Row]:
        rows = await self.select_all(table, {id_column: id_value}, limit=1)
        if not rows:
            logger.info(f"{table}: nothing with {id_column}={id_value}")
            return None
        return rows[0]

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Row]:
        """
        First row matching the filters, or None

        Example:
            >>> user = await db.select_one("users", {"email": "bursar@school.edu"})
        """
        rows = await self.select_all(table, filters, limit=1)
        return rows[0] if rows else None

    async def update_where(self, table: str, filters: Dict[str, Any], data: Row) -> List[Row]:
        """
        Update every row matching all filters and return the updated rows.

        The filters are evaluated by the database inside the UPDATE, so a
        filter on the current status makes the write conditional: an empty
        result means another writer changed the row first.

        Example:
            >>> claimed = await db.update_where(
            ...     "payments",
            ...     {"payment_id": "uuid", "payment_status": "pending"},
            ...     {"payment_status": "verified"}
            ... )
            >>> if not claimed:
            ...     print("payment was no longer pending")
        """
        response = self._run(table, "update", lambda t: _where(t.update(data), filters))
        logger.info(f"{table}: updated {len(response.data)} rows where {filters}")
        return response.data

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """
        Exact row count, e.g. the length of the verification queue

        Example:
            >>> queue_length = await db.count("payments", {"payment_status": "pending"})
        """
        response = self._run(
            table, "count", lambda t: _where(t.select("*", count="exact"), filters).limit(0)
        )
        return response.count or 0


# ============================================
# STARTUP CHECKS
# ============================================

async def test_connection(db: SupabaseQueries = None) -> bool:
    """One-row read against users; False instead of raising"""
    try:
        db = db or SupabaseQueries()
        await db.select_all("users", limit=1)
    except Exception as e:
        logger.error(f"✗ Supabase connection test failed: {e}")
        return False
    logger.info("✓ Supabase connection test successful")
    return True


async def initialize_database(db: SupabaseQueries = None):
    """
    Verify the connection and the tables the payment workflow depends on.
    Run this on application startup.
    """
    logger.info("Checking database...")
    db = db or SupabaseQueries()

    if not await test_connection(db):
        raise DatabaseError("Database connection test failed")

    for table in ("users", "students", "fees", "payments"):
        try:
            await db.count(table)
        except DatabaseError as e:
            logger.error(f"✗ Table '{table}' not found or inaccessible: {e}")
            raise DatabaseError(f"Critical table '{table}' is missing") from e
        logger.info(f"✓ Table '{table}' verified")

    logger.info("✓ Database ready")
    return True


__all__ = [
    'get_supabase_client',
    'get_supabase_admin_client',
    'SupabaseQueries',
    'test_connection',
    'initialize_database'
]
