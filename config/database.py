"""
Database connection management.

Provides the Supabase client singleton and the Transaction unit of work used
by every multi-write operation (cycle advance, materialization, confirmations).
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Any, Optional, Union
import structlog

from config.settings import settings
from exceptions.errors import AppError, DatabaseError, TransactionFailure

logger = structlog.get_logger(__name__)


class DatabaseConnectionError(Exception):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_service_key or settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


# Convenience alias
db = get_supabase_client


class Transaction:
    """
    Unit of work over the Supabase client.

    PostgREST has no multi-statement transactions, so every write issued
    through this object records a compensating action. When the block raises,
    the compensations are replayed newest first and the failure is surfaced.
    Domain errors (AppError other than DatabaseError) propagate unchanged;
    anything else becomes a retryable TransactionFailure.

    Usage:
        with Transaction(self.db, "advance_cycle") as tx:
            tx.update_many("weeks", stale_ids, {"is_ordering_open": False})
            tx.insert("weeks", new_week)
    """

    def __init__(self, client: Client, operation_name: str):
        self.client = client
        self.operation_name = operation_name
        self._undo: list[tuple[str, str, Any]] = []

    def __enter__(self) -> "Transaction":
        logger.debug("transaction_started", operation=self.operation_name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            logger.debug(
                "transaction_committed",
                operation=self.operation_name,
                writes=len(self._undo)
            )
            self._undo.clear()
            return False

        self._rollback()
        logger.error(
            "transaction_rolled_back",
            operation=self.operation_name,
            error=str(exc_val),
            error_type=exc_type.__name__
        )

        if not issubclass(exc_type, Exception):
            return False
        if isinstance(exc_val, TransactionFailure):
            return False
        if isinstance(exc_val, AppError) and not isinstance(exc_val, DatabaseError):
            return False
        raise TransactionFailure(self.operation_name, str(exc_val)) from exc_val

    # ===================
    # WRITES
    # ===================

    def insert(self, table: str, rows: Union[dict, list[dict]]) -> list[dict]:
        """Insert one or more rows; returns the created rows."""
        payload = rows if isinstance(rows, list) else [rows]
        if not payload:
            return []

        result = self.client.table(table).insert(payload).execute()
        created = result.data or []

        ids = [row["id"] for row in created]
        if ids:
            self._undo.append(("delete", table, ids))
        return created

    def update(self, table: str, row_id: Any, changes: dict) -> Optional[dict]:
        """Update a single row by id; returns the updated row or None."""
        updated = self.update_many(table, [row_id], changes)
        return updated[0] if updated else None

    def update_many(self, table: str, ids: list, changes: dict) -> list[dict]:
        """Apply the same changes to every row in ids."""
        if not ids:
            return []

        before = self._fetch(table, ids)
        result = (
            self.client.table(table)
            .update(changes)
            .in_("id", list(ids))
            .execute()
        )

        if before:
            self._undo.append((
                "restore",
                table,
                [{"id": row["id"], **{k: row.get(k) for k in changes}} for row in before],
            ))
        return result.data or []

    def delete_many(self, table: str, ids: list) -> list[dict]:
        """Delete every row in ids; returns the deleted rows."""
        if not ids:
            return []

        before = self._fetch(table, ids)
        self.client.table(table).delete().in_("id", list(ids)).execute()

        if before:
            self._undo.append(("reinsert", table, before))
        return before

    def compare_and_set(
        self,
        table: str,
        row_id: Any,
        field: str,
        expected: Any,
        new: Any
    ) -> bool:
        """
        Set field to new only when it currently equals expected.

        Returns True when this call won the update. Used as a one-shot guard
        (e.g. the subscriptions_processed flag) so concurrent callers cannot
        both proceed.
        """
        result = (
            self.client.table(table)
            .update({field: new})
            .eq("id", row_id)
            .eq(field, expected)
            .execute()
        )
        if not result.data:
            return False

        self._undo.append(("restore", table, [{"id": row_id, field: expected}]))
        return True

    # ===================
    # INTERNALS
    # ===================

    def _fetch(self, table: str, ids: list) -> list[dict]:
        result = (
            self.client.table(table)
            .select("*")
            .in_("id", list(ids))
            .execute()
        )
        return result.data or []

    def _rollback(self) -> None:
        for action, table, payload in reversed(self._undo):
            try:
                if action == "delete":
                    self.client.table(table).delete().in_("id", payload).execute()
                elif action == "reinsert":
                    self.client.table(table).insert(payload).execute()
                elif action == "restore":
                    for row in payload:
                        values = {k: v for k, v in row.items() if k != "id"}
                        self.client.table(table).update(values).eq("id", row["id"]).execute()
            except Exception as e:
                logger.error(
                    "transaction_rollback_step_failed",
                    operation=self.operation_name,
                    action=action,
                    table=table,
                    error=str(e)
                )
        self._undo.clear()


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        weeks = client.table("weeks").select("id", count="exact").execute()
        subscriptions = (
            client.table("subscriptions")
            .select("id", count="exact")
            .eq("status", "active")
            .execute()
        )

        return {
            "status": "healthy",
            "weeks_count": weeks.count,
            "active_subscriptions": subscriptions.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
