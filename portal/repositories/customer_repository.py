"""
Customer Repository.

Reads ``public.clientes`` with Supabase-first, SQLite-fallback semantics
so the customer list still renders when the network is down.  The portal
link column (``usuario_portal_id``) is written only by the
``sync_user_after_auth_creation`` procedure, never from here.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.user import Customer
from portal.repositories.base_repository import BaseRepository

_CUSTOMER_COLUMNS: str = "id, nome, email, telefone, usuario_portal_id"


class CustomerRepository(BaseRepository):
    """Data access layer for Customer (``clientes``) rows."""

    TABLE = "clientes"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, customer_id: str) -> Optional[Customer]:
        """Fetch a customer by primary key. Tries Supabase first, falls back to SQLite."""
        def _supabase() -> Optional[Customer]:
            response = (
                self.supabase.table(self.TABLE)
                .select(_CUSTOMER_COLUMNS)
                .eq("id", customer_id)
                .limit(1)
                .execute()
            )
            return Customer(**response.data[0]) if response.data else None

        def _sqlite() -> Optional[Customer]:
            with self._db.write_lock:
                row = self.sqlite.execute(
                    f"SELECT {_CUSTOMER_COLUMNS} FROM {self.TABLE} WHERE id = ?",
                    (customer_id,),
                ).fetchone()
            return Customer(**dict(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (clientes)",
            on_supabase_success=self._cache_to_sqlite,
        )

    def get_all(self) -> list[Customer]:
        """Fetch all customers ordered by name."""
        def _supabase() -> list[Customer]:
            response = (
                self.supabase.table(self.TABLE)
                .select(_CUSTOMER_COLUMNS)
                .order("nome")
                .execute()
            )
            return [Customer(**row) for row in response.data]

        def _sqlite() -> list[Customer]:
            with self._db.write_lock:
                rows = self.sqlite.execute(
                    f"SELECT {_CUSTOMER_COLUMNS} FROM {self.TABLE} ORDER BY nome"
                ).fetchall()
            return [Customer(**dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_all (clientes)",
            on_supabase_success=self._cache_all,
        )

    def _cache_all(self, customers: list[Customer]) -> None:
        """Refresh the cached customer list in one local transaction."""
        with self._db.batch_write():
            for customer in customers:
                self._cache_to_sqlite(customer)

    def _cache_to_sqlite(self, customer: Customer) -> None:
        """Write a customer to the local cache (failures are non-fatal)."""
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (id, nome, email, telefone, usuario_portal_id, updated_at)
                    VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(id) DO UPDATE SET
                        nome              = excluded.nome,
                        email             = excluded.email,
                        telefone          = excluded.telefone,
                        usuario_portal_id = excluded.usuario_portal_id,
                        updated_at        = CURRENT_TIMESTAMP
                    """,
                    (
                        customer.id,
                        customer.nome,
                        customer.email,
                        customer.telefone,
                        customer.usuario_portal_id,
                    ),
                )
                self._commit()
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to cache customer %s to SQLite (non-fatal): %s",
                customer.id,
                exc,
            )
