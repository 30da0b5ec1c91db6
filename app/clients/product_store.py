"""SQLite-backed view of the inventory products consumed by the sync engine."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from app.models.inventory import Product, ProductPage


class ProductNotFoundError(Exception):
    """Raised when a product id does not exist."""


class ProductAccessError(Exception):
    """Raised when a product exists but belongs to another user."""


class SQLiteProductStore:
    """Keyed product table exposing the operations the sync engine relies on."""

    _UPDATABLE_FIELDS = (
        "sku",
        "name",
        "description",
        "price",
        "stock",
        "sync_enabled",
        "remote_catalog_id",
    )

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    sku TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    price REAL NOT NULL,
                    stock INTEGER NOT NULL,
                    sync_enabled INTEGER NOT NULL DEFAULT 0,
                    remote_catalog_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def save(self, product: Product) -> None:
        """Insert or replace a product record."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO products (
                    id, user_id, sku, name, description, price, stock,
                    sync_enabled, remote_catalog_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    product.id,
                    product.user_id,
                    product.sku,
                    product.name,
                    product.description,
                    product.price,
                    product.stock,
                    int(product.sync_enabled),
                    product.remote_catalog_id,
                    product.created_at.isoformat(),
                    product.updated_at.isoformat(),
                ),
            )

    def find_one(self, product_id: str, user_id: str) -> Product:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM products WHERE id = ?", (product_id,)
            ).fetchone()
        if not row:
            raise ProductNotFoundError(f"Product with ID {product_id} not found")
        if row["user_id"] != user_id:
            raise ProductAccessError(f"Product {product_id} belongs to another user")
        return self._to_model(row)

    def find_all(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 100,
        sync_enabled: Optional[bool] = None,
    ) -> ProductPage:
        """Return one page of the user's products, oldest first."""
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if sync_enabled is not None:
            clauses.append("sync_enabled = ?")
            params.append(int(sync_enabled))
        where = " AND ".join(clauses)
        offset = (max(page, 1) - 1) * limit

        with self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM products WHERE {where}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM products WHERE {where} "
                "ORDER BY created_at, id LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return ProductPage(
            products=[self._to_model(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
        )

    def update(self, product_id: str, fields: Dict[str, Any], user_id: str) -> Product:
        """Apply a partial update and return the stored product."""
        self.find_one(product_id, user_id)
        unknown = set(fields) - set(self._UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            values = [
                int(value) if name == "sync_enabled" else value
                for name, value in fields.items()
            ]
            with self._connect() as conn:
                conn.execute(
                    f"UPDATE products SET {assignments}, updated_at = ? WHERE id = ?",
                    [*values, _utcnow_iso(), product_id],
                )
        return self.find_one(product_id, user_id)

    def assign_remote_catalog_id(
        self, product_id: str, user_id: str, remote_catalog_id: str
    ) -> bool:
        """
        Record the remote id only if the product has none yet.

        Returns ``False`` when another writer already assigned one.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE products
                SET remote_catalog_id = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND remote_catalog_id IS NULL
                """,
                (remote_catalog_id, _utcnow_iso(), product_id, user_id),
            )
        return cursor.rowcount == 1

    @staticmethod
    def _to_model(row: sqlite3.Row) -> Product:
        data = dict(row)
        data["sync_enabled"] = bool(data["sync_enabled"])
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return Product(**data)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


__all__ = [
    "ProductAccessError",
    "ProductNotFoundError",
    "SQLiteProductStore",
]
