"""Quote storage: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from bullion_sentinel.core.config import StorageConfig
from bullion_sentinel.core.exceptions import (
    InsertError,
    QuoteNotFound,
    SchemaError,
    StorageError,
)
from bullion_sentinel.core.models import Product, Quote

logger = logging.getLogger(__name__)


@runtime_checkable
class QuoteStoreProtocol(Protocol):
    """Abstract storage interface for the quote log."""

    async def ensure_schema(self) -> None: ...
    async def insert_quote(self, quote: Quote) -> int: ...
    async def latest_sell_price(self, product_id: int) -> Decimal: ...
    async def latest_quote(self, product_id: int) -> Quote | None: ...
    async def latest_quotes(self) -> list[Quote]: ...
    async def list_products(self) -> list[Product]: ...
    async def close(self) -> None: ...


def _format_ts(value: datetime) -> str:
    """Fixed-width UTC ISO-8601, so text order equals time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class SqliteQuoteStore:
    """SQLite implementation of the quote store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system. Each quote insert is its own
    committed transaction.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Product catalog and quote log",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS products (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    created_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS quotes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id INTEGER NOT NULL REFERENCES products(id),
                    observed_at TEXT NOT NULL,
                    buy_price TEXT NOT NULL,
                    sell_price TEXT NOT NULL,
                    created_at TEXT DEFAULT (datetime('now'))
                )""",
                "CREATE INDEX IF NOT EXISTS idx_quotes_product_observed "
                "ON quotes(product_id, observed_at)",
            ],
        ),
    }

    def __init__(
        self,
        config: StorageConfig,
        products: Sequence[Product] = (),
    ) -> None:
        self._path = config.sqlite_path
        self._products = tuple(products)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, create schema and seed the catalog."""
        try:
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
        except Exception as e:
            raise SchemaError(
                f"Failed to open SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e
        await self.ensure_schema()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except aiosqlite.Error:
            return False

    # --- Schema ---

    async def ensure_schema(self) -> None:
        """Create tables and seed the catalog. Safe to call repeatedly.

        Raises:
            SchemaError: If the schema cannot be created or the quote log
                does not reference the product catalog.
        """
        if self._db is None:
            raise SchemaError(
                "Store is not initialized",
                context={"operation": "migrate", "path": self._path},
            )
        try:
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            for product in self._products:
                await self._db.execute(
                    "INSERT OR IGNORE INTO products (id, name) VALUES (?, ?)",
                    (product.id, product.name),
                )
            await self._db.commit()
            await self._verify_catalog_reference()
        except SchemaError:
            raise
        except Exception as e:
            raise SchemaError(
                f"Failed to create schema: {e}",
                context={"operation": "migrate", "path": self._path},
            ) from e

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    async def _verify_catalog_reference(self) -> None:
        async with self._db.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'products'"
        ) as cursor:
            catalog = await cursor.fetchone()
        async with self._db.execute("PRAGMA foreign_key_list(quotes)") as cursor:
            references = {row["table"] for row in await cursor.fetchall()}
        if catalog is None or "products" not in references:
            raise SchemaError(
                "Quote table does not reference the product catalog",
                context={"operation": "migrate", "table": "quotes"},
            )

    # --- Catalog ---

    async def upsert_product(self, product: Product) -> None:
        try:
            await self._db.execute(
                """INSERT INTO products (id, name) VALUES (?, ?)
                   ON CONFLICT(id) DO UPDATE SET name = excluded.name""",
                (product.id, product.name),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to save product: {e}",
                context={"operation": "insert", "table": "products", "product_id": product.id},
            ) from e

    async def list_products(self) -> list[Product]:
        try:
            async with self._db.execute(
                "SELECT id, name FROM products ORDER BY id"
            ) as cursor:
                rows = await cursor.fetchall()
            return [Product(id=r["id"], name=r["name"]) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list products: {e}",
                context={"operation": "query", "table": "products"},
            ) from e

    # --- Quotes ---

    async def insert_quote(self, quote: Quote) -> int:
        """Append one quote row and commit it.

        Returns:
            The new row id.

        Raises:
            InsertError: The row was rejected (e.g. unknown product id).
                Nothing else is rolled back.
        """
        try:
            cursor = await self._db.execute(
                """INSERT INTO quotes
                   (product_id, observed_at, buy_price, sell_price)
                   VALUES (?, ?, ?, ?)""",
                (
                    quote.product_id,
                    _format_ts(quote.observed_at),
                    str(quote.buy_price),
                    str(quote.sell_price),
                ),
            )
            row_id = cursor.lastrowid
            await cursor.close()
            await self._db.commit()
            return row_id
        except Exception as e:
            if self._db is not None:
                await self._db.rollback()
            raise InsertError(
                f"Failed to insert quote for product {quote.product_id}: {e}",
                context={
                    "operation": "insert",
                    "table": "quotes",
                    "product_id": quote.product_id,
                },
            ) from e

    async def latest_sell_price(self, product_id: int) -> Decimal:
        """Sell price of the most recently observed quote for a product.

        Raises:
            QuoteNotFound: No quote exists for the product.
        """
        try:
            async with self._db.execute(
                """SELECT sell_price FROM quotes
                   WHERE product_id = ?
                   ORDER BY observed_at DESC, id DESC LIMIT 1""",
                (product_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to read latest price: {e}",
                context={"operation": "query", "table": "quotes", "product_id": product_id},
            ) from e
        if row is None:
            raise QuoteNotFound(
                f"No quote for product {product_id}",
                context={"product_id": product_id},
            )
        return Decimal(row["sell_price"])

    async def latest_quote(self, product_id: int) -> Quote | None:
        try:
            async with self._db.execute(
                """SELECT * FROM quotes
                   WHERE product_id = ?
                   ORDER BY observed_at DESC, id DESC LIMIT 1""",
                (product_id,),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_quote(row) if row is not None else None
        except Exception as e:
            raise StorageError(
                f"Failed to read latest quote: {e}",
                context={"operation": "query", "table": "quotes", "product_id": product_id},
            ) from e

    async def latest_quotes(self) -> list[Quote]:
        """Latest quote for every product that has at least one row."""
        try:
            async with self._db.execute(
                """SELECT q.* FROM quotes q
                   WHERE q.id = (
                       SELECT id FROM quotes
                       WHERE product_id = q.product_id
                       ORDER BY observed_at DESC, id DESC LIMIT 1
                   )
                   ORDER BY q.product_id"""
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_quote(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to read latest quotes: {e}",
                context={"operation": "query", "table": "quotes"},
            ) from e

    async def count_quotes(self, product_id: int | None = None) -> int:
        try:
            query = "SELECT COUNT(*) FROM quotes"
            params: list = []
            if product_id is not None:
                query += " WHERE product_id = ?"
                params.append(product_id)
            async with self._db.execute(query, params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise StorageError(
                f"Failed to count quotes: {e}",
                context={"operation": "query", "table": "quotes"},
            ) from e

    async def get_statistics(self) -> dict:
        """Row counts and the newest observation, for health reporting."""
        try:
            async with self._db.execute(
                """SELECT
                       (SELECT COUNT(*) FROM quotes) AS total_quotes,
                       (SELECT COUNT(*) FROM products) AS total_products,
                       (SELECT MAX(observed_at) FROM quotes) AS latest_observed_at"""
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query", "table": "quotes"},
            ) from e
        latest = row["latest_observed_at"]
        return {
            "total_quotes": row["total_quotes"],
            "total_products": row["total_products"],
            "latest_observed_at": datetime.fromisoformat(latest) if latest else None,
        }

    # --- Row Mapping Helpers ---

    @staticmethod
    def _row_to_quote(row: aiosqlite.Row) -> Quote:
        return Quote(
            product_id=row["product_id"],
            observed_at=datetime.fromisoformat(row["observed_at"]),
            buy_price=Decimal(row["buy_price"]),
            sell_price=Decimal(row["sell_price"]),
        )


async def create_store(
    config: StorageConfig,
    products: Sequence[Product] = (),
) -> SqliteQuoteStore:
    """Create and initialize the configured storage backend.

    Raises:
        SchemaError: If the store cannot be opened or migrated.
    """
    store = SqliteQuoteStore(config, products)
    await store.initialize()
    return store
