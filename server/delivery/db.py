"""
Database access layer for orders, users and search popularity.
Uses asyncpg for async Postgres access.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import asyncpg

from .models import Order, OrderStatus, SearchPopularity
from .settings import DATABASE_URL


SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# Connection pool (initialized on startup)
_pool: Any = None


async def init_pool() -> None:
    """Initialize the database connection pool. Call during app startup."""
    global _pool
    if DATABASE_URL:
        _pool = await asyncpg.create_pool(
            DATABASE_URL,
            min_size=2,
            max_size=10,
        )


async def close_pool() -> None:
    """Close the database connection pool. Call during app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


def pool_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def get_connection():
    """Get a database connection from the pool."""
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    async with _pool.acquire() as conn:
        yield conn


async def apply_schema(path: Path = SCHEMA_PATH) -> None:
    """Run schema.sql (idempotent CREATE ... IF NOT EXISTS statements)."""
    async with get_connection() as conn:
        await conn.execute(path.read_text(encoding="utf-8"))


def _row_to_order(row) -> Order:
    return Order(
        id=row["id"],
        user_id=row["user_id"],
        store_id=row["store_id"],
        store_owner_id=row["store_owner_id"],
        status=OrderStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_search(row) -> SearchPopularity:
    return SearchPopularity(
        id=row["id"],
        user_id=row["user_id"],
        keyword=row["keyword"],
        region=row["region"],
        count=row["count"],
        updated_at=row["updated_at"],
    )


# --- User Directory ---


async def get_user_role(user_id: int) -> Optional[str]:
    """Return the user's role name, or None if the user does not exist."""
    async with get_connection() as conn:
        return await conn.fetchval("SELECT role FROM users WHERE id = $1", user_id)


async def user_exists(user_id: int) -> bool:
    async with get_connection() as conn:
        return bool(await conn.fetchval("SELECT EXISTS(SELECT 1 FROM users WHERE id = $1)", user_id))


# --- Order Operations ---


async def get_order(order_id: int) -> Optional[Order]:
    """Get an order with the owner of its store."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT o.id, o.user_id, o.store_id, s.owner_id AS store_owner_id,
                   o.status, o.created_at, o.updated_at
            FROM orders o
            JOIN stores s ON s.id = o.store_id
            WHERE o.id = $1
            """,
            order_id,
        )
        return _row_to_order(row) if row else None


async def update_order_status(
    order_id: int,
    expected: OrderStatus,
    new_status: OrderStatus,
    updated_at: datetime,
) -> Optional[Order]:
    """
    Compare-and-swap the status of an order.

    The row is only written while its status is still `expected`; the
    statement is atomic, so two concurrent writers starting from the same
    status cannot both succeed. Returns the updated order, or None when the
    status had already moved on (conflict).

    updated_at never goes backwards, even if the caller's clock is behind.
    """
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            WITH updated AS (
                UPDATE orders
                SET status = $3, updated_at = GREATEST(updated_at, $4)
                WHERE id = $1 AND status = $2
                RETURNING id, user_id, store_id, status, created_at, updated_at
            )
            SELECT u.id, u.user_id, u.store_id, s.owner_id AS store_owner_id,
                   u.status, u.created_at, u.updated_at
            FROM updated u
            JOIN stores s ON s.id = u.store_id
            """,
            order_id,
            expected.value,
            new_status.value,
            updated_at,
        )
        return _row_to_order(row) if row else None


# --- Search Popularity Operations ---


async def upsert_search(user_id: int, keyword: str, region: str) -> SearchPopularity:
    """Insert a search record with count 1, or increment the existing one."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO searches (user_id, keyword, region, count, updated_at)
            VALUES ($1, $2, $3, 1, NOW())
            ON CONFLICT (user_id, keyword, region)
            DO UPDATE SET count = searches.count + 1, updated_at = NOW()
            RETURNING id, user_id, keyword, region, count, updated_at
            """,
            user_id,
            keyword,
            region,
        )
        return _row_to_search(row)


async def top_searches(region: str, limit: int) -> List[SearchPopularity]:
    """Most searched records in a region; ties go to the most recently updated."""
    async with get_connection() as conn:
        rows = await conn.fetch(
            """
            SELECT id, user_id, keyword, region, count, updated_at
            FROM searches
            WHERE region = $1
            ORDER BY count DESC, updated_at DESC, id ASC
            LIMIT $2
            """,
            region,
            limit,
        )
        return [_row_to_search(row) for row in rows]


async def list_user_searches(user_id: int, region: Optional[str], sort: str) -> List[SearchPopularity]:
    """Search history of one user, optionally limited to a region."""
    order_by = "count DESC, updated_at DESC" if sort == "count" else "updated_at DESC"
    async with get_connection() as conn:
        conditions = ["user_id = $1"]
        params: List[Any] = [user_id]
        if region is not None:
            conditions.append("region = $2")
            params.append(region)

        rows = await conn.fetch(
            f"""
            SELECT id, user_id, keyword, region, count, updated_at
            FROM searches
            WHERE {" AND ".join(conditions)}
            ORDER BY {order_by}, id ASC
            """,
            *params,
        )
        return [_row_to_search(row) for row in rows]


async def get_search(search_id: int) -> Optional[SearchPopularity]:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            SELECT id, user_id, keyword, region, count, updated_at
            FROM searches
            WHERE id = $1
            """,
            search_id,
        )
        return _row_to_search(row) if row else None
