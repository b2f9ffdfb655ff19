"""Order, user and search stores: in-memory for development and tests, Postgres-backed otherwise."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from . import db
from .models import Order, OrderStatus, Role, SearchPopularity


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """
    In-memory store with the same async interface as PostgresStore.

    Status writes are compare-and-swap under a per-order lock, search
    upserts are serialised per (user_id, keyword, region) key.

    Lock maps grow with every order and search key touched and are never
    pruned; fine for development and tests, not for long-lived processes.
    """

    def __init__(self):
        self._users: Dict[int, Role] = {}
        self._store_owners: Dict[int, int] = {}
        self._orders: Dict[int, Order] = {}
        self._searches: Dict[int, SearchPopularity] = {}
        self._search_keys: Dict[Tuple[int, str, str], int] = {}
        self._order_locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._search_locks: Dict[Tuple[int, str, str], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._order_ids = itertools.count(1)
        self._search_ids = itertools.count(1)

    # --- Seeding (dev/test) ---

    def add_user(self, user_id: int, role: Role = Role.USER) -> None:
        self._users[user_id] = role

    def add_store(self, store_id: int, owner_id: int) -> None:
        self._store_owners[store_id] = owner_id

    def add_order(
        self,
        user_id: int,
        store_id: int,
        status: OrderStatus = OrderStatus.WAITING,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> Order:
        if store_id not in self._store_owners:
            raise KeyError(f"unknown store {store_id}")
        created_at = created_at or utcnow()
        order = Order(
            id=next(self._order_ids),
            user_id=user_id,
            store_id=store_id,
            store_owner_id=self._store_owners[store_id],
            status=status,
            created_at=created_at,
            updated_at=updated_at or created_at,
        )
        self._orders[order.id] = order
        return _copy_order(order)

    def add_search(self, user_id: int, keyword: str, region: str, count: int, updated_at: datetime) -> SearchPopularity:
        record = SearchPopularity(
            id=next(self._search_ids),
            user_id=user_id,
            keyword=keyword,
            region=region,
            count=count,
            updated_at=updated_at,
        )
        self._searches[record.id] = record
        self._search_keys[(user_id, keyword, region)] = record.id
        return _copy_search(record)

    # --- User Directory ---

    async def get_role(self, user_id: int) -> Optional[Role]:
        return self._users.get(user_id)

    async def user_exists(self, user_id: int) -> bool:
        return user_id in self._users

    # --- Order Record Store ---

    async def get_order(self, order_id: int) -> Optional[Order]:
        order = self._orders.get(order_id)
        return _copy_order(order) if order else None

    async def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        async with self._order_locks[order_id]:
            order = self._orders.get(order_id)
            if order is None or order.status != expected:
                return None
            order.status = new_status
            order.updated_at = max(order.updated_at, updated_at)
            return _copy_order(order)

    # --- Search Popularity ---

    async def upsert_search(self, user_id: int, keyword: str, region: str) -> SearchPopularity:
        key = (user_id, keyword, region)
        async with self._search_locks[key]:
            now = utcnow()
            search_id = self._search_keys.get(key)
            if search_id is None:
                record = SearchPopularity(
                    id=next(self._search_ids),
                    user_id=user_id,
                    keyword=keyword,
                    region=region,
                    count=1,
                    updated_at=now,
                )
                self._searches[record.id] = record
                self._search_keys[key] = record.id
            else:
                record = self._searches[search_id]
                record.count += 1
                record.updated_at = max(record.updated_at, now)
            return _copy_search(record)

    async def top_searches(self, region: str, limit: int) -> List[SearchPopularity]:
        records = [r for r in self._searches.values() if r.region == region]
        records.sort(key=lambda r: r.id)
        records.sort(key=lambda r: (r.count, r.updated_at), reverse=True)
        return [_copy_search(r) for r in records[:limit]]

    async def list_user_searches(self, user_id: int, region: Optional[str], sort: str) -> List[SearchPopularity]:
        records = [
            r for r in self._searches.values()
            if r.user_id == user_id and (region is None or r.region == region)
        ]
        records.sort(key=lambda r: r.id)
        if sort == "count":
            records.sort(key=lambda r: (r.count, r.updated_at), reverse=True)
        else:
            records.sort(key=lambda r: r.updated_at, reverse=True)
        return [_copy_search(r) for r in records]

    async def get_search(self, search_id: int) -> Optional[SearchPopularity]:
        record = self._searches.get(search_id)
        return _copy_search(record) if record else None


class PostgresStore:
    """Store backed by the asyncpg pool in db.py."""

    async def get_role(self, user_id: int) -> Optional[Role]:
        role = await db.get_user_role(user_id)
        return Role(role) if role else None

    async def user_exists(self, user_id: int) -> bool:
        return await db.user_exists(user_id)

    async def get_order(self, order_id: int) -> Optional[Order]:
        return await db.get_order(order_id)

    async def update_order_status(
        self,
        order_id: int,
        expected: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        return await db.update_order_status(order_id, expected, new_status, updated_at)

    async def upsert_search(self, user_id: int, keyword: str, region: str) -> SearchPopularity:
        return await db.upsert_search(user_id, keyword, region)

    async def top_searches(self, region: str, limit: int) -> List[SearchPopularity]:
        return await db.top_searches(region, limit)

    async def list_user_searches(self, user_id: int, region: Optional[str], sort: str) -> List[SearchPopularity]:
        return await db.list_user_searches(user_id, region, sort)

    async def get_search(self, search_id: int) -> Optional[SearchPopularity]:
        return await db.get_search(search_id)


def _copy_order(order: Order) -> Order:
    return Order(**order.to_dict())


def _copy_search(record: SearchPopularity) -> SearchPopularity:
    return SearchPopularity(**record.to_dict())


# Global storage instance
_storage = None


def get_storage():
    """Get global storage instance."""
    global _storage
    if _storage is None:
        # In-memory until init_storage() picks the database
        _storage = MemoryStore()
    return _storage


def init_storage(use_database: bool = False):
    """Initialize global storage: Postgres when the pool is up, memory otherwise."""
    global _storage
    if use_database and db.pool_ready():
        _storage = PostgresStore()
        logger.info("[storage] Using Postgres store")
    else:
        _storage = MemoryStore()
        logger.info("[storage] Using in-memory store")
    return _storage


def set_storage(storage) -> None:
    global _storage
    _storage = storage
