from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# ---- Domain Records ----


class OrderStatus(str, Enum):
    WAITING = "WAITING"
    ACCEPTED = "ACCEPTED"
    COOKING = "COOKING"
    DELIVERING = "DELIVERING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: Any) -> Optional["OrderStatus"]:
        """Case-insensitive lookup; None for anything outside the enumeration."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELED})


class Role(str, Enum):
    USER = "USER"    # consumer placing orders
    OWNER = "OWNER"  # store owner
    ADMIN = "ADMIN"  # support / service accounts


class Audience(str, Enum):
    USER = "USER"
    OWNER = "OWNER"
    BROADCAST = "BROADCAST"


@dataclass
class Order:
    """Order row as seen by the status lifecycle."""
    id: int
    user_id: int
    store_id: int
    store_owner_id: int  # owner of store_id, resolved by the store
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchPopularity:
    """Search count per (user_id, keyword, region)."""
    id: int
    user_id: int
    keyword: str
    region: str
    count: int
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NotificationMessage:
    audience: Audience
    text: str


@dataclass
class Actor:
    """Authenticated caller of a service operation."""
    user_id: Optional[int]
    role: Role


# ---- API Models ----


class OrderStatusRequest(BaseModel):
    """Body of PATCH /orders/{order_id}/status."""
    status: OrderStatus = Field(..., description="Requested status")

    @field_validator("status", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class TransitionResult(BaseModel):
    """Result of a successful status transition."""
    order_id: int
    store_id: int
    status: OrderStatus
    updated_at: datetime
    message: str = "주문 상태가 변경되었습니다."


class OrderResponse(BaseModel):
    order_id: int
    user_id: int
    store_id: int
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            order_id=order.id,
            user_id=order.user_id,
            store_id=order.store_id,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class SearchRecordRequest(BaseModel):
    """Body of POST /searches."""
    keyword: str = Field(..., description="Search keyword")
    region: str = Field(..., description="Region the search was made in")


class SearchResponse(BaseModel):
    id: int
    keyword: str
    region: str
    count: int
    updated_at: datetime
    user_id: Optional[int] = None

    @classmethod
    def from_record(cls, record: SearchPopularity, include_user: bool = True) -> "SearchResponse":
        return cls(
            id=record.id,
            keyword=record.keyword,
            region=record.region,
            count=record.count,
            updated_at=record.updated_at,
            user_id=record.user_id if include_user else None,
        )


class BroadcastRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000, description="Announcement text")


class BroadcastResponse(BaseModel):
    status: Literal["queued"] = "queued"
    audience: Audience = Audience.BROADCAST


class ErrorResponse(BaseModel):
    error: str
    message: str
    current: Optional[str] = None
    requested: Optional[str] = None


def records_to_responses(records: List[SearchPopularity], include_user: bool = True) -> List[SearchResponse]:
    return [SearchResponse.from_record(r, include_user=include_user) for r in records]
