import time
import uuid
import logging
from typing import List, Optional
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Request, Body, Query, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .models import (
    Actor, ErrorResponse, OrderResponse, OrderStatusRequest, SearchRecordRequest, SearchResponse,
    TransitionResult, records_to_responses,
)
from .errors import ServiceError
from .settings import settings, DATABASE_URL
from .auth import get_current_actor, require_user
from .admin import router as admin_router
from .rate_limit import limiter
from .notifications import get_notifier, init_notifier
from .services.orders import OrderService
from .services.searches import SearchService
from .slack import build_sink
from .storage import get_storage, init_storage
from . import db


logger = logging.getLogger(__name__)

# Seconds to wait for in-flight notifications on shutdown
SHUTDOWN_DRAIN_SECONDS = 5.0


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Startup: initialize database pool if configured
    use_database = False
    if DATABASE_URL:
        try:
            await db.init_pool()
            use_database = True
            logger.info("[startup] Database pool initialized successfully")
        except Exception as e:
            logger.warning("[startup] Failed to initialize database pool: %s", e)
            logger.warning("[startup] Falling back to the in-memory store")
    else:
        logger.info("[startup] No DATABASE_URL configured - running with in-memory store")
    init_storage(use_database=use_database)

    sink = build_sink()
    notifier = init_notifier(sink)
    if not settings.slack_token:
        logger.warning("[startup] DELIVERY_SLACK_TOKEN not set - notifications will fail and be logged")

    yield

    # Shutdown: let queued notifications finish, then release resources
    await notifier.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await sink.aclose()
    await db.close_pool()


app = FastAPI(
    title="Delivery Core - Order Status & Search Popularity",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include admin router
app.include_router(admin_router)

# CORS configuration from settings
# If no origins configured, allow localhost for development
allowed_origins = settings.allowed_origins if settings.allowed_origins else [
    "http://localhost:*",
    "http://127.0.0.1:*",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "X-API-Key", "Authorization", "X-User-Id", "X-Request-Id"],
)


def _get_or_create_request_id(request: Request) -> str:
    """Get request ID from header or generate one."""
    return request.headers.get("X-Request-Id") or str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Stamps X-Request-Id on every response and logs request timing."""

    async def dispatch(self, request: Request, call_next):
        request_id = _get_or_create_request_id(request)
        start_time = time.time()
        request.state.request_id = request_id

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "[request] method=%s path=%s status=%s duration_ms=%d request_id=%s",
            request.method, request.url.path, response.status_code, duration_ms, request_id,
        )
        response.headers["X-Request-Id"] = request_id
        return response


app.add_middleware(RequestIdMiddleware)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# --- Service Dependencies ---


def get_order_service() -> OrderService:
    return OrderService(get_storage(), get_notifier())


def get_search_service() -> SearchService:
    return SearchService(get_storage())


@app.get("/health")
def health():
    """
    Health check endpoint - no authentication required.
    Used by load balancers and orchestrators.
    """
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": int(time.time()),
        "auth_required": bool(settings.api_keys),
        "storage": "postgres" if db.pool_ready() else "memory",
        "notifications": "slack" if settings.slack_token else "unconfigured",
    }


# --- Orders ---


@app.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """Get an order (store owner, ordering customer or admin only)."""
    order = await service.get_order(order_id, actor)
    return OrderResponse.from_order(order)


@app.patch(
    "/orders/{order_id}/status",
    response_model=TransitionResult,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_order_status(
    order_id: int,
    req: OrderStatusRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Change the status of an order.

    Returns 404 for unknown orders, 409 for transitions the lifecycle does
    not allow (body carries current and requested status) and 403 when the
    caller may not take this transition.
    """
    return await service.transition(order_id, req.status, actor)


# --- Searches ---


@app.post("/searches", response_model=SearchResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.search_rate_limit}/minute")
async def record_search(
    request: Request,  # Required for rate limiter
    req: SearchRecordRequest = Body(...),
    actor: Actor = Depends(require_user),
    service: SearchService = Depends(get_search_service),
):
    """Record a search event for the acting user."""
    record = await service.record_search(actor.user_id, req.keyword, req.region)
    return SearchResponse.from_record(record)


@app.get("/searches/popular", response_model=List[SearchResponse])
async def popular_searches(
    region: str = Query(..., description="Region to rank"),
    limit: Optional[int] = Query(None, description="Maximum number of records"),
    service: SearchService = Depends(get_search_service),
):
    """Most searched keywords in a region."""
    n = settings.popular_default_limit if limit is None else limit
    records = await service.top_n(region, n)
    return records_to_responses(records, include_user=False)


@app.get("/searches/me", response_model=List[SearchResponse])
async def my_searches(
    region: Optional[str] = Query(None),
    sort: str = Query("updatedAt", description="updatedAt or count"),
    actor: Actor = Depends(require_user),
    service: SearchService = Depends(get_search_service),
):
    """Search history of the acting user."""
    records = await service.list_user_searches(actor.user_id, region, sort)
    return records_to_responses(records, include_user=False)


@app.get("/searches/{search_id}", response_model=SearchResponse)
async def get_search(
    search_id: int,
    actor: Actor = Depends(require_user),
    service: SearchService = Depends(get_search_service),
):
    record = await service.get_search(actor.user_id, search_id)
    return SearchResponse.from_record(record)


def cli():
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run("delivery.main:app", host="0.0.0.0", port=8000, reload=settings.debug)


if __name__ == "__main__":
    cli()
