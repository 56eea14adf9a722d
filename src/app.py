"""Storefront FastAPI application.

Serves the cart, checkout and order endpoints. Commands are processed
synchronously inside the storefront domain context pushed per request.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml ("production"
# switches the database to PostgreSQL).
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront import config
from storefront.domain import storefront
from storefront.pricing import set_resolver
from storefront.pricing.in_memory import demo_catalogue
from storefront.utils.logging import add_context, clear_context

storefront.init()

# Outside production, prices come from a seeded in-memory catalogue
if not config.is_production():
    set_resolver(demo_catalogue())

# Paths served outside the domain context
_UNSCOPED_PREFIXES = ("/health", "/docs", "/openapi.json", "/redoc")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Cart lifecycle, checkout locking and idempotent order placement",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the storefront domain context and tag log lines with a request id."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    add_context(request_id=request_id, path=request.url.path)
    try:
        if request.url.path.startswith(_UNSCOPED_PREFIXES):
            response = await call_next(request)
        else:
            with storefront.domain_context():
                response = await call_next(request)
    finally:
        clear_context()
    response.headers["x-request-id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from storefront.api import cart_router, order_router, register_error_handlers  # noqa: E402

app.include_router(cart_router)
app.include_router(order_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"storefront": {"name": storefront.name}},
        }
    )
