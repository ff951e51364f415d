"""Warehousing FastAPI application.

Web server that processes warehousing commands synchronously via HTTP.
Each request is wrapped in the warehousing domain context and tagged with a
request id that is bound into every log line emitted while it is served.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from warehousing.domain import warehousing
from warehousing.utils.logging import bind_request_context, clear_request_context, configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml.
configure_logging()
warehousing.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_DOMAIN_ROUTES = ("/inventory", "/inventory-transactions", "/transfers", "/warehouses")


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    if path.startswith(_DOMAIN_ROUTES):
        return warehousing
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Warehousing API",
    description="Stock ledger and transfer workflow across warehouses",
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
    """Push the Protean domain context and bind a request id for logging."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    bind_request_context(request_id=request_id, path=request.url.path, method=request.method)
    try:
        domain = _resolve_domain(request.url.path)
        if domain is not None:
            with domain.domain_context():
                response = await call_next(request)
        else:
            # Health check and docs run outside the domain context
            response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from warehousing.api import (  # noqa: E402
    inventory_router,
    register_error_handlers,
    transaction_router,
    transfer_router,
    warehouse_router,
)

app.include_router(inventory_router)
app.include_router(transaction_router)
app.include_router(transfer_router)
app.include_router(warehouse_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"warehousing": {"name": warehousing.name}},
        }
    )
