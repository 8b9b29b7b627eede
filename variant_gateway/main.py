from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import CacheStore, MemoryCacheStore, SingleFlightCache
from .clients.search import SearchBackendError, SearchClient, make_http_client
from .queries.clinvar import ClinvarVariantQueries
from .queries.liftover import LiftoverResolver
from .routers import clinvar_router, liftover_router

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger("variant_gateway.main")

# ------------------------------------------------------------------------------
# App metadata / env
# ------------------------------------------------------------------------------
APP_TITLE = os.getenv("APP_TITLE", "Variant Gateway")
APP_VERSION = os.getenv("APP_VERSION", "2026.10")
ROOT_PATH = os.getenv("ROOT_PATH", "")


def create_app(
    *,
    http: Optional[httpx.AsyncClient] = None,
    cache_store: Optional[CacheStore] = None,
    search_retries: Optional[int] = None,
) -> FastAPI:
    """
    Build the app. Collaborators default to a pooled httpx client against
    ELASTICSEARCH_URL and a per-process memory cache; tests inject their own.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_http = http is None
        client = http or make_http_client()
        search = SearchClient(client) if search_retries is None else SearchClient(client, retries=search_retries)
        cache = SingleFlightCache(cache_store or MemoryCacheStore())
        app.state.http = client
        app.state.clinvar = ClinvarVariantQueries(search, cache)
        app.state.liftover = LiftoverResolver(search)
        log.info("Search backend: %s", client.base_url)
        try:
            yield
        finally:
            if owns_http:
                await client.aclose()

    app = FastAPI(title=APP_TITLE, version=APP_VERSION, root_path=ROOT_PATH, lifespan=lifespan)

    # CORS (default permissive; tighten in prod with CORS_ALLOW_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(clinvar_router.router, prefix="/v1")
    app.include_router(liftover_router.router, prefix="/v1")

    @app.exception_handler(SearchBackendError)
    async def _search_backend_error(request: Request, exc: SearchBackendError):
        log.error("Search backend failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=502,
            content={"detail": {"error": "Search backend failure", "message": str(exc), "upstream_status": exc.status_code}},
        )

    @app.get("/healthz")
    @app.get("/v1/healthz")
    async def healthz():
        return {"ok": True, "version": APP_VERSION}

    @app.get("/", include_in_schema=False)
    async def root():
        return {"ok": True, "service": APP_TITLE, "docs": "/docs", "api": "/v1"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("variant_gateway.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
