from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from blobstore.config import (
    ACCEPTED_CONTENT_TYPES,
    API_KEYS,
    CACHE_MAX_AGE_SECONDS,
    DEFAULT_PRINCIPAL,
    MAX_UPLOAD_BYTES,
    RATE_LIMIT_PER_MINUTE,
    REDIS_URL,
    STORAGE_TIMEOUT_SECONDS,
)
from blobstore.core.exceptions import AuthenticationError, StorageError, ValidationError
from blobstore.core.metrics import metrics
from blobstore.core.rate_limit import RateLimiter
from blobstore.reader import parse_content_length
from blobstore.services.backend import call_store
from blobstore.services.ingest import IngestionGateway
from blobstore.services.retrieve import RetrievalGateway
from blobstore.storage import FileStore

router = APIRouter()

logger = logging.getLogger("blobstore")

rate_limiter = RateLimiter(RATE_LIMIT_PER_MINUTE, redis_url=REDIS_URL)


def get_store(request: Request) -> FileStore:
    return request.app.state.store


def get_ingestion_gateway(store: FileStore = Depends(get_store)) -> IngestionGateway:
    return IngestionGateway(
        store,
        max_bytes=MAX_UPLOAD_BYTES,
        accepted_types=ACCEPTED_CONTENT_TYPES,
        timeout=STORAGE_TIMEOUT_SECONDS,
        metrics=metrics,
    )


def get_retrieval_gateway(store: FileStore = Depends(get_store)) -> RetrievalGateway:
    return RetrievalGateway(store, timeout=STORAGE_TIMEOUT_SECONDS, metrics=metrics)


def resolve_principal(request: Request) -> str:
    """Identity recorded as ``created_by``. API keys are only enforced when configured."""
    if not API_KEYS:
        return DEFAULT_PRINCIPAL

    api_key = request.headers.get("x-api-key")
    principal = API_KEYS.get(api_key) if api_key else None
    if principal is None:
        raise AuthenticationError("Invalid or missing API key")
    return principal


async def enforce_rate_limit(request: Request):
    client = request.client.host if request.client else "unknown"
    allowed, retry_after = rate_limiter.hit(client)
    if not allowed:
        headers = {"Retry-After": str(retry_after)}
        logger.warning("event=rate_limited client=%s retry_after=%s", client, retry_after)
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers=headers,
        )


@router.post("/files", dependencies=[Depends(enforce_rate_limit)])
async def upload_file(
    request: Request,
    principal: str = Depends(resolve_principal),
    gateway: IngestionGateway = Depends(get_ingestion_gateway),
):
    result = await gateway.upload(
        request.headers.get("content-type"),
        request.stream(),
        principal,
        declared_length=parse_content_length(request.headers.get("content-length")),
    )
    # 201 for newly stored content, 200 when the same bytes were already present.
    return JSONResponse(
        {"hash": result.hash, "size": result.size_bytes},
        status_code=201 if result.created else 200,
    )


@router.get("/files/", include_in_schema=False)
async def file_hash_missing():
    raise ValidationError("hash must be provided")


@router.get("/files/{file_hash}", dependencies=[Depends(enforce_rate_limit)])
async def file_by_hash(
    file_hash: str,
    gateway: RetrievalGateway = Depends(get_retrieval_gateway),
):
    stored = await gateway.fetch(file_hash)
    # Content-Type is set as a raw header so the stored value goes out unchanged.
    return Response(
        content=stored.data,
        status_code=200,
        headers={
            "Content-Type": stored.mimetype,
            "Cache-Control": f"public, max-age={CACHE_MAX_AGE_SECONDS}, immutable",
            "ETag": f'"{stored.hash}"',
        },
    )


@router.get("/metrics", dependencies=[Depends(enforce_rate_limit)])
async def metrics_snapshot(store: FileStore = Depends(get_store)):
    stats = metrics.snapshot()
    totals = await call_store(store.totals, timeout=STORAGE_TIMEOUT_SECONDS)
    payload = {
        "uploads": int(stats.get("uploads", 0)),
        "deduplicated": int(stats.get("deduplicated", 0)),
        "downloads": int(stats.get("downloads", 0)),
        "stored_files": totals["total_files"],
        "storage_bytes": totals["total_bytes"],
    }
    response = JSONResponse(payload)
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    return response


@router.get("/healthz", include_in_schema=False)
async def healthz(store: FileStore = Depends(get_store)):
    try:
        healthy = await call_store(store.ping, timeout=STORAGE_TIMEOUT_SECONDS)
    except StorageError:
        healthy = False
    if not healthy:
        logger.error("event=healthcheck_failed")
        return JSONResponse({"status": "unavailable"}, status_code=503)
    return {"status": "ok"}
