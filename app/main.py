import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .catalog_client import CatalogClient
from .catalog_snapshot import CatalogSnapshotStore, SnapshotUnavailable
from .category_detector import CategoryDetector
from .category_rules import load_category_config
from .config import Settings, load_settings
from .llm_client import LLMClient
from .middleware import RequestLoggingMiddleware
from .models import ChatRequest, ChatResponse, SyncResponse
from .resolver import Resolver
from .trace import log_resolution


load_dotenv()

API_VERSION = "2025-12-14-a"

settings = load_settings()

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
logger = logging.getLogger("app")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=1)
def get_catalog_client() -> CatalogClient:
    s = get_settings()
    return CatalogClient(s.shop_api_base, token=s.shop_token, timeout=s.catalog_timeout)


@lru_cache(maxsize=1)
def get_resolver() -> Resolver:
    s = get_settings()
    detector = CategoryDetector(load_category_config(s.category_rules_path))
    return Resolver(catalog=get_catalog_client(), llm=LLMClient(s), detector=detector)


@lru_cache(maxsize=1)
def get_snapshot_store() -> Optional[CatalogSnapshotStore]:
    try:
        return CatalogSnapshotStore.from_url(get_settings().redis_url)
    except SnapshotUnavailable as e:
        logger.warning("catalog snapshot disabled: %s", e)
        return None


app = FastAPI(title="boardgame-concierge")

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
    max_age=86400,
)


@app.get("/api/health")
def health():
    return {"status": "ok", "service": "boardgame-concierge"}


@app.post("/api/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, resolver: Resolver = Depends(get_resolver)):
    if not req.messages:
        return JSONResponse({"error": "messages is required"}, status_code=400)

    resolution = await resolver.resolve(req.messages)

    det = resolution.detection
    log_resolution(
        resolution.trace,
        detection={
            "age": det.age_category_id,
            "count": det.count_category_id,
            "keyword": det.keyword_category_id,
        },
        item_ids=[i.id for i in resolution.items],
        reply_len=len(resolution.reply),
    )
    return ChatResponse(
        reply=resolution.reply,
        recommended_items=resolution.items,
        api_version=API_VERSION,
    )


def _bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if auth[:7].lower() == "bearer ":
        auth = auth[7:]
    return auth.strip()


@app.post("/api/sync-products", response_model=SyncResponse)
async def sync_products(
    request: Request,
    s: Settings = Depends(get_settings),
    catalog: CatalogClient = Depends(get_catalog_client),
    store: Optional[CatalogSnapshotStore] = Depends(get_snapshot_store),
):
    """Pull the full catalog and cache it as a snapshot for one hour."""
    incoming = _bearer_token(request)
    if not incoming or not s.chatbot_token or incoming != s.chatbot_token:
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    if store is None:
        return JSONResponse({"error": "snapshot store is not configured"}, status_code=503)

    result = await catalog.fetch_all()
    if not result.ok:
        return JSONResponse({"error": "catalog unavailable"}, status_code=502)
    try:
        store.save(result.items)
    except SnapshotUnavailable as e:
        return JSONResponse({"error": str(e)}, status_code=503)
    return SyncResponse(ok=True, count=len(result.items))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
