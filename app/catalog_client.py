import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from .models import CatalogItem, CatalogResult


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def coerce_items(data: Any) -> List[CatalogItem]:
    """Turn a shop API payload into catalog items.
    Accepts {"items": [...]} or a bare list; anything else yields []. Bad records are dropped.
    """
    if isinstance(data, dict):
        raw = data.get("items")
    else:
        raw = data
    if not isinstance(raw, list):
        return []
    items: List[CatalogItem] = []
    for record in raw:
        if not isinstance(record, dict):
            continue
        try:
            items.append(CatalogItem.model_validate(record))
        except ValidationError:
            continue
    return items


class CatalogClient:
    """Read-only client for the shop's chatbot product API.
    Every failure (status, network, timeout, bad JSON) is soft: ok=False and no items.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, path: str, params: Dict[str, Any]) -> CatalogResult:
        url = self.base_url + path
        params = {k: v for k, v in params.items() if v is not None}
        try:
            resp = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("catalog request failed: %s %s: %s", url, params, e)
            return CatalogResult(ok=False, error=type(e).__name__)
        if resp.status_code != 200:
            logger.warning("catalog returned %s for %s %s", resp.status_code, url, params)
            return CatalogResult(ok=False, status=resp.status_code, error="http_status")
        try:
            data = resp.json()
        except ValueError:
            logger.warning("catalog returned malformed JSON for %s %s", url, params)
            return CatalogResult(ok=False, status=resp.status_code, error="malformed_json")
        return CatalogResult(ok=True, items=coerce_items(data), status=resp.status_code)

    def search_sync(self, query: str, limit: int = 20, offset: int = 0) -> CatalogResult:
        return self._get("", {"q": query, "limit": limit, "offset": offset})

    def list_by_category_sync(self, category_id: int, limit: int = 200, offset: int = 0) -> CatalogResult:
        return self._get("", {"category_id": category_id, "limit": limit, "offset": offset})

    def top_selling_sync(self, category_id: Optional[int] = None, limit: int = 10, days: int = 90) -> CatalogResult:
        return self._get("/top-selling", {"category_id": category_id, "limit": limit, "days": days})

    def fetch_all_sync(self, limit: int = 5000) -> CatalogResult:
        return self._get("", {"limit": limit})

    # Async facade used by the resolver; requests blocks, so run it off the event loop

    async def search(self, query: str, limit: int = 20, offset: int = 0) -> CatalogResult:
        return await run_in_threadpool(self.search_sync, query, limit, offset)

    async def list_by_category(self, category_id: int, limit: int = 200, offset: int = 0) -> CatalogResult:
        return await run_in_threadpool(self.list_by_category_sync, category_id, limit, offset)

    async def top_selling(self, category_id: Optional[int] = None, limit: int = 10, days: int = 90) -> CatalogResult:
        return await run_in_threadpool(self.top_selling_sync, category_id, limit, days)

    async def fetch_all(self, limit: int = 5000) -> CatalogResult:
        return await run_in_threadpool(self.fetch_all_sync, limit)
