from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from app.config import load_settings
from app.llm_client import Suggestion
from app.models import CatalogItem, CatalogResult


def make_item(id, name="", categories=(), visible=True, in_stock=True, **extra) -> CatalogItem:
    return CatalogItem(
        id=id,
        name=name or f"game-{id}",
        category_ids=list(categories),
        is_visible=visible,
        in_stock=in_stock,
        **extra,
    )


class FakeCatalog:
    """In-memory stand-in for CatalogClient that records every call."""

    def __init__(
        self,
        top_selling: Optional[List[CatalogItem]] = None,
        by_category: Optional[Dict[int, List[CatalogItem]]] = None,
        by_query: Optional[Dict[str, List[CatalogItem]]] = None,
        ok: bool = True,
    ):
        self.top_selling_items = top_selling or []
        self.by_category = by_category or {}
        self.by_query = by_query or {}
        self.ok = ok
        self.calls: List[tuple] = []

    def _result(self, items) -> CatalogResult:
        if not self.ok:
            return CatalogResult(ok=False, error="ConnectionError")
        return CatalogResult(ok=True, items=list(items))

    async def search(self, query, limit=20, offset=0):
        self.calls.append(("search", query))
        return self._result(self.by_query.get(query, []))

    async def list_by_category(self, category_id, limit=200, offset=0):
        self.calls.append(("list_by_category", category_id, limit))
        return self._result(self.by_category.get(category_id, []))

    async def top_selling(self, category_id=None, limit=10, days=90):
        self.calls.append(("top_selling", category_id, limit, days))
        return self._result(self.top_selling_items)

    async def fetch_all(self, limit=5000):
        self.calls.append(("fetch_all", limit))
        items = list(self.top_selling_items)
        for v in self.by_category.values():
            items.extend(v)
        return self._result(items)

    def calls_of(self, kind):
        return [c for c in self.calls if c[0] == kind]


class FakeLLM:
    def __init__(self, suggestion: Optional[Suggestion] = None):
        self.suggestion = suggestion or Suggestion(ok=True, reply="", titles=[])
        self.calls: List[list] = []

    async def suggest(self, conversation):
        self.calls.append(list(conversation))
        return self.suggestion


class FakeRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex
        return True

    def get(self, key):
        return self.data.get(key)


@pytest.fixture
def settings(tmp_path):
    return replace(
        load_settings(),
        openai_api_key="",
        prompt_base=str(tmp_path),
        chatbot_token="sync-secret",
    )
