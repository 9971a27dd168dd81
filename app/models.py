from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CatalogItem(BaseModel):
    # Wire keys follow the shop API; unknown keys are ignored
    model_config = ConfigDict(populate_by_name=True)

    id: Union[int, str]
    name: str = ""
    url: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[float] = None
    category_ids: List[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("category_ids", "categories"),
    )
    is_visible: bool = False
    in_stock: bool = False

    @field_validator("category_ids", mode="before")
    @classmethod
    def _coerce_category_ids(cls, value: Any) -> List[int]:
        """Accept ints, numeric strings or {"id": ...} objects; drop the rest."""
        if not isinstance(value, list):
            return []
        out: List[int] = []
        for v in value:
            if isinstance(v, dict):
                v = v.get("id")
            if isinstance(v, bool):
                continue
            try:
                out.append(int(v))
            except (TypeError, ValueError):
                continue
        return out

    @property
    def eligible(self) -> bool:
        return bool(self.is_visible and self.in_stock)

    def has_categories(self, *category_ids: Optional[int]) -> bool:
        """True if the item carries every given category id (None is ignored)."""
        return all(c in self.category_ids for c in category_ids if c is not None)


class CatalogResult(BaseModel):
    ok: bool
    items: List[CatalogItem] = Field(default_factory=list)
    status: Optional[int] = None
    error: Optional[str] = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    messages: Optional[List[ChatMessage]] = None


class ChatResponse(BaseModel):
    reply: str
    recommended_items: List[CatalogItem]
    api_version: str


class SyncResponse(BaseModel):
    ok: bool
    count: int
