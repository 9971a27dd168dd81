import os
from dataclasses import dataclass
from typing import Optional, Tuple


DEFAULT_SHOP_API_BASE = "https://shop.jellyjellycafe.com/chatbot-api/products"
DEFAULT_ALLOWED_ORIGINS = ("https://shop.jellyjellycafe.com",)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the concierge service."""
    openai_api_key: str
    openai_base_url: Optional[str]
    openai_model: str
    openai_timeout: float
    shop_api_base: str
    shop_token: str
    catalog_timeout: float
    chatbot_token: str
    redis_url: str
    allowed_origins: Tuple[str, ...]
    category_rules_path: Optional[str]
    prompt_base: str
    log_level: str


def _split_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def load_settings() -> Settings:
    """Build Settings from environment variables and defaults.
    Invalid numeric values raise ValueError at startup.
    """
    return Settings(
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        openai_model=os.environ.get("OPENAI_MODEL_NAME", "gpt-4.1-mini"),
        openai_timeout=float(os.environ.get("OPENAI_TIMEOUT", "30")),
        shop_api_base=os.environ.get("SHOP_API_BASE", DEFAULT_SHOP_API_BASE),
        shop_token=os.environ.get("SHOP_TOKEN", ""),
        catalog_timeout=float(os.environ.get("CATALOG_TIMEOUT", "10")),
        chatbot_token=os.environ.get("CHATBOT_TOKEN", ""),
        redis_url=os.environ.get("REDIS_URL", ""),
        allowed_origins=_split_origins(os.environ.get("ALLOWED_ORIGINS")),
        category_rules_path=os.environ.get("CATEGORY_RULES_PATH") or None,
        prompt_base=os.environ.get("PROMPT_BASE", "config/prompts"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
