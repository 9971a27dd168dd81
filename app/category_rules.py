import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


logger = logging.getLogger(__name__)

AGE_MIN = 3
AGE_MAX = 16
# Used when the utterance mentions children without an age
DEFAULT_CHILD_AGE = 6


@dataclass(frozen=True)
class CategoryRule:
    category_id: int
    keywords: Tuple[str, ...]
    priority: int


# Shop category ids for "recommended age N+"
AGE_CATEGORY_IDS: Mapping[int, int] = MappingProxyType({
    3: 33,
    4: 34,
    5: 35,
    6: 36,
    7: 37,
    8: 38,
    9: 39,
    10: 40,
    11: 41,
    12: 42,
    13: 43,
    14: 44,
    15: 45,
    16: 46,
})

# Shop category ids for "playable with N people"
COUNT_CATEGORY_IDS: Mapping[int, int] = MappingProxyType({
    1: 61,
    2: 62,
    3: 63,
    4: 64,
    5: 65,
    6: 66,
    7: 67,
    8: 68,
    9: 69,
    10: 70,
})

# Declaration order breaks priority ties
KEYWORD_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(101, ("協力", "みんなで力を合わせ", "チーム戦"), 350),
    CategoryRule(115, ("謎解き", "脱出"), 320),
    CategoryRule(102, ("人狼", "正体隠匿", "推理"), 300),
    CategoryRule(112, ("トリックテイキング", "トリテ"), 260),
    CategoryRule(105, ("戦略", "重ゲー", "じっくり", "ガッツリ"), 250),
    CategoryRule(116, ("ブラフ", "心理戦", "駆け引き"), 240),
    CategoryRule(106, ("言葉", "ワード", "連想", "お絵描き"), 220),
    CategoryRule(107, ("記憶", "神経衰弱"), 210),
    CategoryRule(104, ("パーティ", "盛り上が", "大人数", "わいわい", "ワイワイ"), 200),
    CategoryRule(108, ("バランス", "アクション", "積み上げ"), 190),
    CategoryRule(117, ("知育", "学べる", "算数"), 180),
    CategoryRule(111, ("対戦", "1対1", "タイマン"), 150),
    CategoryRule(113, ("サイコロ", "ダイス"), 120),
    CategoryRule(114, ("カードゲーム",), 100),
    CategoryRule(110, ("短時間", "サクッと", "すぐ終わる", "軽め"), 30),
    CategoryRule(109, ("簡単", "かんたん", "初心者", "ルールが易しい"), 20),
)


@dataclass(frozen=True)
class CategoryConfig:
    """Immutable tables consumed by the category detector."""
    age_category_ids: Mapping[int, int] = field(default_factory=lambda: AGE_CATEGORY_IDS)
    count_category_ids: Mapping[int, int] = field(default_factory=lambda: COUNT_CATEGORY_IDS)
    keyword_rules: Tuple[CategoryRule, ...] = field(default_factory=lambda: KEYWORD_RULES)
    default_child_age: int = DEFAULT_CHILD_AGE


DEFAULT_CONFIG = CategoryConfig()


def _int_map(raw: Dict[str, Any]) -> Mapping[int, int]:
    return MappingProxyType({int(k): int(v) for k, v in raw.items()})


def parse_category_config(data: Dict[str, Any]) -> CategoryConfig:
    """Build a CategoryConfig from a JSON-shaped dict, defaulting missing tables."""
    kwargs: Dict[str, Any] = {}
    if "age_category_ids" in data:
        kwargs["age_category_ids"] = _int_map(data["age_category_ids"])
    if "count_category_ids" in data:
        kwargs["count_category_ids"] = _int_map(data["count_category_ids"])
    if "keyword_rules" in data:
        kwargs["keyword_rules"] = tuple(
            CategoryRule(
                category_id=int(r["category_id"]),
                keywords=tuple(str(k) for k in r["keywords"]),
                priority=int(r.get("priority", 0)),
            )
            for r in data["keyword_rules"]
        )
    if "default_child_age" in data:
        kwargs["default_child_age"] = int(data["default_child_age"])
    return CategoryConfig(**kwargs)


@lru_cache(maxsize=4)
def load_category_config(path: Optional[str] = None) -> CategoryConfig:
    """Load category tables from a JSON file.
    Returns the built-in tables if no path is given or the file is missing or invalid.
    """
    if not path:
        return DEFAULT_CONFIG
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_category_config(json.load(f))
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("category rules not loaded from %s: %s", path, e)
        return DEFAULT_CONFIG
