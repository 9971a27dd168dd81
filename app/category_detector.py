import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

from .category_rules import AGE_MAX, AGE_MIN, DEFAULT_CONFIG, CategoryConfig


# 1-2 digit age followed by an age unit; a preceding digit means a longer number
AGE_PATTERN = re.compile(r"(?<![0-9０-９])([0-9０-９]{1,2})\s*(?:才|歳|さい)")
CHILD_WORDS = ("子供", "子ども", "こども", "キッズ", "子連れ", "幼児", "園児", "小学生")
# Only 1..10 people; "14人" and "0人" must not match, nor words like "名作"
COUNT_PATTERN = re.compile(r"(?<![0-9０-９])(10|１０|[1-9１-９])\s*(?:人|名(?![作人所物曲店前]))")


@dataclass(frozen=True)
class DetectionResult:
    age_category_id: Optional[int] = None
    count_category_id: Optional[int] = None
    keyword_category_id: Optional[int] = None

    @property
    def empty(self) -> bool:
        return (
            self.age_category_id is None
            and self.count_category_id is None
            and self.keyword_category_id is None
        )


def _to_int(digits: str) -> int:
    # NFKC folds full-width digits to ASCII
    return int(unicodedata.normalize("NFKC", digits))


class CategoryDetector:
    """Derive age, player-count and keyword categories from an utterance.
    The three detections are independent; any combination may be present.
    """

    def __init__(self, config: CategoryConfig = DEFAULT_CONFIG):
        self.config = config

    def detect_age(self, text: str) -> Optional[int]:
        t = text or ""
        m = AGE_PATTERN.search(t)
        if m:
            age = min(max(_to_int(m.group(1)), AGE_MIN), AGE_MAX)
            return self.config.age_category_ids.get(age)
        if any(w in t for w in CHILD_WORDS):
            return self.config.age_category_ids.get(self.config.default_child_age)
        return None

    def detect_count(self, text: str) -> Optional[int]:
        m = COUNT_PATTERN.search(text or "")
        if not m:
            return None
        return self.config.count_category_ids.get(_to_int(m.group(1)))

    def detect_keyword(self, text: str) -> Optional[int]:
        t = text or ""
        best = None
        for rule in self.config.keyword_rules:
            if not any(k and k in t for k in rule.keywords):
                continue
            # strict comparison keeps the earlier rule on ties
            if best is None or rule.priority > best.priority:
                best = rule
        return best.category_id if best else None

    def detect(self, text: str) -> DetectionResult:
        return DetectionResult(
            age_category_id=self.detect_age(text),
            count_category_id=self.detect_count(text),
            keyword_category_id=self.detect_keyword(text),
        )


def detect(text: str, config: CategoryConfig = DEFAULT_CONFIG) -> DetectionResult:
    return CategoryDetector(config).detect(text)
