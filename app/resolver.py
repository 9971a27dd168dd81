"""Recommendation resolution cascade.

Stages are tried in a fixed order and the first one that reports success
produces the response:

1. top-selling items in the detected player-count category
2. listing of the detected keyword category
3. language-model title suggestions resolved against catalog search
4. listing of the detected age (or player-count) category
5. fixed apology asking for more details

Catalog and language-model adapters never raise for external failures; a
failed call simply leaves the stage without items.
"""
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .category_detector import CategoryDetector, DetectionResult
from .models import CatalogItem, ChatMessage
from .sampler import sample
from .title_matcher import build_query_variants, pick_best_eligible, pick_fallback_candidate
from .trace import Trace, event


PICKS_REPLY = "おすすめは「{names}」あたり！気になるのはどれ？"
NAME_DELIMITER = "」「"
FALLBACK_EMPTY_REPLY = (
    "ごめんなさい、いまご案内できる在庫が見つかりませんでした。"
    "対象年齢や人数の条件を少し広げて、もう一度聞いてもらえますか？"
)
NO_MATCH_REPLY = (
    "ごめんなさい、条件に合うゲームをうまく見つけられませんでした。"
    "遊ぶ人数、遊べる時間、好きなタイプ（協力・対戦・パーティなど）を教えてもらえたら探してみます！"
)


@dataclass(frozen=True)
class ResolverOptions:
    top_selling_days: int = 90
    top_selling_limit: int = 10
    listing_limit: int = 200
    search_limit: int = 20
    picks: int = 3
    titles_resolved: int = 3


@dataclass(frozen=True)
class ResolutionContext:
    utterance: str
    conversation: Tuple[Dict[str, str], ...]
    detection: DetectionResult


@dataclass(frozen=True)
class Outcome:
    success: bool
    items: Tuple[CatalogItem, ...] = ()
    reply: str = ""
    trace: Trace = ()


@dataclass(frozen=True)
class Resolution:
    reply: str
    items: List[CatalogItem]
    detection: DetectionResult
    trace: Trace = field(default_factory=tuple)


def picks_reply(items: Sequence[CatalogItem]) -> str:
    return PICKS_REPLY.format(names=NAME_DELIMITER.join(i.name for i in items))


def latest_user_utterance(messages: Sequence[ChatMessage]) -> str:
    for m in reversed(messages):
        if m.role == "user":
            return m.content
    return messages[-1].content if messages else ""


def _dedupe(items: Sequence[CatalogItem]) -> List[CatalogItem]:
    seen = set()
    out: List[CatalogItem] = []
    for i in items:
        if i.id not in seen:
            seen.add(i.id)
            out.append(i)
    return out


class Resolver:
    """Runs the stage cascade for one utterance.

    `catalog` needs async search / list_by_category / top_selling returning
    CatalogResult; `llm` needs an async suggest(conversation) returning a
    Suggestion. Both are expected to turn failures into empty results.
    """

    def __init__(
        self,
        catalog: Any,
        llm: Any,
        detector: Optional[CategoryDetector] = None,
        options: Optional[ResolverOptions] = None,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.llm = llm
        self.detector = detector or CategoryDetector()
        self.options = options or ResolverOptions()
        self.rng = rng
        self.stages = (
            self.top_selling_by_count,
            self.keyword_listing,
            self.language_model_titles,
            self.category_fallback,
            self.terminal_failure,
        )

    def _sample(self, pool: Sequence[CatalogItem]) -> List[CatalogItem]:
        return sample(pool, self.options.picks, self.rng)

    async def top_selling_by_count(self, ctx: ResolutionContext) -> Outcome:
        stage = "top_selling_by_count"
        det = ctx.detection
        if det.count_category_id is None:
            return Outcome(False, trace=event(stage, "skipped"))
        result = await self.catalog.top_selling(
            category_id=det.count_category_id,
            limit=self.options.top_selling_limit,
            days=self.options.top_selling_days,
        )
        pool = [i for i in result.items if i.has_categories(det.keyword_category_id, det.age_category_id)]
        picks = self._sample(pool)
        trace = event(stage, "hit" if picks else "miss", call="top_selling", call_ok=result.ok,
                      fetched=len(result.items), filtered=len(pool), picked=len(picks))
        if not picks:
            return Outcome(False, trace=trace)
        return Outcome(True, tuple(picks), picks_reply(picks), trace)

    async def keyword_listing(self, ctx: ResolutionContext) -> Outcome:
        stage = "keyword_listing"
        det = ctx.detection
        if det.keyword_category_id is None:
            return Outcome(False, trace=event(stage, "skipped"))
        result = await self.catalog.list_by_category(
            det.keyword_category_id, limit=self.options.listing_limit, offset=0,
        )
        pool = [i for i in result.items if i.has_categories(det.age_category_id, det.count_category_id)]
        picks = self._sample(pool)
        trace = event(stage, "hit" if picks else "miss", call="list_by_category", call_ok=result.ok,
                      fetched=len(result.items), filtered=len(pool), picked=len(picks))
        if not picks:
            return Outcome(False, trace=trace)
        return Outcome(True, tuple(picks), picks_reply(picks), trace)

    async def resolve_title(self, title: str) -> Tuple[Optional[CatalogItem], Trace]:
        """Search each query variant until one yields a scored eligible match.
        Falls back to the closest visible item from the first variant that had any.
        """
        trace: Trace = ()
        fallback: Optional[CatalogItem] = None
        for variant in build_query_variants(title):
            result = await self.catalog.search(variant, limit=self.options.search_limit, offset=0)
            match = pick_best_eligible(variant, result.items)
            trace += event("title_search", "match" if match else "miss", call="search",
                           call_ok=result.ok, detail=variant, fetched=len(result.items))
            if match is not None:
                return match, trace
            if fallback is None:
                fallback = pick_fallback_candidate(variant, result.items)
        return fallback, trace

    async def language_model_titles(self, ctx: ResolutionContext) -> Outcome:
        stage = "language_model"
        suggestion = await self.llm.suggest(list(ctx.conversation))
        if not suggestion.ok:
            return Outcome(False, trace=event(stage, "call_failed", call="llm", call_ok=False,
                                              detail=suggestion.error))
        if not suggestion.titles:
            if not suggestion.reply.strip():
                return Outcome(False, trace=event(stage, "empty_reply", call="llm", call_ok=True))
            return Outcome(True, (), suggestion.reply, event(stage, "chit_chat", call="llm", call_ok=True))

        trace = event(stage, "titles", call="llm", call_ok=True, titles=len(suggestion.titles))
        collected: List[CatalogItem] = []
        for title in suggestion.titles[:self.options.titles_resolved]:
            item, title_trace = await self.resolve_title(title)
            trace += title_trace
            if item is not None:
                collected.append(item)

        det = ctx.detection
        filtered = [i for i in _dedupe(collected) if i.has_categories(det.age_category_id, det.count_category_id)]
        eligible = [i for i in filtered if i.eligible]
        trace += event(stage, "resolved" if eligible else "no_eligible",
                       collected=len(collected), filtered=len(filtered), eligible=len(eligible))
        if not eligible:
            return Outcome(False, trace=trace)
        # titles without any reply text get the standard picks reply
        reply = suggestion.reply if suggestion.reply.strip() else picks_reply(eligible)
        return Outcome(True, tuple(eligible), reply, trace)

    async def category_fallback(self, ctx: ResolutionContext) -> Outcome:
        stage = "category_fallback"
        det = ctx.detection
        if det.age_category_id is None and det.count_category_id is None:
            return Outcome(False, trace=event(stage, "skipped"))
        # age takes precedence as the listed category when both are known
        if det.age_category_id is not None:
            primary, secondary = det.age_category_id, det.count_category_id
        else:
            primary, secondary = det.count_category_id, None
        result = await self.catalog.list_by_category(primary, limit=self.options.listing_limit, offset=0)
        pool = [i for i in result.items if i.has_categories(secondary)]
        picks = self._sample(pool)
        trace = event(stage, "hit" if picks else "empty", call="list_by_category", call_ok=result.ok,
                      fetched=len(result.items), filtered=len(pool), picked=len(picks))
        if not picks:
            return Outcome(True, (), FALLBACK_EMPTY_REPLY, trace)
        return Outcome(True, tuple(picks), picks_reply(picks), trace)

    async def terminal_failure(self, ctx: ResolutionContext) -> Outcome:
        return Outcome(True, (), NO_MATCH_REPLY, event("terminal_failure", "apology"))

    async def run(self, ctx: ResolutionContext) -> Resolution:
        trace: Trace = ()
        for stage in self.stages:
            outcome = await stage(ctx)
            trace += outcome.trace
            if outcome.success:
                return Resolution(outcome.reply, list(outcome.items), ctx.detection, trace)
        # terminal_failure always succeeds; kept for custom stage lists
        return Resolution(NO_MATCH_REPLY, [], ctx.detection, trace)

    async def resolve(self, messages: Sequence[ChatMessage]) -> Resolution:
        utterance = latest_user_utterance(messages)
        ctx = ResolutionContext(
            utterance=utterance,
            conversation=tuple({"role": m.role, "content": m.content} for m in messages),
            detection=self.detector.detect(utterance),
        )
        return await self.run(ctx)
