import json
import logging
import time
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple


logger = logging.getLogger("app.trace")


@dataclass(frozen=True)
class TraceEvent:
    """One step of a resolution: which stage ran and what came of it."""
    stage: str
    outcome: str
    counts: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    call: Optional[str] = None
    call_ok: Optional[bool] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "counts":
                value = dict(value)
            if value is None or value == {}:
                continue
            out[f.name] = value
        return out


Trace = Tuple[TraceEvent, ...]


def event(stage: str, outcome: str, call: Optional[str] = None, call_ok: Optional[bool] = None,
          detail: Optional[str] = None, **counts: int) -> Trace:
    return (TraceEvent(stage=stage, outcome=outcome, counts=MappingProxyType(dict(counts)),
                       call=call, call_ok=call_ok, detail=detail),)


def trace_to_dicts(trace: Iterable[TraceEvent]) -> list:
    return [e.to_dict() for e in trace]


def log_resolution(
    trace: Sequence[TraceEvent],
    detection: Dict[str, Any],
    item_ids: Sequence[Any],
    reply_len: int,
) -> None:
    """Emit one JSON line per resolved chat turn for the observability sink."""
    record = {
        "ts": int(time.time() * 1000),
        "detection": detection,
        "stages": trace_to_dicts(trace),
        "final_stage": trace[-1].stage if trace else None,
        "items": list(item_ids),
        "reply_len": reply_len,
    }
    logger.info(json.dumps(record, ensure_ascii=False, default=str))
