import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openai import OpenAI, OpenAIError
from starlette.concurrency import run_in_threadpool

from .config import Settings


logger = logging.getLogger(__name__)

MAX_TITLES = 5


def _load_system_prompt(base: str) -> str:
    path = os.path.join(base, "system_concierge.txt")
    try:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
    except OSError as e:
        logger.warning("system prompt not loaded from %s: %s", path, e)
    return (
        "あなたはボードゲームカフェの店員です。日本語でカジュアルに答えてください。"
        "お客さんの条件（人数・年齢・時間・好きな雰囲気）に合うボードゲームを最大5つまで提案してください。"
        "雑談や質問への回答だけで済む場合は titles を空配列にしてください。"
        '必ず次のJSONだけを返してください: {"reply": "お客さんへの返答", "titles": ["ゲーム名", ...]}'
    )


@dataclass(frozen=True)
class Suggestion:
    """Reply text and suggested titles from the language model.
    ok=False means the call itself failed and reply is empty.
    """
    ok: bool
    reply: str = ""
    titles: List[str] = field(default_factory=list)
    structured: bool = False
    error: Optional[str] = None


def extract_first_object(text: str) -> Optional[str]:
    """Return the first balanced {...} span in text, ignoring braces inside strings."""
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`").strip()
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    return cleaned.strip()


def _load_object(text: str) -> Tuple[Optional[Dict[str, Any]], str]:
    """Parse the object in text; also return whatever text surrounds it."""
    try:
        data = json.loads(_strip_code_fence(text))
        if isinstance(data, dict):
            return data, ""
    except ValueError:
        pass
    block = extract_first_object(text)
    if not block:
        return None, text
    try:
        data = json.loads(block)
    except ValueError:
        return None, text
    if not isinstance(data, dict):
        return None, text
    return data, text.replace(block, " ", 1).strip()


def _clean_titles(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    titles: List[str] = []
    for t in raw:
        if isinstance(t, str) and t.strip():
            titles.append(t.strip())
    return titles[:MAX_TITLES]


def parse_suggestion(raw: Any) -> Suggestion:
    """Read {"reply", "titles"} from a structured payload or from free text.
    Text without a usable object becomes the reply, as is, with no titles.
    An object without a reply keeps only the text around it (often nothing).
    """
    if isinstance(raw, dict):
        data: Optional[Dict[str, Any]] = raw
        rest = ""
    else:
        text = "" if raw is None else str(raw)
        data, rest = _load_object(text)
    if data is None:
        return Suggestion(ok=True, reply=rest, titles=[])
    reply = data.get("reply")
    if not isinstance(reply, str) or not reply.strip():
        reply = rest
    return Suggestion(ok=True, reply=reply, titles=_clean_titles(data.get("titles")), structured=True)


class LLMClient:
    """OpenAI chat completion wrapper returning a parsed Suggestion."""

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self.system_prompt = _load_system_prompt(settings.prompt_base)
        self._client = client

    def _get_client(self) -> Optional[OpenAI]:
        if self._client is None and self.settings.openai_api_key:
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.openai_timeout,
            )
        return self._client

    def build_messages(self, conversation: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.system_prompt}]
        for m in conversation:
            role = m.get("role")
            if role in {"user", "assistant", "system"}:
                messages.append({"role": role, "content": m.get("content", "")})
        return messages

    def suggest_sync(self, conversation: Sequence[Dict[str, str]]) -> Suggestion:
        client = self._get_client()
        if client is None:
            return Suggestion(ok=False, error="missing_api_key")
        try:
            resp = client.chat.completions.create(
                model=self.settings.openai_model,
                messages=self.build_messages(conversation),
                temperature=0.7,
            )
        except OpenAIError as e:
            logger.warning("language model call failed: %s", e)
            return Suggestion(ok=False, error=type(e).__name__)
        txt = (resp.choices[0].message.content or "") if resp.choices else ""
        if not txt.strip():
            return Suggestion(ok=False, error="empty_output")
        return parse_suggestion(txt)

    async def suggest(self, conversation: Sequence[Dict[str, str]]) -> Suggestion:
        return await run_in_threadpool(self.suggest_sync, conversation)
