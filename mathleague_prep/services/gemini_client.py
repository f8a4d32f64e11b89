import os
import json
import uuid
from typing import List, Dict, Any
import logging
from datetime import datetime, timezone
import google.generativeai as genai
from time import perf_counter
from ..config import settings
from ..models import Problem
from ..rounds import RoundType
from .prompt_builder import PromptBuilder

logger = logging.getLogger("mathleague_prep")

SPRINT_CHOICE_COUNT = 4

class ProblemGenerationError(Exception):
    """Remote generation produced nothing usable."""

class InvalidProblemError(ValueError):
    pass

def _field_text(value: Any) -> str:
    # 0 is a valid answer, only a missing or blank value is not
    if value is None:
        return ""
    return str(value).strip()

class GeminiProblemGenerator:
    def __init__(self, api_key: str | None = None, model_name: str | None = None, log_dir: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        if self.api_key:
            genai.configure(api_key=self.api_key)
        self.model_name = model_name or settings.gemini_model
        self.log_dir = log_dir if log_dir is not None else settings.session_log_dir
        self.generation_config = {
            "temperature": 0.7,
            "top_p": 0.9,
            "response_mime_type": "application/json",
        }
        self.prompt_builder = PromptBuilder()

    def _append_log(self, session_id: str | None, record: Dict[str, Any]) -> None:
        if not self.log_dir or not session_id:
            return
        try:
            os.makedirs(self.log_dir, exist_ok=True)
            path = os.path.join(self.log_dir, f"session_{session_id}.jsonl")
            enriched = dict(record)
            enriched.setdefault("ts", datetime.now(timezone.utc).isoformat())
            with open(path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(enriched, ensure_ascii=False) + "\n")
        except OSError:
            logger.exception("session_log_write_failed")

    def _strip_code_fences(self, text: str) -> str:
        t = text.strip()
        if t.startswith("```"):
            parts = t.split("\n", 1)
            t = parts[1] if len(parts) == 2 else ""
            if t.endswith("```"):
                t = t[:-3]
        return t.strip()

    def _load_payload(self, text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError:
            pass
        # Model sometimes wraps the array in prose
        first = text.find("[")
        last = text.rfind("]")
        if first != -1 and last > first:
            try:
                return json.loads(text[first:last + 1])
            except ValueError:
                pass
        raise ProblemGenerationError("payload_unparseable")

    def _payload_items(self, obj: Any) -> List[Any]:
        if isinstance(obj, list):
            return obj
        if isinstance(obj, dict):
            if isinstance(obj.get("problems"), list):
                return obj["problems"]
            if obj.get("prompt"):
                return [obj]
        return []

    def _response_text(self, response: Any) -> str:
        try:
            raw_text = (response.text or "").strip()
        except ValueError:
            # .text raises when the candidate was blocked or has no parts
            raw_text = ""
        if not raw_text and getattr(response, "candidates", None):
            parts = response.candidates[0].content.parts
            raw_text = "".join(getattr(p, "text", "") for p in parts)
        return raw_text

    def to_problem(self, item: Any, round_type: RoundType, difficulty: int) -> Problem:
        if not isinstance(item, dict):
            raise InvalidProblemError("item_not_object")
        prompt = _field_text(item.get("prompt")) or _field_text(item.get("text"))
        answer = _field_text(item.get("answer"))
        if not prompt or not answer:
            raise InvalidProblemError("missing_required_fields")
        choices = item.get("choices")
        if round_type == RoundType.SPRINT:
            if not isinstance(choices, list) or len(choices) != SPRINT_CHOICE_COUNT:
                raise InvalidProblemError("sprint_requires_four_choices")
            choices = tuple(str(c) for c in choices)
        else:
            choices = None
        item_difficulty = item.get("difficulty")
        if not isinstance(item_difficulty, int) or not 1 <= item_difficulty <= 5:
            item_difficulty = difficulty
        tags = item.get("tags")
        if not isinstance(tags, list) or not tags:
            tags = ["general"]
        return Problem(
            id=str(uuid.uuid4()),
            round_type=round_type,
            prompt_text=prompt,
            canonical_answer=answer,
            choices=choices,
            difficulty=item_difficulty,
            explanation=str(item.get("explanation") or "Solution explanation not provided"),
            tags=frozenset(str(t) for t in tags),
        )

    def generate(self, round_type: RoundType, difficulty: int, grade_level: int, count: int, topics: List[str] | None = None, session_id: str | None = None) -> List[Problem]:
        """Ask Gemini for `count` problems.

        Items failing validation are dropped, so the result may be shorter than
        `count`. Raises ProblemGenerationError when the call itself fails or
        nothing valid came back.
        """
        if not self.api_key:
            raise ProblemGenerationError("no_api_key")
        prompt = self.prompt_builder.build(round_type=round_type, difficulty=difficulty, grade_level=grade_level, count=count, topics=topics)
        self._append_log(session_id, {"event": "prompt", "round_type": round_type.value, "difficulty": difficulty, "prompt": prompt})
        logger.debug({"event": "gemini_request", "model": self.model_name, "round_type": round_type.value, "count": count})
        try:
            model = genai.GenerativeModel(self.model_name, generation_config=self.generation_config)
            t0 = perf_counter()
            response = model.generate_content(prompt)
            latency_ms = int((perf_counter() - t0) * 1000)
            raw_text = self._response_text(response)
        except Exception as exc:
            raise ProblemGenerationError(f"gemini_call_failed: {exc}") from exc
        cleaned = self._strip_code_fences(raw_text)
        logger.debug({"event": "gemini_response", "preview": cleaned[:200], "latency_ms": latency_ms})
        items = self._payload_items(self._load_payload(cleaned))
        if not items:
            raise ProblemGenerationError("payload_not_list")
        problems: List[Problem] = []
        seen_prompts: set[str] = set()
        for item in items[:count]:
            try:
                problem = self.to_problem(item, round_type, difficulty)
            except InvalidProblemError as exc:
                logger.warning({"event": "generated_problem_rejected", "round_type": round_type.value, "reason": str(exc)})
                continue
            norm = problem.prompt_text.strip().lower()
            if norm in seen_prompts:
                continue
            seen_prompts.add(norm)
            problems.append(problem)
        self._append_log(session_id, {"event": "generated", "round_type": round_type.value, "count": len(problems), "latency_ms": latency_ms})
        if not problems:
            raise ProblemGenerationError("parsed_empty")
        return problems
