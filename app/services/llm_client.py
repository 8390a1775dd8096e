import json
import logging
import re
from typing import Any, List, Optional

from openai import AsyncOpenAI

from app.config import Settings
from app.errors import ExtractionError, GenerationError, ImprovementError
from app.models import GeneratedPlan, TestPlan
from app.services.chunking import chunk_text
from app.services.prompt import SYSTEM_PROMPT, build_generation_prompt, build_improvement_prompt

logger = logging.getLogger("app.llm")

GENERATION_FAILED = "Could not generate the test plans. Please review the document or try again."
IMPROVEMENT_FAILED = "Could not improve the test plan. Please try again."

# Older prompt revisions used these field names.
_LEGACY_PLAN_KEYS = {"userStory": "userStoryRef", "qaAnalyst": "qaAnalystName"}
_LEGACY_CASE_KEYS = {"consecutive": "sequenceNumber"}


class MalformedResponse(ValueError):
    """JSON parsed, but not in the {plan, report} shape."""


class TestPlanGateway:
    """Single-shot calls to the chat model; every failure surfaces as one domain error."""

    __test__ = False

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        if client is None:
            if not settings.openai_api_key:
                raise GenerationError("OPENAI_API_KEY not set")
            client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.request_timeout)
        self.client = client

    async def _call_llm(self, model: str, user_content: str) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    @staticmethod
    def _extract_json_text(raw: str) -> str:
        raw = (raw or "").strip()
        if not raw:
            return raw

        fence = re.search(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", raw, re.DOTALL | re.IGNORECASE)
        if fence:
            return fence.group(1).strip()

        starts = [pos for pos in (raw.find("{"), raw.find("[")) if pos != -1]
        end = max(raw.rfind("}"), raw.rfind("]"))
        if starts and end > min(starts):
            return raw[min(starts): end + 1].strip()

        return raw

    def _chunks(self, text: str) -> List[str]:
        if not text or not text.strip():
            raise ExtractionError("The documents appear to be empty or contain no extractable text.")
        if len(text) > self.settings.max_chars:
            raise ExtractionError(f"Document too large ({len(text)} chars, limit {self.settings.max_chars})")
        return chunk_text(text, self.settings.chunk_size, self.settings.chunk_overlap) or [text]

    async def generate(self, prompt_text: str, analyst_name: str, project_name: str) -> List[TestPlan]:
        analyst = (analyst_name or "").strip() or self.settings.default_analyst_name
        project = (project_name or "").strip() or self.settings.default_project_name
        chunks = self._chunks(prompt_text)
        user_prompt = build_generation_prompt(chunks, analyst, project, self.settings.max_user_stories)

        model = self.settings.model
        raw = ""
        try:
            logger.info(
                "Calling LLM for generation: model=%s chunks=%s prompt_chars=%s",
                model,
                len(chunks),
                len(user_prompt),
            )
            raw = await self._call_llm(model, user_prompt)
            data = json.loads(self._extract_json_text(raw))
            plans = [GeneratedPlan.model_validate(item).to_plan() for item in self._plan_items(data)]
        except ValueError as exc:
            logger.exception("Generation returned an invalid plan set (raw_prefix=%r)", raw[:200])
            raise GenerationError(GENERATION_FAILED, model=model) from exc
        except Exception as exc:
            logger.exception("Generation call failed: model=%s", model)
            raise GenerationError(GENERATION_FAILED, model=model) from exc

        logger.info("Generated %s plan(s): %s", len(plans), [p.identifier for p in plans])
        return plans

    async def improve(self, original_plan: TestPlan, source_text: str) -> TestPlan:
        chunks = self._chunks(source_text)
        user_prompt = build_improvement_prompt(original_plan, chunks)

        model = self.settings.model_improve
        raw = ""
        try:
            logger.info(
                "Calling LLM for improvement: model=%s plan=%s prompt_chars=%s",
                model,
                original_plan.identifier,
                len(user_prompt),
            )
            raw = await self._call_llm(model, user_prompt)
            data = json.loads(self._extract_json_text(raw))
            if not isinstance(data, dict):
                raise MalformedResponse("improvement response is not an object")
            improved = GeneratedPlan.model_validate(self._normalize_item(data)).to_plan()
        except Exception as exc:
            logger.exception(
                "Improvement failed: model=%s plan=%s (raw_prefix=%r)",
                model,
                original_plan.identifier,
                raw[:200],
            )
            raise ImprovementError(IMPROVEMENT_FAILED, model=model, plan_identifier=original_plan.identifier) from exc

        logger.info("Improved plan %s: cases=%s", improved.identifier, len(improved.test_cases))
        return improved

    def _plan_items(self, data: Any) -> List[dict]:
        if isinstance(data, dict):
            data = data.get("plans")
        if not isinstance(data, list):
            raise MalformedResponse("generation response is not an array of plans")
        return [self._normalize_item(item) for item in data]

    def _normalize_item(self, item: Any) -> dict:
        """Coerce/patch LLM quirks so validation only fails on a truly broken shape."""
        if not isinstance(item, dict) or not item.get("plan") or not item.get("report"):
            raise MalformedResponse("invalid response element: missing 'plan' or 'report'")

        plan = dict(item["plan"])
        for legacy, key in _LEGACY_PLAN_KEYS.items():
            if legacy in plan:
                plan.setdefault(key, plan.pop(legacy))

        cases = plan.get("testCases") or []
        normalized_cases = []
        for idx, case in enumerate(cases):
            c = dict(case)
            for legacy, key in _LEGACY_CASE_KEYS.items():
                if legacy in c:
                    c.setdefault(key, c.pop(legacy))
            c.setdefault("sequenceNumber", idx + 1)
            c.setdefault("description", "")
            c.setdefault("expectedResult", "")
            # The model has no notion of history.
            c.pop("changeStatus", None)
            normalized_cases.append(c)
        plan["testCases"] = normalized_cases

        return {"plan": plan, "report": item["report"]}
