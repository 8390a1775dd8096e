import json
from textwrap import dedent
from typing import List

from app.models import TestPlan

PLAN_SCHEMA = dedent(
    """
    {
      "plan": {
        "identifier": "cp-hu-<shortname>-001",
        "name": "",
        "projectName": "",
        "userStoryRef": "HU-01: <title>",
        "qaAnalystName": "",
        "testEnvironmentAndData": "",
        "testCases": [
          {"sequenceNumber": 1, "description": "", "expectedResult": ""}
        ]
      },
      "report": {
        "functionalCoverage": 0,
        "semanticConsistency": 0,
        "structuralCompleteness": 0,
        "huTestTraceability": 0,
        "clarityOfExpectedResults": 0
      }
    }
    """
).strip()

QUALITY_RUBRIC = dedent(
    """
    QUALITY METRICS (score each from 0 to 100, be objective):
    1. functionalCoverage: share of the explicit and implicit acceptance criteria covered by the test cases. (Threshold: >= 95)
    2. semanticConsistency: alignment of terminology (variables, roles, actions) between test cases and the user story. (Threshold: >= 90)
    3. structuralCompleteness: share of the obvious flows (success, failure, alternate) covered. (Threshold: >= 85)
    4. huTestTraceability: every test case traces clearly to part of the story, with no redundant or missing cases. (Threshold: 100)
    5. clarityOfExpectedResults: share of expected results that are clear, specific and verifiable. (Threshold: >= 95)
    """
).strip()

SYSTEM_PROMPT = dedent(
    """
    You are a senior Quality Assurance engineer. You write manual test plans for user stories
    and grade your own work against a fixed quality rubric.

    Return ONLY valid JSON. No prose. No explanations. No markdown.
    Write test plans in the same language as the source user stories.
    sequenceNumber values start at 1 and increase by 1 within each plan.
    """
).strip()


def build_user_prompt(chunks: List[str]) -> str:
    numbered = "\n\n".join(f"[CHUNK {i + 1}]\n{c}" for i, c in enumerate(chunks))
    return f"Source:\n{numbered}"


def build_generation_prompt(chunks: List[str], analyst_name: str, project_name: str, max_stories: int) -> str:
    return dedent(
        """
        Analyse the text below. It may contain one or several user stories (at most {max_stories}).

        --- USER STORY TEXT ---
        {source}
        -----------------------

        The project for these tests is: "{project}".
        The QA analyst for these test plans is: "{analyst}".

        For EACH user story you identify:

        PHASE 1: TEST PLAN
        1. Narrative coherence: tests answer the acceptance criteria and functional descriptions directly.
        2. Structural completeness: cover positive, negative, alternate and error flows, including HTTP status
           codes named in the story (for example 502 Bad Gateway).
        3. Traceability: clear correspondence between the story and its tests.
        4. Technical consistency: correct use of the parameters and fields the story defines.
        5. Performance: if the story implies load-sensitive operations (listings, bulk processing), add a basic
           performance case with a simulated load (for example more than 100 items).
        projectName must be "{project}" and qaAnalystName must be "{analyst}". testEnvironmentAndData
        describes the environment, data and preconditions the tests need.

        PHASE 2: QUALITY ANALYSIS
        {rubric}

        Return a JSON object {{"plans": [...]}} where each element follows this schema:
        {schema}
        """
    ).strip().format(
        max_stories=max_stories,
        source=build_user_prompt(chunks),
        project=project_name,
        analyst=analyst_name,
        rubric=QUALITY_RUBRIC,
        schema=PLAN_SCHEMA,
    )


def clean_plan_payload(plan: TestPlan) -> str:
    """The plan as sent back to the model: no change-status bookkeeping."""
    data = plan.to_wire()
    for case in data.get("testCases", []):
        case.pop("changeStatus", None)
    return json.dumps(data, indent=2, ensure_ascii=False)


def build_improvement_prompt(plan: TestPlan, chunks: List[str]) -> str:
    return dedent(
        """
        A test plan was generated for a user story, but its quality report shows it misses some thresholds.

        --- ORIGINAL USER STORY ---
        {source}
        ---------------------------

        --- TEST PLAN TO IMPROVE (INCLUDES ITS QUALITY REPORT) ---
        {plan}
        ----------------------------------------------------------

        Analyse the plan, find its weaknesses from its own quality report and the user story, and produce a
        NEW, IMPROVED version. Keep the identifier, the QA analyst name and the project name unchanged.

        GOALS:
        1. Close gaps: add, remove or modify test cases so every quality metric clears its threshold.
        2. Keep what works: leave robust, effective test cases exactly as they are.
        3. Refine details: sharpen descriptions and expected results; cover specific HTTP error codes such as
           502 Bad Gateway where relevant, and a load case (more than 100 items) if the story suggests it.
        4. Complete testEnvironmentAndData so it is clear and useful for a QA analyst.
        5. Re-grade: produce a NEW quality report for the improved plan.

        {rubric}

        Return a single JSON object following this schema:
        {schema}
        """
    ).strip().format(
        source=build_user_prompt(chunks),
        plan=clean_plan_payload(plan),
        rubric=QUALITY_RUBRIC,
        schema=PLAN_SCHEMA,
    )
