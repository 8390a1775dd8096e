"""
Shared fixtures: plan builders and a scripted stand-in for the model gateway.
"""

import asyncio
import io
from typing import Dict, List, Optional

import pytest
from docx import Document

from app.errors import GenerationError, ImprovementError
from app.models import QualityReport, TestCase, TestPlan


def case(seq: int, description: str, expected: str, status=None) -> TestCase:
    return TestCase(sequence_number=seq, description=description, expected_result=expected, change_status=status)


def make_docx(*paragraphs: str) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def report(**overrides) -> QualityReport:
    scores = {
        "functional_coverage": 96,
        "semantic_consistency": 92,
        "structural_completeness": 90,
        "hu_test_traceability": 100,
        "clarity_of_expected_results": 97,
    }
    scores.update(overrides)
    return QualityReport(**scores)


def plan(identifier: str = "cp-hu-login-001", cases: Optional[List[TestCase]] = None, **fields) -> TestPlan:
    defaults = {
        "name": "Login",
        "project_name": "Portal",
        "user_story_ref": "HU-01: Login",
        "qa_analyst_name": "Ana",
        "test_environment_and_data": "UAT",
        "quality_report": report(),
    }
    defaults.update(fields)
    return TestPlan(identifier=identifier, test_cases=cases or [], **defaults)


class FakeGateway:
    """Returns scripted plans; `hold` keeps improve() pending until released."""

    def __init__(self, plans: Optional[List[TestPlan]] = None, improved: Optional[Dict[str, TestPlan]] = None):
        self.plans = plans or []
        self.improved = improved or {}
        self.fail_generate = False
        self.fail_improve = False
        self.hold: Optional[asyncio.Event] = None
        self.generate_calls: List[tuple] = []
        self.improve_calls: List[tuple] = []

    async def generate(self, prompt_text, analyst_name, project_name):
        self.generate_calls.append((prompt_text, analyst_name, project_name))
        if self.fail_generate:
            raise GenerationError("Could not generate the test plans.")
        return list(self.plans)

    async def improve(self, original_plan, source_text):
        self.improve_calls.append((original_plan, source_text))
        if self.hold is not None:
            await self.hold.wait()
        if self.fail_improve:
            raise ImprovementError("Could not improve the test plan.", plan_identifier=original_plan.identifier)
        return self.improved[original_plan.identifier]


@pytest.fixture
def login_original() -> TestPlan:
    return plan(
        cases=[
            case(1, "Login succeeds", "User sees dashboard"),
            case(2, "Login fails", "Error shown"),
        ]
    )


@pytest.fixture
def login_candidate() -> TestPlan:
    return plan(
        cases=[
            case(1, "Login succeeds", "User redirected to dashboard"),
            case(2, "Login with locked account", "Account-locked message shown"),
        ],
        quality_report=report(functional_coverage=99),
    )
