from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChangeStatus(str, Enum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    NEW = "new"
    DELETED = "deleted"


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; instances are immutable."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class TestCase(_WireModel):
    __test__ = False
    sequence_number: int = Field(..., examples=[1])
    description: str
    expected_result: str
    # Unset on plans that never went through reconciliation.
    change_status: Optional[ChangeStatus] = None


class QualityReport(_WireModel):
    functional_coverage: float = Field(..., ge=0, le=100)
    semantic_consistency: float = Field(..., ge=0, le=100)
    structural_completeness: float = Field(..., ge=0, le=100)
    hu_test_traceability: float = Field(..., ge=0, le=100)
    clarity_of_expected_results: float = Field(..., ge=0, le=100)


class TestPlan(_WireModel):
    __test__ = False
    identifier: str = Field(..., examples=["cp-hu-login-001"])
    name: str = ""
    project_name: str = ""
    user_story_ref: str = ""
    qa_analyst_name: str = ""
    test_environment_and_data: str = ""
    test_cases: List[TestCase] = []
    quality_report: Optional[QualityReport] = None


class GeneratedPlan(_WireModel):
    """One `{plan, report}` element as returned by the model."""

    plan: TestPlan
    report: QualityReport

    def to_plan(self) -> TestPlan:
        return self.plan.model_copy(update={"quality_report": self.report})


class ChangeSummary(_WireModel):
    unchanged: int = 0
    modified: int = 0
    new: int = 0
    deleted: int = 0
    untracked: int = 0


class ReconcileRequest(_WireModel):
    original: TestPlan
    candidate: TestPlan


class ReconcileResponse(_WireModel):
    plan: TestPlan
    summary: ChangeSummary


class QualityMetricResult(_WireModel):
    key: str
    name: str
    definition: str
    score: float
    threshold: float
    passes: bool


class PlanView(_WireModel):
    """A plan as shown to the UI: the plan plus its derived quality verdict."""

    plan: TestPlan
    needs_improvement: bool
    summary: ChangeSummary
    metrics: List[QualityMetricResult] = []


class SessionView(_WireModel):
    id: str
    status: str
    file_names: List[str] = []
    project_name: str = ""
    qa_analyst_name: str = ""
    plans: List[PlanView] = []
    improving_plan_ids: List[str] = []
    just_improved_plan_id: Optional[str] = None
    error: Optional[str] = None
    created_at: str
    updated_at: str
    events: List[Dict[str, str]] = []
