"""
Plan reconciliation: merge an original test plan with an improved candidate.

Test cases carry no stable identifiers, so the two lists are matched on text.
Four ordered passes run over a shrinking pool of still-unmatched originals:

1. unchanged: trimmed description AND trimmed expected result equal
2. modified:  trimmed description equal, expected result differs
3. new:       candidate cases left over after passes 1 and 2
4. deleted:   original cases never matched

Each pass claims the earliest remaining original, so duplicates resolve
greedily in first-seen order. The merged list is then stable-sorted by
sequence number without renumbering; duplicate numbers are kept as-is.

Pure and synchronous: inputs are never mutated and nothing is shared, so the
original plan remains a valid baseline for later improvement requests.
"""

import logging
from typing import Callable, List, Set

from app.models import ChangeStatus, ChangeSummary, TestCase, TestPlan

logger = logging.getLogger("app.reconciler")

Matcher = Callable[[TestCase, TestCase], bool]


def _same_description(original: TestCase, candidate: TestCase) -> bool:
    return original.description.strip() == candidate.description.strip()


def _same_case(original: TestCase, candidate: TestCase) -> bool:
    return (
        _same_description(original, candidate)
        and original.expected_result.strip() == candidate.expected_result.strip()
    )


def _tag(case: TestCase, status: ChangeStatus) -> TestCase:
    return case.model_copy(update={"change_status": status})


def _claim_matches(
    candidates: List[TestCase],
    available: List[TestCase],
    processed: Set[int],
    matches: Matcher,
    status: ChangeStatus,
) -> List[TestCase]:
    """Tag every unprocessed candidate that claims a remaining original.

    `available` and `processed` are updated in place; they are local to one
    reconcile call.
    """
    tagged = []
    for idx, candidate in enumerate(candidates):
        if idx in processed:
            continue
        hit = next((pos for pos, original in enumerate(available) if matches(original, candidate)), None)
        if hit is None:
            continue
        del available[hit]
        processed.add(idx)
        tagged.append(_tag(candidate, status))
    return tagged


def reconcile(original: TestPlan, candidate: TestPlan) -> TestPlan:
    """Return `candidate` with its test cases merged against `original`'s.

    Every scalar field (identifier, name, quality report, ...) comes from
    the candidate. Every input case appears exactly once in the output:
    matched pairs as the candidate case, unmatched originals as `deleted`.
    """
    available = list(original.test_cases)
    processed: Set[int] = set()
    candidates = candidate.test_cases

    unchanged = _claim_matches(candidates, available, processed, _same_case, ChangeStatus.UNCHANGED)
    modified = _claim_matches(candidates, available, processed, _same_description, ChangeStatus.MODIFIED)
    new = [_tag(case, ChangeStatus.NEW) for idx, case in enumerate(candidates) if idx not in processed]
    deleted = [_tag(case, ChangeStatus.DELETED) for case in available]

    # sorted() is stable: ties keep pass order.
    merged = sorted(unchanged + modified + new + deleted, key=lambda case: case.sequence_number)

    logger.info(
        "Reconciled plan %s: unchanged=%s modified=%s new=%s deleted=%s",
        candidate.identifier,
        len(unchanged),
        len(modified),
        len(new),
        len(deleted),
    )
    return candidate.model_copy(update={"test_cases": merged})


def summarize(plan: TestPlan) -> ChangeSummary:
    counts = {status.value: 0 for status in ChangeStatus}
    untracked = 0
    for case in plan.test_cases:
        if case.change_status is None:
            untracked += 1
        else:
            counts[case.change_status.value] += 1
    return ChangeSummary(untracked=untracked, **counts)


def active_cases(plan: TestPlan) -> List[TestCase]:
    """Cases still part of the plan; `deleted` ones are only kept for display."""
    return [case for case in plan.test_cases if case.change_status != ChangeStatus.DELETED]
