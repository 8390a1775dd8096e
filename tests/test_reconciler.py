"""
Tests for plan reconciliation.

Pure in-memory: no model, no I/O.
"""

from collections import Counter

from app.models import ChangeStatus, TestPlan
from app.services.reconciler import active_cases, reconcile, summarize
from conftest import case, plan, report

U, M, N, D = ChangeStatus.UNCHANGED, ChangeStatus.MODIFIED, ChangeStatus.NEW, ChangeStatus.DELETED


def statuses(result: TestPlan):
    return [(tc.sequence_number, tc.description, tc.change_status) for tc in result.test_cases]


class TestScenario:

    def test_login_revision(self, login_original, login_candidate):
        result = reconcile(login_original, login_candidate)

        assert statuses(result) == [
            (1, "Login succeeds", M),
            (2, "Login with locked account", N),
            (2, "Login fails", D),
        ]
        assert result.test_cases[0].expected_result == "User redirected to dashboard"
        assert result.test_cases[2].expected_result == "Error shown"

    def test_scalar_fields_come_from_candidate(self, login_original, login_candidate):
        candidate = login_candidate.model_copy(update={"name": "Login v2", "identifier": "cp-hu-login-002"})
        result = reconcile(login_original, candidate)

        assert result.name == "Login v2"
        assert result.identifier == "cp-hu-login-002"
        assert result.quality_report == report(functional_coverage=99)


class TestPasses:

    def test_identity_is_all_unchanged_in_order(self, login_original):
        result = reconcile(login_original, login_original)

        assert [tc.change_status for tc in result.test_cases] == [U, U]
        assert [tc.description for tc in result.test_cases] == ["Login succeeds", "Login fails"]

    def test_whitespace_is_ignored_but_preserved(self):
        original = plan(cases=[case(1, "  Open cart ", "Cart shown\n")])
        candidate = plan(cases=[case(1, "Open cart", "  Cart shown")])

        result = reconcile(original, candidate)

        assert result.test_cases[0].change_status == U
        assert result.test_cases[0].expected_result == "  Cart shown"

    def test_greedy_first_match_on_unchanged(self):
        original = plan(cases=[case(1, "A", "X"), case(2, "A", "Y")])
        candidate = plan(cases=[case(1, "A", "X")])

        result = reconcile(original, candidate)

        assert [(tc.expected_result, tc.change_status) for tc in result.test_cases] == [("X", U), ("Y", D)]

    def test_exact_match_wins_over_earlier_description_match(self):
        # The candidate would claim "A/X" in the modified pass, but "A/Y" is exact.
        original = plan(cases=[case(1, "A", "X"), case(2, "A", "Y")])
        candidate = plan(cases=[case(1, "A", "Y")])

        result = reconcile(original, candidate)

        assert statuses(result) == [(1, "A", U), (1, "A", D)]
        assert result.test_cases[1].expected_result == "X"

    def test_unchanged_pass_runs_before_modified_pass(self):
        original = plan(cases=[case(1, "A", "X")])
        candidate = plan(cases=[case(1, "A", "changed"), case(2, "A", "X")])

        result = reconcile(original, candidate)

        assert statuses(result) == [(1, "A", N), (2, "A", U)]

    def test_modified_vs_new(self):
        original = plan(cases=[case(1, "Search by name", "Results listed")])
        candidate = plan(
            cases=[
                case(1, "Search by name", "Results listed within 2s"),
                case(2, "Search by tag", "Tagged results listed"),
            ]
        )

        result = reconcile(original, candidate)

        assert statuses(result) == [(1, "Search by name", M), (2, "Search by tag", N)]

    def test_changed_description_is_new_plus_deleted(self):
        original = plan(cases=[case(1, "Log in", "Dashboard")])
        candidate = plan(cases=[case(1, "Log in with SSO", "Dashboard")])

        result = reconcile(original, candidate)

        assert sorted(tc.change_status.value for tc in result.test_cases) == ["deleted", "new"]

    def test_duplicate_originals_later_one_deleted(self):
        original = plan(cases=[case(1, "A", "X"), case(2, "A", "X")])
        candidate = plan(cases=[case(5, "A", "X")])

        result = reconcile(original, candidate)

        assert statuses(result) == [(2, "A", D), (5, "A", U)]


class TestEdgeCases:

    def test_both_empty(self):
        result = reconcile(plan(), plan())
        assert result.test_cases == []

    def test_empty_original_all_new(self):
        candidate = plan(cases=[case(1, "A", "X"), case(2, "B", "Y")])
        result = reconcile(plan(), candidate)
        assert [tc.change_status for tc in result.test_cases] == [N, N]

    def test_empty_candidate_all_deleted(self, login_original):
        result = reconcile(login_original, plan())
        assert [tc.change_status for tc in result.test_cases] == [D, D]
        assert [tc.sequence_number for tc in result.test_cases] == [1, 2]

    def test_sorted_by_sequence_without_renumbering(self):
        original = plan(cases=[case(3, "C", "Z"), case(1, "A", "X")])
        candidate = plan(cases=[case(2, "B", "Y"), case(1, "A", "X")])

        result = reconcile(original, candidate)

        assert [tc.sequence_number for tc in result.test_cases] == [1, 2, 3]

    def test_equal_sequence_numbers_keep_pass_order(self):
        original = plan(cases=[case(1, "Old", "X"), case(2, "Same", "Y")])
        candidate = plan(cases=[case(1, "Fresh", "Z"), case(2, "Same", "Y")])

        result = reconcile(original, candidate)

        assert statuses(result) == [(1, "Fresh", N), (1, "Old", D), (2, "Same", U)]

    def test_inputs_are_not_mutated(self, login_original, login_candidate):
        before_original = login_original.model_dump()
        before_candidate = login_candidate.model_dump()

        first = reconcile(login_original, login_candidate)
        second = reconcile(login_original, login_candidate)

        assert login_original.model_dump() == before_original
        assert login_candidate.model_dump() == before_candidate
        assert all(tc.change_status is None for tc in login_original.test_cases)
        assert first == second

    def test_previous_tags_are_replaced(self):
        original = plan(cases=[case(1, "A", "X", status=N)])
        candidate = plan(cases=[case(1, "A", "X", status=M)])

        result = reconcile(original, candidate)

        assert result.test_cases[0].change_status == U


class TestCounts:

    def test_partition_counts(self):
        original = plan(
            cases=[case(1, "A", "X"), case(2, "B", "Y"), case(3, "C", "Z"), case(4, "A", "X"), case(5, "D", "W")]
        )
        candidate = plan(
            cases=[case(1, "A", "X"), case(2, "B", "Y2"), case(3, "E", "V"), case(4, "A", "X2"), case(6, "F", "U")]
        )

        result = reconcile(original, candidate)
        counts = Counter(tc.change_status for tc in result.test_cases)

        assert counts[U] + counts[M] + counts[D] == len(original.test_cases)
        assert counts[U] + counts[M] + counts[N] == len(candidate.test_cases)
        assert len(result.test_cases) == sum(counts.values())
        assert counts == Counter({U: 1, M: 2, N: 2, D: 2})

    def test_summary_and_active_cases(self, login_original, login_candidate):
        result = reconcile(login_original, login_candidate)

        summary = summarize(result)

        assert (summary.unchanged, summary.modified, summary.new, summary.deleted) == (0, 1, 1, 1)
        assert summary.untracked == 0
        assert [tc.description for tc in active_cases(result)] == ["Login succeeds", "Login with locked account"]

    def test_summary_of_fresh_plan_is_untracked(self, login_original):
        assert summarize(login_original).untracked == 2
