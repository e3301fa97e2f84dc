"""Tests for cross-run issue reconciliation."""

from bugment_core.models import Issue, ReviewResult
from bugment_core.reconcile import compare_reviews, issue_signature, issues_are_similar


def _issue(id="bug_1", line=10, path="src/a.py", description="Null dereference", severity="high", type="bug"):
    return Issue(
        id=id,
        type=type,
        severity=severity,
        title="t",
        description=description,
        location=f"{path}:{line}",
        file_path=path,
        line_number=line,
    )


def _run(issues, timestamp="2024-01-01T00:00:00+00:00", review_id="r"):
    return ReviewResult(review_id=review_id, timestamp=timestamp, commit_sha="a" * 40, issues=issues)


A = _issue(id="bug_1", line=10, description="A problem")
B = _issue(id="bug_2", line=20, description="B problem")
C = _issue(id="bug_3", line=30, description="C problem")


class TestSignature:
    def test_whitespace_runs_become_underscores(self):
        issue = _issue(description="two  words\nand\tmore")
        assert issue_signature(issue) == "bug_src/a.py:10_two_words_and_more"

    def test_description_truncated_to_100_chars(self):
        long = _issue(description="x" * 150)
        longer = _issue(description="x" * 100 + "y" * 50)
        assert issue_signature(long) == issue_signature(longer)

    def test_severity_not_part_of_signature(self):
        assert issue_signature(_issue(severity="high")) == issue_signature(_issue(severity="low"))

    def test_id_not_part_of_signature(self):
        assert issue_signature(_issue(id="bug_1")) == issue_signature(_issue(id="bug_7"))

    def test_falls_back_to_file_path(self):
        issue = Issue(id="x", type="bug", severity="low", title="t", description="d", location="", file_path="f.py")
        assert issue_signature(issue) == "bug_f.py_d"


class TestSimilarity:
    def test_same_placement_is_similar(self):
        assert issues_are_similar(_issue(description="a"), _issue(description="b"))

    def test_different_line_is_not_similar(self):
        assert not issues_are_similar(_issue(line=1), _issue(line=2))

    def test_different_type_is_not_similar(self):
        assert not issues_are_similar(_issue(type="bug"), _issue(type="security"))


class TestCompareReviews:
    def test_no_prior_runs_everything_new(self):
        comparison = compare_reviews(_run([A, B]), [])
        assert comparison.new_issues == [A, B]
        assert comparison.fixed_count == 0
        assert comparison.persistent_count == 0

    def test_self_comparison_is_all_persistent(self):
        run = _run([A, B, C])
        comparison = compare_reviews(run, [run])
        assert comparison.fixed_count == 0
        assert comparison.new_count == 0
        assert comparison.persistent_count == 3

    def test_fixed_new_and_persistent(self):
        comparison = compare_reviews(_run([B, C]), [_run([A, B])])
        assert comparison.fixed_issues == [A]
        assert comparison.new_issues == [C]
        assert comparison.persistent_issues == [B]

    def test_only_newest_prior_run_is_used(self):
        newest = _run([A], timestamp="2024-02-01T00:00:00+00:00")
        older = _run([B], timestamp="2024-01-01T00:00:00+00:00")
        comparison = compare_reviews(_run([A]), [newest, older])
        assert comparison.persistent_issues == [A]
        assert comparison.fixed_issues == []

    def test_renumbered_issue_is_persistent(self):
        previous = _run([_issue(id="bug_4")])
        current = _run([_issue(id="bug_1")])
        comparison = compare_reviews(current, [previous])
        assert comparison.persistent_count == 1
        assert comparison.new_count == 0

    def test_modified_when_description_differs_past_signature_prefix(self):
        prefix = "p" * 100
        previous = _issue(description=prefix + " old tail")
        current = _issue(description=prefix + " new tail")
        comparison = compare_reviews(_run([current]), [_run([previous])])
        assert len(comparison.modified_issues) == 1
        assert comparison.modified_issues[0].previous == previous
        assert comparison.modified_issues[0].current == current
        assert comparison.persistent_count == 0

    def test_signature_match_without_similarity_is_persistent(self):
        # Same type, location and description but the derived line differs.
        previous = Issue("bug_1", "bug", "high", "t", "d", "src/a.py:10", file_path="src/a.py", line_number=10)
        current = Issue("bug_1", "bug", "high", "t", "d", "src/a.py:10", file_path="src/a.py", line_number=None)
        comparison = compare_reviews(_run([current]), [_run([previous])])
        assert comparison.persistent_issues == [current]
        assert comparison.new_count == 0
        assert comparison.fixed_count == 0

    def test_severity_change_is_still_persistent(self):
        comparison = compare_reviews(_run([_issue(severity="low")]), [_run([_issue(severity="critical")])])
        assert comparison.persistent_count == 1
