"""Tests for the review data block embedded in review bodies."""

import json

from bugment_core.formatter import SIGNATURE, build_review_body
from bugment_core.models import Issue, ReviewResult
from bugment_store.codec import embed_review_data, extract_review_data, is_bugment_review


def _result(description="Plain text."):
    issue = Issue(
        id="bug_1",
        type="bug",
        severity="high",
        title="t",
        description=description,
        location="src/a.py:3",
        file_path="src/a.py",
        line_number=3,
        start_line=3,
        end_line=3,
        fix_prompt="Fix it.",
    )
    return ReviewResult(
        review_id="pr1_abcdef01_123456",
        timestamp="2024-05-01T12:00:00+00:00",
        commit_sha="abcdef0123",
        summary=["One item."],
        issues=[issue],
    )


class TestEmbed:
    def test_block_shape(self):
        block = embed_review_data(_result())
        assert block.startswith("<!-- REVIEW_DATA:\n```json\n")
        assert block.endswith("\n```\n-->")

    def test_camel_case_keys(self):
        block = embed_review_data(_result())
        payload = json.loads(block.split("```json\n", 1)[1].rsplit("\n```", 1)[0])
        assert payload["reviewId"] == "pr1_abcdef01_123456"
        assert payload["totalIssues"] == 1
        assert payload["issues"][0]["filePath"] == "src/a.py"
        assert "suggestion" not in payload["issues"][0]

    def test_comment_terminator_and_backticks_escaped(self):
        block = embed_review_data(_result("Use `x` --> y\n```py\ncode\n```"))
        inner = block[len("<!-- ") : -len("-->")]
        assert "-->" not in inner
        assert inner.count("```") == 2  # only the wrapping fence

    def test_non_ascii_kept_readable(self):
        assert "未检查返回值" in embed_review_data(_result("未检查返回值"))


class TestExtract:
    def test_recovers_result(self):
        original = _result()
        recovered = extract_review_data(f"Some review\n\n{embed_review_data(original)}\n\nfooter")
        assert recovered == original

    def test_recovers_escaped_text(self):
        original = _result("Use `x` --> y\n```py\ncode\n```")
        assert extract_review_data(embed_review_data(original)) == original

    def test_recovers_from_full_review_body(self):
        original = _result()
        body = build_review_body(original, review_data=embed_review_data(original))
        assert extract_review_data(body) == original

    def test_no_block(self):
        assert extract_review_data("LGTM") is None
        assert extract_review_data(None) is None

    def test_malformed_json(self, caplog):
        body = "<!-- REVIEW_DATA:\n```json\n{not json\n```\n-->"
        assert extract_review_data(body) is None
        assert "malformed" in caplog.text

    def test_non_object_payload(self):
        assert extract_review_data("<!-- REVIEW_DATA:\n```json\n[1, 2]\n```\n-->") is None

    def test_legacy_payload(self):
        body = (
            "<!-- REVIEW_DATA:\n```json\n"
            '{"reviewId": "r", "timestamp": "t", "commitSha": "c", "summary": "Old summary",'
            ' "issues": [{"id": "bug_1", "type": "bug", "severity": "major", "title": "x",'
            ' "description": "d", "location": "a.py:1"}]}'
            "\n```\n-->"
        )
        result = extract_review_data(body)
        assert result.summary == ["Old summary"]
        assert result.issues[0].severity == "high"


class TestIsBugmentReview:
    def test_signature(self):
        assert is_bugment_review(f"text\n\n{SIGNATURE}")

    def test_title(self):
        assert is_bugment_review("## Bugment Code Review\n\nbody")

    def test_data_block_alone(self):
        assert is_bugment_review("<!-- REVIEW_DATA:\n```json\n{}\n```\n-->")

    def test_other_reviews(self):
        assert not is_bugment_review("LGTM, ship it")
        assert not is_bugment_review(None)
