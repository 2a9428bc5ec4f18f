"""Unit tests for the level-0 automated checks."""

from __future__ import annotations

from devmarket.verifiers import (
    DescriptionCheck,
    FileFormatCheck,
    FileSizeCheck,
    Level0Suite,
    MetadataCheck,
    ProductFile,
    ProductSnapshot,
    SuspiciousContentCheck,
)

GOOD_DESCRIPTION = (
    "A complete automation that extracts invoice fields with OCR and "
    "pushes them into the accounting system."
)


def _snapshot(**overrides) -> ProductSnapshot:
    data = {
        "product_id": "p-1",
        "name": "Invoice OCR pipeline",
        "description": GOOD_DESCRIPTION,
        "files": (ProductFile("pipeline.zip", 1024),),
        "metadata": {"category": "ai_agent"},
    }
    data.update(overrides)
    return ProductSnapshot(**data)


class TestFileChecks:
    def test_no_files_fails_format(self) -> None:
        assert not FileFormatCheck().run(_snapshot(files=())).passed

    def test_invalid_extension(self) -> None:
        result = FileFormatCheck().run(_snapshot(files=(ProductFile("setup.exe", 10),)))
        assert not result.passed
        assert result.details["invalid_files"] == ["setup.exe"]

    def test_extension_is_case_insensitive(self) -> None:
        assert FileFormatCheck().run(_snapshot(files=(ProductFile("README.MD", 10),))).passed

    def test_oversized_file(self) -> None:
        check = FileSizeCheck(max_file_size=100)
        result = check.run(_snapshot(files=(ProductFile("a.zip", 101), ProductFile("b.zip", 100))))
        assert not result.passed
        assert result.details["oversized_files"] == ["a.zip"]


class TestSuspiciousContent:
    def test_eval_in_text_preview(self) -> None:
        files = (ProductFile("main.py", 10, "print('ok')\nresult = eval(user_input)"),)
        result = SuspiciousContentCheck().run(_snapshot(files=files))
        assert not result.passed
        assert result.details["threats"][0]["line"] == 2

    def test_binary_archives_are_skipped(self) -> None:
        files = (ProductFile("bundle.zip", 10, "eval("),)
        assert SuspiciousContentCheck().run(_snapshot(files=files)).passed


class TestMetadata:
    def test_short_title_and_missing_category(self) -> None:
        result = MetadataCheck().run(_snapshot(name="Bot", metadata={}))
        assert not result.passed
        assert len(result.details["issues"]) == 2

    def test_description_word_count(self) -> None:
        result = DescriptionCheck().run(_snapshot(description="x" * 60))
        assert not result.passed


class TestLevel0Suite:
    def test_clean_product_scores_100(self) -> None:
        report = Level0Suite().run(_snapshot())
        assert report.passed
        assert report.score == 100
        assert set(report.to_dict()["checks"]) == set(Level0Suite().check_names)

    def test_score_is_sum_of_passed_weights(self) -> None:
        files = (ProductFile("main.py", 10, "exec(payload)"),)
        report = Level0Suite().run(_snapshot(files=files))
        assert not report.passed
        assert report.score == 70  # everything but suspicious_content (30)

    def test_custom_checks(self) -> None:
        suite = Level0Suite(checks=[MetadataCheck()])
        assert suite.check_names == ["metadata"]
        assert suite.run(_snapshot()).score == 20
