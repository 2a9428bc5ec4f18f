"""Level-0 automated product checks.

Free, synchronous checks run when a seller requests a level-0 verification:

    - FileFormatCheck:        every file has an allowed extension
    - FileSizeCheck:          no file exceeds the per-file size limit
    - SuspiciousContentCheck: text previews contain no eval/exec/script patterns
    - MetadataCheck:          title, description and category are present
    - DescriptionCheck:       the description is long enough to be useful

Each check is weighted; the suite score is the sum of the weights of the checks
that passed (0-100).
"""

from __future__ import annotations

import re

from devmarket.domain.verifier_protocol import CheckResult, ProductSnapshot

ALLOWED_EXTENSIONS = (
    ".zip", ".tar", ".gz", ".rar",
    ".json", ".yaml", ".yml",
    ".js", ".ts", ".jsx", ".tsx",
    ".py", ".rb", ".go", ".java",
    ".md", ".txt", ".pdf",
    ".ipynb", ".csv",
)

TEXT_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".py", ".rb", ".go", ".java",
    ".txt", ".md", ".json", ".yaml", ".yml",
)

MAX_FILE_SIZE = 500 * 1024 * 1024  # 500 MB
MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 50
MIN_DESCRIPTION_WORDS = 10

SUSPICIOUS_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"eval\s*\(",
        r"exec\s*\(",
        r"<script[^>]*>",
        r"document\.write",
        r"innerHTML\s*=",
        r"dangerouslySetInnerHTML",
        r"system\s*\(",
        r"shell_exec",
        r"passthru",
    )
)


class FileFormatCheck:
    name = "file_format"
    weight = 25

    def run(self, product: ProductSnapshot) -> CheckResult:
        if not product.files:
            return CheckResult(self.name, False, "No files uploaded", {"invalid_files": []})

        invalid = [f.name for f in product.files if not f.name.lower().endswith(ALLOWED_EXTENSIONS)]
        return CheckResult(
            self.name,
            not invalid,
            f"Invalid file formats: {', '.join(invalid)}" if invalid else "All files have valid formats",
            {"total_files": len(product.files), "invalid_files": invalid},
        )


class FileSizeCheck:
    name = "file_size"
    weight = 15

    def __init__(self, max_file_size: int = MAX_FILE_SIZE) -> None:
        self._max = max_file_size

    def run(self, product: ProductSnapshot) -> CheckResult:
        oversized = [f.name for f in product.files if f.size > self._max]
        total = sum(f.size for f in product.files)
        return CheckResult(
            self.name,
            not oversized,
            f"{len(oversized)} file(s) exceed size limit" if oversized else "All files within size limits",
            {"total_size": total, "max_file_size": self._max, "oversized_files": oversized},
        )


class SuspiciousContentCheck:
    """Pattern scan over text file previews.

    Only a basic screen; binary archives are skipped.
    """

    name = "suspicious_content"
    weight = 30

    def run(self, product: ProductSnapshot) -> CheckResult:
        threats: list[dict] = []
        for f in product.files:
            if not f.name.lower().endswith(TEXT_EXTENSIONS) or not f.content_preview:
                continue
            for line_no, line in enumerate(f.content_preview.splitlines(), start=1):
                for pattern in SUSPICIOUS_PATTERNS:
                    if pattern.search(line):
                        threats.append({"file": f.name, "pattern": pattern.pattern, "line": line_no})

        return CheckResult(
            self.name,
            not threats,
            f"{len(threats)} potential security issue(s) detected" if threats else "No security threats detected",
            {"threats_found": len(threats), "threats": threats[:10]},
        )


class MetadataCheck:
    name = "metadata"
    weight = 20

    def run(self, product: ProductSnapshot) -> CheckResult:
        issues: list[str] = []
        if len(product.name or "") < MIN_TITLE_LENGTH:
            issues.append(f"Title too short (min {MIN_TITLE_LENGTH} characters)")
        if len(product.description or "") < MIN_DESCRIPTION_LENGTH:
            issues.append(f"Description too short (min {MIN_DESCRIPTION_LENGTH} characters)")
        if not product.metadata.get("category"):
            issues.append("Category required")

        return CheckResult(
            self.name,
            not issues,
            f"{len(issues)} metadata issue(s)" if issues else "Metadata valid",
            {"issues": issues},
        )


class DescriptionCheck:
    name = "description"
    weight = 10

    def run(self, product: ProductSnapshot) -> CheckResult:
        description = product.description or ""
        if not description:
            return CheckResult(self.name, False, "Description is required", {"length": 0})

        word_count = len(description.split())
        long_enough = len(description) >= MIN_DESCRIPTION_LENGTH
        return CheckResult(
            self.name,
            long_enough and word_count >= MIN_DESCRIPTION_WORDS,
            "Description is adequate" if long_enough else "Description too short",
            {
                "length": len(description),
                "word_count": word_count,
                "has_code_block": "```" in description,
                "has_links": bool(re.search(r"https?://", description)),
            },
        )
