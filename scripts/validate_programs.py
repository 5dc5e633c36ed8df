"""
Catalog validator for program definitions.

Checks data-quality rules that must hold before a definitions directory is
deployed. Designed to be importable for tests and runnable as a CLI.

Usage:
    python scripts/validate_programs.py --program fintech
    python scripts/validate_programs.py --all
    python scripts/validate_programs.py --all --path path/to/data
"""

import argparse
import os
import sys

try:
    import pandas as pd
except ImportError as e:
    sys.exit(f"Missing dependency: {e}. Run: pip install pandas")

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(REPO_ROOT, "backend"))

from data_loader import load_data  # noqa: E402
from policies import get_policies  # noqa: E402
from requirements import is_prerequisite_category  # noqa: E402

DEFAULT_DATA_PATH = os.path.join(REPO_ROOT, "data")

REQUIREMENT_COLUMNS = [
    "program_id",
    "category",
    "min_count",
    "max_count",
    "min_credits",
    "max_credits",
    "n_courses",
    "n_unique",
]


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single program validation run."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Program '{self.program_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


def requirements_frame(program_id: str, program: dict) -> pd.DataFrame:
    """One row per requirement category of the program."""
    rows = [
        {
            "program_id": program_id,
            "category": req.get("category", ""),
            "min_count": int(req.get("min_count") or 0),
            "max_count": int(req.get("max_count") or 0),
            "min_credits": float(req.get("min_credits") or 0),
            "max_credits": float(req.get("max_credits") or 0),
            "n_courses": len(req.get("courses") or []),
            "n_unique": len(set(req.get("courses") or [])),
        }
        for req in program.get("requirements") or []
    ]
    return pd.DataFrame(rows, columns=REQUIREMENT_COLUMNS)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_has_requirements(reqs: pd.DataFrame, result: ValidationResult) -> None:
    if len(reqs) == 0:
        result.error("Program defines no requirement categories.")


def check_min_credits(program: dict, result: ValidationResult) -> None:
    if float(program.get("min_credits") or 0) <= 0:
        result.warn("min_credits is 0; the credit gate is always met.")


def check_min_count_satisfiable(reqs: pd.DataFrame, result: ValidationResult) -> None:
    """min_count can never exceed the number of distinct listed courses."""
    bad = reqs[reqs["min_count"] > reqs["n_unique"]]
    for _, row in bad.iterrows():
        result.error(
            f"Category '{row['category']}' needs {row['min_count']} courses "
            f"but lists only {row['n_unique']}."
        )


def check_ceilings(reqs: pd.DataFrame, result: ValidationResult) -> None:
    """A ceiling below its own minimum makes the category unsatisfiable."""
    count_bad = reqs[(reqs["max_count"] > 0) & (reqs["max_count"] < reqs["min_count"])]
    for _, row in count_bad.iterrows():
        result.error(
            f"Category '{row['category']}' max_count {row['max_count']} "
            f"is below min_count {row['min_count']}."
        )
    credit_bad = reqs[(reqs["max_credits"] > 0) & (reqs["max_credits"] < reqs["min_credits"])]
    for _, row in credit_bad.iterrows():
        result.error(
            f"Category '{row['category']}' max_credits {row['max_credits']:.1f} "
            f"is below min_credits {row['min_credits']:.1f}."
        )


def check_duplicate_courses(reqs: pd.DataFrame, result: ValidationResult) -> None:
    dupes = reqs[reqs["n_unique"] < reqs["n_courses"]]
    for _, row in dupes.iterrows():
        result.warn(f"Category '{row['category']}' lists the same course more than once.")


def check_prerequisite_defaults(reqs: pd.DataFrame, result: ValidationResult) -> None:
    prereq = reqs[reqs["category"].map(is_prerequisite_category).astype(bool)]
    implicit = prereq[(prereq["min_count"] == 0) & (prereq["min_credits"] == 0)]
    for _, row in implicit.iterrows():
        result.warn(
            f"Prerequisite category '{row['category']}' has no minimums; "
            f"all {row['n_courses']} listed courses will be required."
        )


def check_policy_categories(program_id: str, reqs: pd.DataFrame, result: ValidationResult) -> None:
    """Every category a program rule relies on must exist, or the rule is skipped."""
    labels = reqs["category"].astype(str).tolist()
    for policy in get_policies(program_id):
        for label, match in policy.required_categories():
            if match == "exact":
                found = label in labels
            else:
                found = any(label in existing for existing in labels)
            if not found:
                result.warn(f"Rule '{policy.name}' expects category '{label}' ({match}); it will be skipped.")


def validate_program(program_id: str, catalog) -> ValidationResult:
    result = ValidationResult(program_id)
    program = catalog.programs.get(program_id)
    if program is None:
        result.error(f"Program '{program_id}' not found in catalog.")
        return result

    reqs = requirements_frame(program_id, program)
    check_has_requirements(reqs, result)
    check_min_credits(program, result)
    if reqs.empty:
        return result
    check_min_count_satisfiable(reqs, result)
    check_ceilings(reqs, result)
    check_duplicate_courses(reqs, result)
    check_prerequisite_defaults(reqs, result)
    check_policy_categories(program_id, reqs, result)
    return result


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Validate program definitions before deployment."
    )
    parser.add_argument("--program", type=str, help="Program ID to validate.")
    parser.add_argument("--all", action="store_true", help="Validate every program in the catalog.")
    parser.add_argument(
        "--path",
        type=str,
        default=DEFAULT_DATA_PATH,
        help="Definitions directory (default: data/).",
    )
    parsed = parser.parse_args(args)

    if not parsed.program and not parsed.all:
        parser.error("Provide --program ID or --all.")

    try:
        catalog = load_data(parsed.path)
    except (FileNotFoundError, ValueError) as exc:
        print(f"[ERROR] Cannot load definitions: {exc}", file=sys.stderr)
        return 1

    program_ids = sorted(catalog.programs) if parsed.all else [parsed.program]
    results = [validate_program(pid, catalog) for pid in program_ids]
    for res in results:
        print(res.summary())

    failed = [r for r in results if not r.passed]
    if failed:
        print(f"\n{len(failed)} program(s) failed validation.")
        return 1
    print(f"\nAll {len(results)} program(s) passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
