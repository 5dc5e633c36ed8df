import sys
import os

import pytest

# Add backend/ to path so tests can import backend modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

# Add scripts/ to path so tests can import script modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

from data_loader import build_catalog  # noqa: E402


def _course(name, credit=3.0, score="85", semester="113-1"):
    """Normalized course record, shaped like normalizer output."""
    score = str(score)
    try:
        numeric = float(score)
    except ValueError:
        numeric = None
    return {
        "name": name,
        "credit": float(credit),
        "score": score,
        "semester": semester,
        "is_passed": numeric is not None and numeric >= 60,
        "is_in_progress": score == "成績未到或無成績",
        "is_capped": False,
    }


@pytest.fixture
def make_course():
    return _course


@pytest.fixture
def make_catalog():
    """
    Build a catalog from {program_id: definition} in a single college.
    Departments listed in business_majors land in the business group.
    """
    def _build(programs, business_majors=("會計學系",), college="商學院"):
        departments = {
            "3": {
                "category_name": "商學院",
                "departments": [{"name": m} for m in business_majors],
            }
        }
        return build_catalog({"credit": {college: programs}}, departments)

    return _build


def transcript_json(records, major="英國語文學系"):
    """Transcript export document for (name, credit, score, year, semester) tuples."""
    return [{
        "課業學習": {
            "aboutMe": {"registerMajor": major},
            "gradeRecordList": [{
                "GradeRecords": [
                    {
                        "courseName": name,
                        "credit": credit,
                        "score": score,
                        "academicYear": year,
                        "semester": semester,
                    }
                    for name, credit, score, year, semester in records
                ]
            }],
        }
    }]


@pytest.fixture
def make_transcript():
    return transcript_json
