import json

import pandas as pd

from requirements import PASSING_SCORE, PENDING_SCORE, normalize_course_name

# Transcript export layout: [{"課業學習": {"gradeRecordList": [...], "aboutMe": {...}}}]
ACADEMIC_SECTION_KEY = "課業學習"


class TranscriptError(ValueError):
    """The uploaded transcript is not shaped like a grade-record export."""


def _clean(val) -> str:
    if val is None:
        return ""
    return str(val).strip()


def semester_key(academic_year, semester) -> str:
    """'113', '1' -> '113-1'."""
    return f"{_clean(academic_year)}-{_clean(semester)}"


def semester_term(key: str) -> str:
    """'113-1' -> '1'. Keys without a year pass through unchanged."""
    return _clean(key).rsplit("-", 1)[-1]


def parse_score(score) -> float | None:
    try:
        return float(_clean(score))
    except ValueError:
        return None


def is_passed(score) -> bool:
    numeric = parse_score(score)
    return numeric is not None and numeric >= PASSING_SCORE


def is_in_progress(score) -> bool:
    return _clean(score) == PENDING_SCORE


def _academic_section(data) -> dict:
    if not isinstance(data, list) or len(data) == 0:
        raise TranscriptError("JSON 結構不符預期或未找到課程紀錄")
    first = data[0]
    if not isinstance(first, dict):
        raise TranscriptError("JSON 結構不符預期或未找到課程紀錄")
    section = first.get(ACADEMIC_SECTION_KEY)
    if not isinstance(section, dict):
        raise TranscriptError("JSON 結構不符預期或未找到課程紀錄")
    return section


def normalize_transcript(data) -> tuple[list[dict], str]:
    """
    Flatten an already-decoded transcript into course records.

    Returns (courses, registered_major). Each course:
      {"name", "credit", "score", "semester", "is_passed", "is_in_progress", "is_capped"}

    Unparsable credits count as 0; scores that are neither numeric nor the
    pending placeholder leave the course neither passed nor in progress.
    """
    section = _academic_section(data)
    year_records = section.get("gradeRecordList") or []
    if not isinstance(year_records, list) or len(year_records) == 0:
        raise TranscriptError("JSON 結構不符預期或未找到課程紀錄")

    rows = []
    for year_record in year_records:
        if not isinstance(year_record, dict):
            continue
        records = year_record.get("GradeRecords") or []
        if not isinstance(records, list):
            raise TranscriptError("JSON 結構不符預期或未找到課程紀錄")
        for record in records:
            if not isinstance(record, dict):
                continue
            rows.append({
                "name": normalize_course_name(record.get("courseName")),
                "credit_raw": _clean(record.get("credit")),
                "score": _clean(record.get("score")),
                "semester": semester_key(record.get("academicYear"), record.get("semester")),
            })

    if not rows:
        raise TranscriptError("檔案解析成功，但未找到有效的課程紀錄")

    frame = pd.DataFrame(rows)
    frame["credit"] = pd.to_numeric(frame["credit_raw"], errors="coerce").fillna(0.0)
    numeric_score = pd.to_numeric(frame["score"], errors="coerce")
    frame["is_passed"] = numeric_score.ge(PASSING_SCORE)
    frame["is_in_progress"] = frame["score"] == PENDING_SCORE

    courses = [
        {
            "name": row["name"],
            "credit": float(row["credit"]),
            "score": row["score"],
            "semester": row["semester"],
            "is_passed": bool(row["is_passed"]),
            "is_in_progress": bool(row["is_in_progress"]),
            "is_capped": False,
        }
        for row in frame.to_dict(orient="records")
    ]

    about_me = section.get("aboutMe") or {}
    major = _clean(about_me.get("registerMajor")) if isinstance(about_me, dict) else ""
    return courses, major


def load_student_data(raw) -> tuple[list[dict], str]:
    """Decode uploaded transcript bytes/text and normalize it. Raises TranscriptError."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TranscriptError(f"解析頂層 JSON 結構失敗: {exc}") from exc
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise TranscriptError(f"解析頂層 JSON 結構失敗: {exc}") from exc
    return normalize_transcript(data)
