import json
import os
import sys
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from requirements import safe_number

# Definition file -> program type tag.
PROGRAM_FILES = {
    "micro_programs.json": "micro",
    "credit_programs.json": "credit",
    "commerce_specialty_programs.json": "specialty",
}
DEPARTMENTS_FILE = "departments_grouped.json"

# Pseudo-college holding programs run jointly by several colleges.
CROSS_COLLEGE_KEY = "跨院"
# departments_grouped.json group key of the business college.
BUSINESS_GROUP_KEY = "3"

_REQUIREMENT_NUMERIC_FIELDS = ("min_count", "max_count", "min_credits", "max_credits")


@dataclass(frozen=True)
class Catalog:
    """Read-only definitions snapshot, built once before serving requests."""

    programs: Mapping[str, dict]
    programs_by_college: Mapping[str, Mapping[str, dict]]
    business_majors: frozenset


def _normalize_requirement(raw: dict) -> dict:
    req = {
        "category": str(raw.get("category", "") or "").strip(),
        "courses": [str(c).strip() for c in raw.get("courses") or [] if str(c).strip()],
    }
    for col in _REQUIREMENT_NUMERIC_FIELDS:
        val = safe_number(raw.get(col))
        req[col] = int(val) if col.endswith("_count") else float(val)
    return req


def _normalize_program(raw: dict, program_type: str) -> dict:
    """Fill defaults so the engine never sees a missing field."""
    return {
        "name": str(raw.get("name", "") or "").strip(),
        "min_credits": float(safe_number(raw.get("min_credits"))),
        "description": str(raw.get("description", "") or ""),
        "requirements": [_normalize_requirement(r) for r in raw.get("requirements") or []],
        "type": program_type,
        "general_education_courses": [
            str(c).strip() for c in raw.get("general_education_courses") or [] if str(c).strip()
        ],
    }


def split_cross_college_name(name: str) -> tuple[str, list[str]] | None:
    """
    '東南亞文化學分學程（外國語文學院 x 社會科學學院）'
      -> ('東南亞文化學分學程', ['外國語文學院', '社會科學學院'])
    Returns None when the name carries no full-width college suffix.
    """
    start = name.rfind("（")
    end = name.rfind("）")
    if start == -1 or end == -1 or end <= start:
        return None
    colleges = [c.strip() for c in name[start + 1:end].split(" x ") if c.strip()]
    return name[:start], colleges


def build_catalog(program_files: dict[str, dict], department_groups: dict) -> Catalog:
    """
    Build the catalog snapshot from already-decoded definition documents.

    program_files maps program type -> {college: {program_id: definition}}.
    """
    programs: dict[str, dict] = {}
    by_college: dict[str, dict[str, dict]] = {}

    for program_type, colleges in program_files.items():
        for college, college_programs in (colleges or {}).items():
            bucket = by_college.setdefault(college, {})
            for program_id, raw in (college_programs or {}).items():
                if program_id in programs:
                    print(
                        f"[WARN] Program id '{program_id}' defined more than once; "
                        f"keeping the {program_type} definition.",
                        file=sys.stderr,
                    )
                program = _normalize_program(raw or {}, program_type)
                bucket[program_id] = program
                programs[program_id] = program

    cross = by_college.pop(CROSS_COLLEGE_KEY, {})
    for program_id, program in cross.items():
        split = split_cross_college_name(program["name"])
        if split is None:
            print(
                f"[WARN] Cross-college program '{program_id}' has no college suffix in its name; "
                "it is only reachable by id.",
                file=sys.stderr,
            )
            continue
        display_name, colleges = split
        program = {**program, "name": display_name}
        programs[program_id] = program
        for college in colleges:
            by_college.setdefault(college, {})[program_id] = program

    business_group = (department_groups or {}).get(BUSINESS_GROUP_KEY) or {}
    business_majors = frozenset(
        str(d.get("name", "")).strip()
        for d in business_group.get("departments") or []
        if str(d.get("name", "")).strip()
    )

    return Catalog(
        programs=MappingProxyType(programs),
        programs_by_college=MappingProxyType(
            {college: MappingProxyType(progs) for college, progs in by_college.items()}
        ),
        business_majors=business_majors,
    )


def _read_json(path: str):
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Definition file not found: {path}")
    with open(path, encoding="utf-8") as fh:
        try:
            return json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Cannot parse {os.path.basename(path)}: {exc}") from exc


def load_data(data_path: str) -> Catalog:
    """Load every definition file under data_path. Raises on missing/unparsable files."""
    program_files = {
        program_type: _read_json(os.path.join(data_path, filename))
        for filename, program_type in PROGRAM_FILES.items()
    }
    department_groups = _read_json(os.path.join(data_path, DEPARTMENTS_FILE))
    catalog = build_catalog(program_files, department_groups)

    empty = sorted(pid for pid, p in catalog.programs.items() if not p["requirements"])
    if empty:
        print(f"[WARN] {len(empty)} program(s) define no requirement categories: {empty}", file=sys.stderr)
    print(
        f"[INFO] Catalog: {len(catalog.programs)} programs in "
        f"{len(catalog.programs_by_college)} colleges, {len(catalog.business_majors)} business majors"
    )
    return catalog


def catalog_payload(catalog: Catalog) -> dict:
    """Plain-dict view of programs_by_college for JSON responses."""
    return {
        college: {pid: dict(program) for pid, program in sorted(progs.items())}
        for college, progs in catalog.programs_by_college.items()
    }
