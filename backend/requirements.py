import copy

# Score at or above which a graded course counts as passed.
PASSING_SCORE = 60.0

# Score placeholder the registrar uses for courses that are not graded yet.
PENDING_SCORE = "成績未到或無成績"

# Categories whose label starts with this prefix are prerequisites: they are
# checked for completion but never add credits to the program total.
PREREQ_CATEGORY_PREFIX = "先修課程"

# Synthetic category shown when more than one general-education course passed.
GE_CATEGORY_LABEL = "通識課程 (全域限制)"
GE_LIMIT_MESSAGE = "通識課程認列以一門為限 (已自動採計學分最高者)"

MAX_COUNT_MESSAGE = "超過門數上限 (至多 {} 門)"
MAX_CREDITS_MESSAGE = "超過學分上限 (至多 {:.1f} 學分)"
GROUP_CAP_MESSAGE = "部分課程因超過群組學分上限而不計分或減修"

UNKNOWN_PROGRAM_MESSAGE = "學程 ID {} 不存在"


def normalize_course_name(name) -> str:
    """Course names are matched on the trimmed string, nothing fuzzier."""
    if name is None:
        return ""
    return str(name).strip()


def safe_number(val, default=0):
    """Numeric definition field, or `default` when blank or unparsable."""
    try:
        if val is None or val == "":
            return default
        return float(val)
    except (TypeError, ValueError):
        return default


def is_prerequisite_category(label: str) -> bool:
    return str(label or "").startswith(PREREQ_CATEGORY_PREFIX)


def split_instructor_name(course_name: str) -> tuple[str, str] | None:
    """
    Split an instructor-tagged listing into (course name, instructor).

    '東南亞區域研究導論(王老師)' -> ('東南亞區域研究導論', '王老師').
    Returns None when the listing carries no trailing '(...)' tag.
    """
    name = str(course_name or "")
    if "(" not in name or not name.endswith(")"):
        return None
    start = name.rfind("(")
    return name[:start].strip(), name[start + 1:-1]


def copy_categories(program: dict) -> list[dict]:
    """Working copy of a program's categories; the shared definition is never touched."""
    return copy.deepcopy(list(program.get("requirements") or []))


def collect_course_names(categories: list[dict], ge_names: set[str]) -> set[str]:
    names = {
        normalize_course_name(course)
        for cat in categories
        for course in cat.get("courses") or []
    }
    names.update(ge_names)
    names.discard("")
    return names


def preprocess_requirements(program: dict, adjusters=()) -> dict:
    """
    Build the per-evaluation view of a program's requirements.

    adjusters are callables (categories, ge_names, instructors) that may rewrite
    the working copies before the qualifying-name set is collected, e.g. to
    decode instructor-tagged course names or widen the general-education pool.

    Returns:
      {
        "categories":   [...],            # deep copy, safe to mutate
        "course_names": {"投資學", ...},   # every name that can count
        "ge_names":     {"...", ...},     # program-wide single-slot GE pool
        "instructors":  {"course": "instructor"},
      }
    """
    categories = copy_categories(program)
    ge_names = {
        normalize_course_name(name)
        for name in program.get("general_education_courses") or []
        if normalize_course_name(name)
    }
    instructors: dict[str, str] = {}

    for adjust in adjusters:
        adjust(categories, ge_names, instructors)

    return {
        "categories": categories,
        "course_names": collect_course_names(categories, ge_names),
        "ge_names": ge_names,
        "instructors": instructors,
    }
