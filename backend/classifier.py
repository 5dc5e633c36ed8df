"""
Course classification helpers.

Everything here works on per-evaluation copies of the student's course
records, so transformations (credit caps, pass promotion) never leak back
into the transcript the caller holds or into another program's evaluation.
"""


def _by_credit_desc(courses: list[dict]) -> list[dict]:
    # sorted() is stable: equal credits keep transcript order.
    return sorted(courses, key=lambda c: c["credit"], reverse=True)


def filter_relevant_courses(courses: list[dict], course_names: set[str]) -> tuple[list[dict], list[dict]]:
    """
    Split the transcript into (passed, in_progress) courses that can count
    toward the program. Failed or ungraded-but-not-pending records are dropped.
    """
    passed: list[dict] = []
    in_progress: list[dict] = []
    for course in courses:
        if course["name"] not in course_names:
            continue
        if course["is_passed"]:
            passed.append(dict(course))
        elif course["is_in_progress"]:
            in_progress.append(dict(course))
    return passed, in_progress


def promote_pending(
    passed: list[dict],
    in_progress: list[dict],
    names: set[str],
) -> tuple[list[dict], list[dict]]:
    """Treat in-progress courses named in `names` as already passed."""
    promoted = []
    remaining = []
    for course in in_progress:
        if course["name"] in names:
            promoted.append({**course, "is_passed": True, "is_in_progress": False})
        else:
            remaining.append(course)
    return passed + promoted, remaining


def cap_group_credits(passed: list[dict], group: list[str], limit: float) -> None:
    """
    Enforce a credit ceiling shared by a group of courses, in place.

    Higher-credit courses are credited first. The course that crosses the
    ceiling keeps only the remainder; everything after it is zeroed. Both are
    marked is_capped.
    """
    names = set(group)
    members = _by_credit_desc([c for c in passed if c["name"] in names])
    total = 0.0
    for course in members:
        if total >= limit:
            course["credit"] = 0.0
            course["is_capped"] = True
        elif total + course["credit"] > limit:
            allowed = limit - total
            course["credit"] = allowed
            course["is_capped"] = True
            total += allowed
        else:
            total += course["credit"]


def keep_best_of_group(passed: list[dict], group: list[str]) -> list[dict]:
    """Mutually exclusive substitutes: only the highest-credit one survives."""
    names = set(group)
    members = [c for c in passed if c["name"] in names]
    others = [c for c in passed if c["name"] not in names]
    if not members:
        return others
    return others + [_by_credit_desc(members)[0]]


def cap_per_instructor(passed: list[dict], instructors: dict[str, str], limit: int = 2) -> list[dict]:
    """
    At most `limit` courses per instructor count; the highest-credit ones win.
    Courses without a known instructor are untouched.
    """
    counts: dict[str, int] = {}
    kept = []
    for course in _by_credit_desc(passed):
        instructor = instructors.get(course["name"])
        if instructor is None:
            kept.append(course)
            continue
        if counts.get(instructor, 0) < limit:
            counts[instructor] = counts.get(instructor, 0) + 1
            kept.append(course)
    return kept


def keep_single_general_education(passed: list[dict], ge_names: set[str]) -> tuple[list[dict], list[dict]]:
    """
    Only one general-education course counts program-wide.

    Returns (completed, excluded): completed holds every non-GE course plus the
    highest-credit GE course; excluded lists the GE courses that were dropped.
    """
    ge_passed = [c for c in passed if c["name"] in ge_names]
    others = [c for c in passed if c["name"] not in ge_names]
    if len(ge_passed) <= 1:
        return others + ge_passed, []
    ranked = _by_credit_desc(ge_passed)
    return others + ranked[:1], ranked[1:]
