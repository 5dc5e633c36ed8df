from requirements import (
    GE_CATEGORY_LABEL,
    GE_LIMIT_MESSAGE,
    GROUP_CAP_MESSAGE,
    MAX_COUNT_MESSAGE,
    MAX_CREDITS_MESSAGE,
    is_prerequisite_category,
    safe_number,
)


def category_result(
    label: str,
    required_count: int = 0,
    required_credits: float = 0.0,
    passed_courses: list[dict] | None = None,
    passed_count: int | None = None,
    passed_credits: float | None = None,
    is_met: bool = False,
    limit_exceeded: bool = False,
    exceeded_message: str = "",
) -> dict:
    passed_courses = list(passed_courses or [])
    if passed_count is None:
        passed_count = len({c["name"] for c in passed_courses})
    if passed_credits is None:
        passed_credits = sum(c["credit"] for c in passed_courses)
    return {
        "category": label,
        "required_count": int(required_count),
        "required_credits": float(required_credits),
        "passed_count": int(passed_count),
        "passed_credits": float(passed_credits),
        "is_met": bool(is_met),
        "passed_courses": passed_courses,
        "limit_exceeded": bool(limit_exceeded),
        "exceeded_message": exceeded_message,
    }


def is_category_met(result: dict) -> bool:
    """Count minimum, plus the credit minimum when one is set (uncapped credits)."""
    if result["passed_count"] < result["required_count"]:
        return False
    if result["required_credits"] > 0 and result["passed_credits"] < result["required_credits"]:
        return False
    return True


def refresh_category(result: dict, passed_courses: list[dict]) -> dict:
    """Recompute count/credits/met after a rule removed courses from a category."""
    result["passed_courses"] = list(passed_courses)
    result["passed_count"] = len({c["name"] for c in passed_courses})
    result["passed_credits"] = float(sum(c["credit"] for c in passed_courses))
    result["is_met"] = is_category_met(result)
    return result


def _contributing_credits(passed: list[dict], max_count: int, max_credits: float) -> tuple[float, bool, str]:
    """
    Walk highest-credit-first and sum what the category may contribute.

    Stops at max_count courses; the course that crosses max_credits is clipped
    to the remainder. Returns (credits, limit_exceeded, message).
    """
    credits = 0.0
    counted = 0
    exceeded = False
    message = ""
    for course in passed:
        if max_count > 0 and counted >= max_count:
            exceeded = True
            message = MAX_COUNT_MESSAGE.format(max_count)
            break

        added = course["credit"]
        if max_credits > 0 and credits + added > max_credits:
            added = max_credits - credits
            exceeded = True
            message = MAX_CREDITS_MESSAGE.format(max_credits)

        if added > 0:
            credits += added
            counted += 1
        elif max_credits > 0 and credits >= max_credits:
            exceeded = True
            message = MAX_CREDITS_MESSAGE.format(max_credits)
            break
    return credits, exceeded, message


def evaluate_category(category: dict, completed: list[dict]) -> tuple[dict, float]:
    """
    Evaluate one requirement category.

    Returns (result, contributed_credits). contributed_credits is what the
    category adds to the program total: 0 for prerequisite categories.
    """
    label = str(category.get("category", ""))
    courses = category.get("courses") or []
    names = set(courses)
    min_count = int(safe_number(category.get("min_count")))
    max_count = int(safe_number(category.get("max_count")))
    min_credits = safe_number(category.get("min_credits"), 0.0)
    max_credits = safe_number(category.get("max_credits"), 0.0)

    passed = sorted(
        (c for c in completed if c["name"] in names),
        key=lambda c: c["credit"],
        reverse=True,
    )
    passed_count = len({c["name"] for c in passed})
    passed_credits = sum(c["credit"] for c in passed)

    contributed, exceeded, message = _contributing_credits(passed, max_count, max_credits)

    if not exceeded and any(c.get("is_capped") for c in passed):
        exceeded, message = True, GROUP_CAP_MESSAGE
    if not exceeded and max_count > 0 and passed_count > max_count:
        exceeded, message = True, MAX_COUNT_MESSAGE.format(max_count)
    if not exceeded and max_credits > 0 and passed_credits > max_credits:
        exceeded, message = True, MAX_CREDITS_MESSAGE.format(max_credits)

    prerequisite = is_prerequisite_category(label)
    if prerequisite and courses and min_count == 0 and min_credits == 0:
        # A prerequisite block without explicit minimums means "take them all".
        min_count = len(courses)

    result = category_result(
        label,
        required_count=min_count,
        required_credits=min_credits,
        passed_courses=passed,
        passed_count=passed_count,
        passed_credits=passed_credits,
        limit_exceeded=exceeded,
        exceeded_message=message,
    )
    result["is_met"] = is_category_met(result)
    return result, (0.0 if prerequisite else contributed)


def evaluate_categories(categories: list[dict], completed: list[dict]) -> tuple[list[dict], float]:
    """
    Evaluate every working category against the completed courses.

    A course listed in several categories counts in each of them.
    Returns (results in category order, effective total credits).
    """
    results = []
    effective_total = 0.0
    for category in categories:
        result, contributed = evaluate_category(category, completed)
        results.append(result)
        effective_total += contributed
    return results, effective_total


def general_education_record(kept: list[dict], excluded: list[dict]) -> dict:
    """Display-only record for the single-slot general-education rule."""
    message = GE_LIMIT_MESSAGE
    if excluded:
        message += "；未採計：" + "、".join(c["name"] for c in excluded)
    return category_result(
        GE_CATEGORY_LABEL,
        required_count=1,
        passed_courses=kept,
        is_met=True,
        limit_exceeded=True,
        exceeded_message=message,
    )
