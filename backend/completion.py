"""
Program completion check: one (program, transcript) evaluation.

Pure function of its inputs. The catalog snapshot is only read; the course
list is copied before any rule touches it.
"""

from allocator import evaluate_categories, general_education_record
from classifier import filter_relevant_courses, keep_single_general_education
from policies import EvaluationContext, get_policies
from requirements import UNKNOWN_PROGRAM_MESSAGE, preprocess_requirements


def _course_payload(course: dict) -> dict:
    return {
        "name": course["name"],
        "credit": float(course["credit"]),
        "score": course["score"],
        "semester": course["semester"],
        "isPassed": bool(course["is_passed"]),
        "isInProgress": bool(course["is_in_progress"]),
        "isCapped": bool(course.get("is_capped", False)),
    }


def _category_payload(result: dict) -> dict:
    return {
        "category": result["category"],
        "requiredCount": int(result["required_count"]),
        "requiredCredits": float(result["required_credits"]),
        "passedCount": int(result["passed_count"]),
        "passedCredits": float(result["passed_credits"]),
        "isMet": bool(result["is_met"]),
        "passedCourses": [_course_payload(c) for c in result.get("passed_courses") or []],
        "limitExceeded": bool(result.get("limit_exceeded", False)),
        "exceededMessage": result.get("exceeded_message") or "",
    }


def _empty_result(program_name: str) -> dict:
    return {
        "programName": program_name,
        "isCompleted": False,
        "totalPassedCredits": "0.0",
        "minRequiredCredits": "0.0",
        "totalCreditsMet": False,
        "allCategoriesMet": False,
        "categoryResults": [],
        "inProgressCourses": [],
        "programDescription": "",
        "avgScoreRequired": False,
        "avgScore": "0.0",
        "avgScoreMet": False,
        "avgScoreThreshold": "",
        "restrictionMessage": "",
    }


def assemble_result(ctx: EvaluationContext) -> dict:
    """
    Fold the evaluation state into the wire-format completion result.

    Every list field is present (possibly empty) and no field is null.
    """
    program = ctx.program
    min_credits = float(program.get("min_credits") or 0)
    total = ctx.effective_total

    all_met = all(r["is_met"] for r in ctx.results) and not ctx.restriction_message
    credits_met = total >= min_credits
    completed = credits_met and all_met
    if ctx.avg_score_required and not ctx.avg_score_met:
        completed = False

    result = _empty_result(str(program.get("name") or ""))
    result.update({
        "isCompleted": completed,
        "totalPassedCredits": f"{total:.1f}",
        "minRequiredCredits": f"{min_credits:.1f}",
        "totalCreditsMet": credits_met,
        "allCategoriesMet": all_met,
        "categoryResults": [_category_payload(r) for r in ctx.results],
        "inProgressCourses": [_course_payload(c) for c in ctx.in_progress],
        "programDescription": str(program.get("description") or ""),
        "restrictionMessage": ctx.restriction_message,
    })
    if ctx.avg_score_required:
        result.update({
            "avgScoreRequired": True,
            "avgScore": f"{ctx.avg_score:.2f}",
            "avgScoreMet": ctx.avg_score_met,
            "avgScoreThreshold": f"{ctx.avg_score_threshold:g}",
        })
    return result


def check_program_completion(program_id: str, courses: list[dict], catalog, major: str = "") -> dict:
    """
    Check whether the courses complete program `program_id`.

    Unknown ids produce a result whose programName explains the problem, so a
    batch of mixed ids still evaluates the valid ones.
    """
    program = catalog.programs.get(program_id)
    if program is None:
        return _empty_result(UNKNOWN_PROGRAM_MESSAGE.format(program_id))

    policies = get_policies(program_id)
    prep = preprocess_requirements(program, [p.adjust_requirements for p in policies])
    ctx = EvaluationContext(
        program_id=program_id,
        program=program,
        major=major or "",
        business_majors=catalog.business_majors,
        categories=prep["categories"],
        course_names=prep["course_names"],
        ge_names=prep["ge_names"],
        instructors=prep["instructors"],
    )

    ctx.passed, ctx.in_progress = filter_relevant_courses(courses, ctx.course_names)
    for policy in policies:
        policy.classify_courses(ctx)
    ctx.passed, ctx.excluded_ge = keep_single_general_education(ctx.passed, ctx.ge_names)

    override = None
    for policy in policies:
        override = policy.evaluate_categories(ctx)
        if override is not None:
            break

    if override is not None:
        ctx.results, ctx.effective_total = override
    else:
        ctx.results, ctx.effective_total = evaluate_categories(ctx.categories, ctx.passed)
        if ctx.excluded_ge:
            kept_ge = [c for c in ctx.passed if c["name"] in ctx.ge_names]
            ctx.results.append(general_education_record(kept_ge, ctx.excluded_ge))

    for policy in policies:
        policy.postprocess_categories(ctx)

    return assemble_result(ctx)
