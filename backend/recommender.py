"""
Recommendation scan: evaluate every program for one transcript and return
the closest-to-complete ones.
"""

from concurrent.futures import ThreadPoolExecutor

import pandas as pd

from completion import check_program_completion
from policies import is_program_restricted
from requirements import is_prerequisite_category

# Programs below this completion rate are not worth suggesting
# (one shared general-education course would otherwise match everything).
RECOMMEND_MIN_RATE = 0.2
# Keep every program ranked 1..TOP_RANKS; ties share a rank.
TOP_RANKS = 5

RECOMMENDATION_COLUMNS = [
    "programID",
    "programName",
    "type",
    "totalPassedCredits",
    "minCredits",
    "passedPrereqCredits",
    "completionRate",
    "isCompleted",
    "isRestricted",
]


def completion_rate(result: dict) -> tuple[float, float, float, float]:
    """
    (passed, required, prerequisite passed, rate) for one completion result.

    rate = (passed + prerequisite passed) / (required + prerequisite required);
    prerequisite credits never count toward passed, only toward the rate.
    """
    passed = float(result.get("totalPassedCredits") or 0)
    required = float(result.get("minRequiredCredits") or 0)
    prereq_passed = 0.0
    prereq_required = 0.0
    for category in result.get("categoryResults") or []:
        if is_prerequisite_category(category["category"]):
            prereq_passed += category["passedCredits"]
            prereq_required += category["requiredCredits"]

    total_required = required + prereq_required
    rate = (passed + prereq_passed) / total_required if total_required > 0 else 0.0
    return passed, required, prereq_passed, rate


def _scan_one(program_id: str, courses: list[dict], catalog, major: str) -> dict:
    program = catalog.programs[program_id]
    result = check_program_completion(program_id, courses, catalog, major)
    passed, required, prereq_passed, rate = completion_rate(result)
    return {
        "programID": program_id,
        "programName": program["name"],
        "type": program.get("type", ""),
        "totalPassedCredits": passed,
        "minCredits": required,
        "passedPrereqCredits": prereq_passed,
        "completionRate": rate,
        "isCompleted": bool(result["isCompleted"]),
        "isRestricted": is_program_restricted(program_id, major, catalog.business_majors),
    }


def rank_recommendations(rows: list[dict]) -> list[dict]:
    """
    Keep rows at or above RECOMMEND_MIN_RATE, highest rate first, and every
    row whose dense rank is within TOP_RANKS (rank only advances when the
    rate strictly drops).
    """
    frame = pd.DataFrame(rows, columns=RECOMMENDATION_COLUMNS)
    frame = frame[frame["completionRate"] >= RECOMMEND_MIN_RATE]
    if frame.empty:
        return []
    frame = frame.sort_values("completionRate", ascending=False, kind="stable")
    frame = frame.assign(
        rank=frame["completionRate"].rank(method="dense", ascending=False).astype(int)
    )
    frame = frame[frame["rank"] <= TOP_RANKS]

    return [
        {
            "programID": str(row["programID"]),
            "programName": str(row["programName"]),
            "type": str(row["type"]),
            "totalPassedCredits": float(row["totalPassedCredits"]),
            "minCredits": float(row["minCredits"]),
            "passedPrereqCredits": float(row["passedPrereqCredits"]),
            "completionRate": float(row["completionRate"]),
            "isCompleted": bool(row["isCompleted"]),
            "isRestricted": bool(row["isRestricted"]),
            "rank": int(row["rank"]),
        }
        for row in frame.to_dict(orient="records")
    ]


def recommend_programs(courses: list[dict], catalog, major: str = "", max_workers: int = 4) -> list[dict]:
    """
    Evaluate the student against every program and rank the results.

    Evaluations are independent and side-effect free, so they fan out over a
    thread pool; program ids are visited in sorted order so ties come back in
    a stable order.
    """
    program_ids = sorted(catalog.programs)
    if not program_ids:
        return []
    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as pool:
        rows = list(pool.map(lambda pid: _scan_one(pid, courses, catalog, major), program_ids))
    return rank_recommendations(rows)
