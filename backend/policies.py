"""
Per-program exception rules.

Each rule is a ProgramPolicy with up to four hooks, run by
completion.check_program_completion at fixed points of every evaluation:

  1. adjust_requirements(categories, ge_names, instructors)
       before the qualifying course-name set is built
  2. classify_courses(ctx)
       after the transcript is split into passed / in-progress, before the
       single general-education slot is applied
  3. evaluate_categories(ctx)
       may return (results, effective_total) to replace the standard
       category evaluation; the first policy returning non-None wins
  4. postprocess_categories(ctx)
       after category results exist, before the result is assembled

Within each hook, policies run in the order they are listed in
PROGRAM_POLICIES for that program. Average-score gates and major
restrictions are always listed last so they see the final category results.
"""

import sys
from dataclasses import dataclass, field

from allocator import category_result, refresh_category
from classifier import (
    cap_group_credits,
    cap_per_instructor,
    keep_best_of_group,
    promote_pending,
)
from normalizer import parse_score, semester_term
from requirements import normalize_course_name, split_instructor_name


@dataclass
class EvaluationContext:
    """Mutable working state of one (program, transcript) evaluation."""

    program_id: str
    program: dict
    major: str = ""
    business_majors: frozenset = frozenset()
    categories: list = field(default_factory=list)
    course_names: set = field(default_factory=set)
    ge_names: set = field(default_factory=set)
    instructors: dict = field(default_factory=dict)
    passed: list = field(default_factory=list)
    in_progress: list = field(default_factory=list)
    excluded_ge: list = field(default_factory=list)
    results: list = field(default_factory=list)
    effective_total: float = 0.0
    restriction_message: str = ""
    avg_score_required: bool = False
    avg_score: float = 0.0
    avg_score_met: bool = False
    avg_score_threshold: float | None = None


def _find_index(results_or_categories: list[dict], key: str, fragment: str, last: bool = False) -> int:
    found = -1
    for i, item in enumerate(results_or_categories):
        if fragment in str(item.get(key, "")):
            found = i
            if not last:
                break
    return found


def _insert_after(results: list[dict], index: int, record: dict) -> None:
    if index == -1:
        results.append(record)
    else:
        results.insert(index + 1, record)


def _missing(policy, program_id: str, what) -> None:
    print(f"[WARN] {policy.name}: {what} not found in program '{program_id}'. Rule skipped.", file=sys.stderr)


class ProgramPolicy:
    """No-op hook set; subclasses override what they need."""

    name = "policy"

    def required_categories(self) -> list[tuple[str, str]]:
        """(label, "exact" | "contains") pairs the rule expects in the program."""
        return []

    def adjust_requirements(self, categories: list[dict], ge_names: set, instructors: dict) -> None:
        return None

    def classify_courses(self, ctx: EvaluationContext) -> None:
        return None

    def evaluate_categories(self, ctx: EvaluationContext):
        return None

    def postprocess_categories(self, ctx: EvaluationContext) -> None:
        return None


# ── Requirement / classification rules ───────────────────────────────────────

class InstructorCap(ProgramPolicy):
    """
    Course listings carry the instructor as 'name(instructor)'. The tag is
    stripped from the working copy and no instructor may contribute more than
    `limit` counted courses.
    """

    name = "instructor_cap"

    def __init__(self, limit: int = 2):
        self.limit = limit

    def adjust_requirements(self, categories, ge_names, instructors):
        for category in categories:
            rewritten = []
            for listing in category.get("courses") or []:
                split = split_instructor_name(listing)
                if split is None:
                    rewritten.append(listing)
                    continue
                real_name, instructor = split
                instructors[normalize_course_name(real_name)] = instructor
                rewritten.append(real_name)
            category["courses"] = rewritten

    def classify_courses(self, ctx):
        ctx.passed = cap_per_instructor(ctx.passed, ctx.instructors, self.limit)


class ExtraGeneralEducation(ProgramPolicy):
    """Widen the program's single-slot general-education pool."""

    name = "extra_general_education"

    def __init__(self, courses: list[str]):
        self.courses = [normalize_course_name(c) for c in courses]

    def adjust_requirements(self, categories, ge_names, instructors):
        ge_names.update(c for c in self.courses if c)


class PendingAsPassed(ProgramPolicy):
    """Listed prerequisites count as passed while their grade is still pending."""

    name = "pending_as_passed"

    def __init__(self, courses: list[str]):
        self.courses = set(courses)

    def classify_courses(self, ctx):
        ctx.passed, ctx.in_progress = promote_pending(ctx.passed, ctx.in_progress, self.courses)


class GroupCreditCaps(ProgramPolicy):
    """Each (course group, credit ceiling) pair shares one ceiling; partial credit allowed."""

    name = "group_credit_caps"

    def __init__(self, groups: list[tuple[list[str], float]]):
        self.groups = groups

    def classify_courses(self, ctx):
        for names, limit in self.groups:
            cap_group_credits(ctx.passed, names, limit)


class DualCategoryCourse(ProgramPolicy):
    """
    A course listed in two categories counts in only one of them.

    It stays in `primary` when it is the only passed course there; otherwise
    it is removed from `primary` and left to `secondary`. Only applies when
    the course passed with non-zero credit.
    """

    name = "dual_category_course"

    def __init__(self, course: str, primary: str, secondary: str):
        self.course = course
        self.primary = primary
        self.secondary = secondary

    def required_categories(self):
        return [(self.primary, "exact"), (self.secondary, "exact")]

    def classify_courses(self, ctx):
        if not any(c["name"] == self.course and c["credit"] > 0 for c in ctx.passed):
            return
        primary_idx = next((i for i, c in enumerate(ctx.categories) if c.get("category") == self.primary), -1)
        secondary_idx = next((i for i, c in enumerate(ctx.categories) if c.get("category") == self.secondary), -1)
        if primary_idx == -1 or secondary_idx == -1:
            _missing(self, ctx.program_id, f"categories '{self.primary}'/'{self.secondary}'")
            return

        primary_courses = set(ctx.categories[primary_idx].get("courses") or [])
        primary_has_other = any(
            c["name"] != self.course and c["name"] in primary_courses for c in ctx.passed
        )
        drop_from = primary_idx if primary_has_other else secondary_idx
        target = ctx.categories[drop_from]
        target["courses"] = [c for c in target.get("courses") or [] if c != self.course]


class SubstitutionGroup(ProgramPolicy):
    """Courses that substitute for each other: only the highest-credit one counts."""

    name = "substitution_group"

    def __init__(self, courses: list[str]):
        self.courses = courses

    def classify_courses(self, ctx):
        ctx.passed = keep_best_of_group(ctx.passed, self.courses)


class OverlapElectiveAssignment(ProgramPolicy):
    """
    Electives listed in several groups are assigned where they help most:
    first until group A holds `own_min` courses, then until A+B together hold
    `combined_min`, and to the overflow group afterwards.
    """

    name = "overlap_elective_assignment"

    def __init__(self, overlap: list[str], group_a: str, group_b: str, overflow: str,
                 own_min: int = 1, combined_min: int = 3):
        self.overlap = set(overlap)
        self.group_a = group_a
        self.group_b = group_b
        self.overflow = overflow
        self.own_min = own_min
        self.combined_min = combined_min

    def required_categories(self):
        return [(g, "contains") for g in (self.group_a, self.group_b, self.overflow)]

    def classify_courses(self, ctx):
        idx_a = _find_index(ctx.categories, "category", self.group_a, last=True)
        idx_b = _find_index(ctx.categories, "category", self.group_b, last=True)
        idx_c = _find_index(ctx.categories, "category", self.overflow, last=True)
        if -1 in (idx_a, idx_b, idx_c):
            _missing(self, ctx.program_id, f"groups '{self.group_a}'/'{self.group_b}'/'{self.overflow}'")
            return

        courses_a = set(ctx.categories[idx_a].get("courses") or [])
        courses_b = set(ctx.categories[idx_b].get("courses") or [])
        count_a = 0
        count_b = 0
        overlap_passed = []
        for course in ctx.passed:
            if course["name"] in self.overlap:
                overlap_passed.append(course["name"])
                continue
            if course["name"] in courses_a:
                count_a += 1
            if course["name"] in courses_b:
                count_b += 1

        to_a = []
        to_overflow = []
        for name in overlap_passed:
            if count_a < self.own_min or count_a + count_b < self.combined_min:
                to_a.append(name)
                count_a += 1
            else:
                to_overflow.append(name)

        for idx, assigned in ((idx_a, to_a), (idx_c, to_overflow)):
            category = ctx.categories[idx]
            kept = [c for c in category.get("courses") or [] if c not in self.overlap]
            category["courses"] = kept + assigned


# ── Evaluation override ───────────────────────────────────────────────────────

class SingleCategoryEvaluation(ProgramPolicy):
    """
    The program is one credit pool over every relevant passed course.
    `gated_course` counts only when its passed credits reach `gated_min_credits`.
    """

    name = "single_category_evaluation"

    def __init__(self, gated_course: str, gated_min_credits: float):
        self.gated_course = gated_course
        self.gated_min_credits = gated_min_credits

    def evaluate_categories(self, ctx):
        completed = list(ctx.passed)
        gated = sum(c["credit"] for c in completed if c["name"] == self.gated_course)
        if gated < self.gated_min_credits:
            completed = [c for c in completed if c["name"] != self.gated_course]
        total = float(sum(c["credit"] for c in completed))
        min_credits = float(ctx.program.get("min_credits") or 0)

        requirements = ctx.program.get("requirements") or [{}]
        label = str(requirements[0].get("category", ctx.program.get("name", "")))
        result = category_result(
            label,
            required_count=0,
            required_credits=min_credits,
            passed_courses=completed,
            passed_credits=total,
            is_met=total >= min_credits,
        )
        return [result], total


# ── Cross-category rules ──────────────────────────────────────────────────────

class CombinedCountMinimum(ProgramPolicy):
    """
    Several categories together must hold at least `min_count` distinct passed
    courses. Adds a synthetic result reporting the combined count.

    match="contains" matches category labels by substring, "exact" by equality.
    The synthetic result goes right after the first category matching
    `insert_after`, or at the end.
    """

    name = "combined_count_minimum"

    def __init__(self, categories: list[str], min_count: int, label: str, message: str,
                 match: str = "contains", insert_after: str | None = None):
        self.categories = categories
        self.min_count = min_count
        self.label = label
        self.message = message
        self.match = match
        self.insert_after = insert_after

    def required_categories(self):
        return [(c, self.match) for c in self.categories]

    def _matches(self, label: str, target: str) -> bool:
        if self.match == "exact":
            return label == target
        return target in label

    def postprocess_categories(self, ctx):
        found = set()
        names = set()
        for result in ctx.results:
            for target in self.categories:
                if self._matches(result["category"], target):
                    found.add(target)
                    names.update(c["name"] for c in result["passed_courses"])
        if self.match == "contains" and len(found) < len(self.categories):
            _missing(self, ctx.program_id, f"categories {self.categories}")
            return
        if self.match == "exact" and not found:
            _missing(self, ctx.program_id, f"categories {self.categories}")
            return

        met = len(names) >= self.min_count
        record = category_result(
            self.label,
            required_count=self.min_count,
            passed_count=len(names),
            passed_credits=0.0,
            is_met=met,
            exceeded_message="" if met else self.message,
        )
        index = -1
        if self.insert_after:
            index = _find_index(ctx.results, "category", self.insert_after)
        _insert_after(ctx.results, index, record)


class GroupDiversification(ProgramPolicy):
    """At least `min_groups` of the named groups must each have a passed course."""

    name = "group_diversification"

    def __init__(self, groups: list[str], min_groups: int, label: str, message: str):
        self.groups = groups
        self.min_groups = min_groups
        self.label = label
        self.message = message

    def required_categories(self):
        return [(g, "contains") for g in self.groups]

    def postprocess_categories(self, ctx):
        absent = [g for g in self.groups if _find_index(ctx.results, "category", g) == -1]
        if absent:
            _missing(self, ctx.program_id, f"groups {absent}")
            return
        met_groups = sum(
            1
            for group in self.groups
            if any(group in r["category"] and r["passed_count"] > 0 for r in ctx.results)
        )
        met = met_groups >= self.min_groups
        record = category_result(
            self.label,
            required_count=self.min_groups,
            passed_count=met_groups,
            passed_credits=0.0,
            is_met=met,
            exceeded_message="" if met else self.message,
        )
        index = _find_index(ctx.results, "category", self.groups[-1], last=True)
        _insert_after(ctx.results, index, record)


class PairedSemesterRequirement(ProgramPolicy):
    """
    The matching category is only met when, for at least one listed course,
    both the first- and second-semester offerings were passed.
    """

    name = "paired_semester_requirement"

    def __init__(self, category: str, courses: list[str], message: str):
        self.category = category
        self.courses = courses
        self.message = message

    def required_categories(self):
        return [(self.category, "contains")]

    def _has_pair(self, passed: list[dict], name: str) -> bool:
        terms = {semester_term(c["semester"]) for c in passed if c["name"] == name}
        return "1" in terms and "2" in terms

    def postprocess_categories(self, ctx):
        index = _find_index(ctx.results, "category", self.category)
        if index == -1:
            _missing(self, ctx.program_id, f"category '{self.category}'")
            return
        result = ctx.results[index]
        if any(self._has_pair(result["passed_courses"], name) for name in self.courses):
            return
        result["is_met"] = False
        result["limit_exceeded"] = True
        result["exceeded_message"] = self.message


class DependentCourse(ProgramPolicy):
    """
    `course` only counts in `category` when `companion` has a passed course.
    Otherwise it is retracted from the category and from the effective total.
    """

    name = "dependent_course"

    def __init__(self, course: str, category: str, companion: str, message: str):
        self.course = course
        self.category = category
        self.companion = companion
        self.message = message

    def required_categories(self):
        return [(self.category, "exact"), (self.companion, "exact")]

    def postprocess_categories(self, ctx):
        labels = [r["category"] for r in ctx.results]
        if self.category not in labels or self.companion not in labels:
            _missing(self, ctx.program_id, f"categories '{self.category}'/'{self.companion}'")
            return
        result = ctx.results[labels.index(self.category)]
        removed = [c for c in result["passed_courses"] if c["name"] == self.course]
        if not removed:
            return
        if any(r["category"] == self.companion and r["passed_count"] > 0 for r in ctx.results):
            return

        remaining = [c for c in result["passed_courses"] if c["name"] != self.course]
        refresh_category(result, remaining)
        # every retracted offering leaves the total, not just the first
        ctx.effective_total -= sum(c["credit"] for c in removed)
        if result["passed_count"] < result["required_count"]:
            result["is_met"] = False
            result["limit_exceeded"] = True
            result["exceeded_message"] = self.message


class ExclusiveSubgroups(ProgramPolicy):
    """
    Within `category`, each subgroup of equivalent electives counts once.
    The first course seen (highest credit) is kept; the others are debited
    from the effective total.
    """

    name = "exclusive_subgroups"

    def __init__(self, category: str, subgroups: list[list[str]]):
        self.category = category
        self.course_to_group = {
            name: idx for idx, group in enumerate(subgroups) for name in group
        }

    def required_categories(self):
        return [(self.category, "exact")]

    def postprocess_categories(self, ctx):
        result = next((r for r in ctx.results if r["category"] == self.category), None)
        if result is None:
            _missing(self, ctx.program_id, f"category '{self.category}'")
            return
        used = set()
        kept = []
        for course in result["passed_courses"]:
            group = self.course_to_group.get(course["name"])
            if group is None:
                kept.append(course)
            elif group not in used:
                used.add(group)
                kept.append(course)
            else:
                ctx.effective_total -= course["credit"]
        refresh_category(result, kept)


class AverageScoreGate(ProgramPolicy):
    """
    Completion also needs a credit-weighted average score at or above
    `threshold`, over counted non-prerequisite courses (each name+semester once).
    """

    name = "average_score_gate"

    def __init__(self, threshold: float):
        self.threshold = threshold

    def postprocess_categories(self, ctx):
        seen = set()
        weighted = 0.0
        credits = 0.0
        for result in ctx.results:
            if "先修" in result["category"]:
                continue
            for course in result["passed_courses"]:
                key = (course["name"], course["semester"])
                if key in seen:
                    continue
                seen.add(key)
                score = parse_score(course["score"])
                if score is None:
                    continue
                weighted += score * course["credit"]
                credits += course["credit"]

        average = weighted / credits if credits > 0 else 0.0
        ctx.avg_score_required = True
        ctx.avg_score = average
        ctx.avg_score_threshold = self.threshold
        ctx.avg_score_met = average >= self.threshold


class MajorRestriction(ProgramPolicy):
    """
    Eligibility by the student's registered major.
    business_only=True admits only business-college majors; False excludes them.
    """

    name = "major_restriction"

    def __init__(self, business_only: bool, message: str):
        self.business_only = business_only
        self.message = message

    def is_restricted(self, major: str, business_majors) -> bool:
        is_business = major in business_majors
        return not is_business if self.business_only else is_business

    def postprocess_categories(self, ctx):
        if self.is_restricted(ctx.major, ctx.business_majors):
            ctx.restriction_message = self.message


# ── Registry ──────────────────────────────────────────────────────────────────

_MARKETING_SUBGROUPS = [
    ["公共關係管理", "公共關係概論", "公共關係理論", "公關管理專題－危機溝通"],
    ["服務業行銷", "服務行銷管理"],
    ["多變量分析", "多變量統計分析"],
    ["財務行銷", "財務行銷實務專題"],
    ["品牌行銷專題研究", "專題研究－品牌行銷"],
]

_HR_PROCEDURE_CATEGORIES = ["程序課程：管理類", "程序課程：勞工關係類", "程序課程：行為類"]


def _hr_procedure_minimum() -> CombinedCountMinimum:
    return CombinedCountMinimum(
        _HR_PROCEDURE_CATEGORIES,
        min_count=2,
        label="程序課程總門數檢核",
        message="程序課程三類（管理類、勞工關係類、行為類）總共須至少修習 2 門",
        match="exact",
    )


def _marketing_policies() -> tuple:
    return (
        ExclusiveSubgroups("選修課程", _MARKETING_SUBGROUPS),
        AverageScoreGate(80.0),
    )


PROGRAM_POLICIES: dict[str, tuple[ProgramPolicy, ...]] = {
    "southeast_asian_area_studies": (
        InstructorCap(limit=2),
    ),
    "modern_society_body_gender": (
        ExtraGeneralEducation([
            "自我、身體、文化",
            "同志生命美學",
            "臺灣電影與文學中的性別",
            "身心障礙與臺灣藝文",
            "藝術、自我探索與文化溯源",
        ]),
    ),
    "CFA": (
        PendingAsPassed(["中級會計學（二）", "投資學", "商事法", "民法概要"]),
        AverageScoreGate(80.0),
    ),
    "patent": (
        GroupCreditCaps([
            (["微積分"], 2.0),
            (["民法概要", "民法總則", "民法債編總論（一）", "民法債編總論（二）"], 6.0),
            (["普通物理學實驗", "普通物理學實驗（一）", "普通物理學實驗（二）"], 2.0),
        ]),
        DualCategoryCourse("民法概要", primary="商學院", secondary="法學院"),
    ),
    "fintech": (
        SubstitutionGroup(["計算機概論", "計算機程式設計", "計算機程式"]),
        OverlapElectiveAssignment(
            [
                "機器學習與人工智慧個案實作",
                "商業資料分析基礎：Python （一）",
                "商業資料分析：Python（1）",
                "程式設計與統計軟體(實務)",
                "用Python學財務計量",
            ],
            group_a="群A",
            group_b="群B",
            overflow="選修C",
        ),
        CombinedCountMinimum(
            ["群A", "群B"],
            min_count=3,
            label="群A + 群B 總修習門數",
            message="群A與群B合計須至少修習 3 門",
            insert_after="群B",
        ),
    ),
    "precision_health": (
        GroupDiversification(
            ["群A", "群B", "群C", "群D"],
            min_groups=2,
            label="跨群選修要求 (A-D群至少兩群)",
            message="須於群A至群D中至少修習兩群課程",
        ),
    ),
    "southeast_asia_culture_religion_interdisciplinary": (
        PairedSemesterRequirement(
            "語言領域",
            ["初級越語", "初級印尼語", "初級泰語"],
            message="須修畢同一語言之第一學期及第二學期課程（如：初級越語 上/下學期）",
        ),
    ),
    "human_resource_management_undergraduate": (
        _hr_procedure_minimum(),
    ),
    "human_resource_management_master": (
        _hr_procedure_minimum(),
        DependentCourse(
            "組織行為專題研究",
            category="必修：管理心理學",
            companion="程序課程：行為類",
            message="修習「組織行為專題研究」須另修習至少一門行為類程序課程始得認列",
        ),
    ),
    "marketing_undergraduate": _marketing_policies(),
    "marketing_master": _marketing_policies(),
    "real_property_financial_management": (
        AverageScoreGate(70.0),
    ),
    "foreign_language_student_business_primer": (
        MajorRestriction(
            business_only=False,
            message="本學程限定非商學院學生修習（商學院學生無法申請）",
        ),
    ),
    "management_accounting": (
        SingleCategoryEvaluation("經濟學", gated_min_credits=6.0),
        MajorRestriction(
            business_only=True,
            message="本學程限定商學院學生修習（非商學院學生無法申請）",
        ),
    ),
}


def get_policies(program_id: str) -> tuple[ProgramPolicy, ...]:
    return PROGRAM_POLICIES.get(program_id, ())


def is_program_restricted(program_id: str, major: str, business_majors) -> bool:
    """True when a major restriction on this program excludes the student."""
    return any(
        isinstance(p, MajorRestriction) and p.is_restricted(major, business_majors)
        for p in get_policies(program_id)
    )
