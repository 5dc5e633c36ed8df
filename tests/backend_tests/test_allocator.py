import pytest

from allocator import (
    evaluate_categories,
    evaluate_category,
    general_education_record,
    is_category_met,
    refresh_category,
)
from requirements import GE_CATEGORY_LABEL, GROUP_CAP_MESSAGE


def _category(label="核心課程", courses=("A", "B", "C"), **limits):
    return {"category": label, "courses": list(courses), **limits}


class TestEvaluateCategory:
    def test_counts_and_credits(self, make_course):
        completed = [make_course("A", credit=3), make_course("B", credit=2), make_course("Z", credit=3)]
        result, contributed = evaluate_category(_category(min_count=2), completed)
        assert result["passed_count"] == 2
        assert result["passed_credits"] == 5.0
        assert result["is_met"] is True
        assert contributed == 5.0
        assert [c["name"] for c in result["passed_courses"]] == ["A", "B"]

    def test_credit_minimum_also_required(self, make_course):
        result, _ = evaluate_category(_category(min_count=1, min_credits=6), [make_course("A", credit=3)])
        assert result["passed_count"] == 1
        assert result["is_met"] is False

    def test_max_count_clips_contribution(self, make_course):
        completed = [make_course("A", credit=3), make_course("B", credit=3), make_course("C", credit=2)]
        result, contributed = evaluate_category(_category(min_count=1, max_count=2), completed)
        assert contributed == 6.0
        assert result["passed_credits"] == 8.0
        assert result["limit_exceeded"] is True
        assert result["exceeded_message"] == "超過門數上限 (至多 2 門)"

    def test_max_credits_clips_crossing_course(self, make_course):
        completed = [make_course("A", credit=4), make_course("B", credit=3), make_course("C", credit=3)]
        result, contributed = evaluate_category(_category(max_credits=9), completed)
        assert contributed == 9.0
        assert result["limit_exceeded"] is True
        assert result["exceeded_message"] == "超過學分上限 (至多 9.0 學分)"

    def test_highest_credit_counted_first(self, make_course):
        completed = [make_course("C", credit=1), make_course("A", credit=4)]
        result, contributed = evaluate_category(_category(max_count=1), completed)
        assert contributed == 4.0
        assert result["passed_courses"][0]["name"] == "A"

    def test_capped_course_flags_category(self, make_course):
        capped = {**make_course("A", credit=1), "is_capped": True}
        result, _ = evaluate_category(_category(), [capped])
        assert result["limit_exceeded"] is True
        assert result["exceeded_message"] == GROUP_CAP_MESSAGE

    def test_prerequisite_defaults_to_all_courses(self, make_course):
        label = "先修課程"
        result, contributed = evaluate_category(_category(label, courses=("會計學", "經濟學")),
                                                [make_course("會計學")])
        assert result["required_count"] == 2
        assert result["is_met"] is False
        assert contributed == 0.0

    def test_prerequisite_met_contributes_nothing(self, make_course):
        completed = [make_course("會計學"), make_course("經濟學")]
        result, contributed = evaluate_category(_category("先修課程", courses=("會計學", "經濟學")), completed)
        assert result["is_met"] is True
        assert result["passed_credits"] == 6.0
        assert contributed == 0.0

    def test_empty_category_with_no_minimum_is_met(self):
        result, contributed = evaluate_category(_category(courses=()), [])
        assert result["is_met"] is True
        assert contributed == 0.0


class TestEvaluateCategories:
    def test_shared_course_counts_in_each(self, make_course):
        categories = [_category("甲", courses=("A",), min_count=1), _category("乙", courses=("A", "B"), min_count=1)]
        results, total = evaluate_categories(categories, [make_course("A", credit=3)])
        assert [r["is_met"] for r in results] == [True, True]
        assert total == 6.0

    def test_results_keep_category_order(self, make_course):
        categories = [_category("乙"), _category("甲")]
        results, _ = evaluate_categories(categories, [])
        assert [r["category"] for r in results] == ["乙", "甲"]


class TestRefreshCategory:
    def test_recomputes_met(self, make_course):
        result, _ = evaluate_category(_category(min_count=2), [make_course("A"), make_course("B")])
        assert is_category_met(result)
        refresh_category(result, [make_course("A")])
        assert result["passed_count"] == 1
        assert result["passed_credits"] == pytest.approx(3.0)
        assert result["is_met"] is False


class TestGeneralEducationRecord:
    def test_lists_excluded_courses(self, make_course):
        record = general_education_record([make_course("通識二")], [make_course("通識一"), make_course("通識三")])
        assert record["category"] == GE_CATEGORY_LABEL
        assert record["is_met"] is True
        assert record["limit_exceeded"] is True
        assert record["exceeded_message"].endswith("；未採計：通識一、通識三")
        assert record["passed_count"] == 1
