import pytest

from recommender import (
    RECOMMEND_MIN_RATE,
    completion_rate,
    rank_recommendations,
    recommend_programs,
)


def _program(course, min_credits=10):
    return {
        "name": f"{course} 學程",
        "min_credits": min_credits,
        "requirements": [{"category": "核心課程", "courses": [course]}],
    }


def _row(program_id, rate):
    return {
        "programID": program_id,
        "programName": program_id,
        "type": "credit",
        "totalPassedCredits": rate * 10,
        "minCredits": 10.0,
        "passedPrereqCredits": 0.0,
        "completionRate": rate,
        "isCompleted": False,
        "isRestricted": False,
    }


class TestCompletionRate:
    def test_includes_prerequisite_credits(self):
        result = {
            "totalPassedCredits": "6.0",
            "minRequiredCredits": "12.0",
            "categoryResults": [
                {"category": "先修課程", "passedCredits": 3.0, "requiredCredits": 3.0},
                {"category": "核心課程", "passedCredits": 6.0, "requiredCredits": 0.0},
            ],
        }
        passed, required, prereq_passed, rate = completion_rate(result)
        assert (passed, required, prereq_passed) == (6.0, 12.0, 3.0)
        assert rate == pytest.approx(9.0 / 15.0)

    def test_zero_requirement_rate_is_zero(self):
        result = {"totalPassedCredits": "0.0", "minRequiredCredits": "0.0", "categoryResults": []}
        assert completion_rate(result)[3] == 0.0


class TestRankRecommendations:
    def test_ties_share_rank(self):
        ranked = rank_recommendations([_row("a", 0.9), _row("b", 0.5), _row("c", 0.9)])
        assert [(r["programID"], r["rank"]) for r in ranked] == [("a", 1), ("c", 1), ("b", 2)]

    def test_dense_rank_cut_keeps_ties(self):
        rates = [0.9, 0.8, 0.7, 0.6, 0.5, 0.5, 0.4]
        ranked = rank_recommendations([_row(f"p{i}", r) for i, r in enumerate(rates)])
        assert [r["rank"] for r in ranked] == [1, 2, 3, 4, 5, 5]

    def test_below_threshold_dropped(self):
        ranked = rank_recommendations([_row("a", RECOMMEND_MIN_RATE), _row("b", 0.19)])
        assert [r["programID"] for r in ranked] == ["a"]

    def test_empty(self):
        assert rank_recommendations([]) == []

    def test_native_types(self):
        ranked = rank_recommendations([_row("a", 0.9)])
        assert type(ranked[0]["rank"]) is int
        assert type(ranked[0]["completionRate"]) is float
        assert type(ranked[0]["isRestricted"]) is bool


class TestRecommendPrograms:
    @pytest.fixture
    def catalog(self, make_catalog):
        programs = {f"p{i}": _program(f"K{i}") for i in range(10)}
        return make_catalog(programs)

    def test_ten_program_scan(self, catalog, make_course):
        courses = [
            make_course("K1", credit=9),
            make_course("K2", credit=9),
            make_course("K3", credit=5),
            make_course("K4", credit=1),
        ]
        ranked = recommend_programs(courses, catalog, max_workers=3)
        assert [(r["programID"], r["rank"]) for r in ranked] == [("p1", 1), ("p2", 1), ("p3", 2)]
        assert ranked[0]["completionRate"] == pytest.approx(0.9)
        assert ranked[0]["programName"] == "K1 學程"
        assert ranked[0]["type"] == "credit"

    def test_worker_count_does_not_change_result(self, catalog, make_course):
        courses = [make_course("K1", credit=9), make_course("K3", credit=5)]
        assert recommend_programs(courses, catalog, max_workers=1) == recommend_programs(courses, catalog, max_workers=8)

    def test_restricted_program_flagged(self, make_catalog, make_course):
        catalog = make_catalog({"management_accounting": _program("經濟學", min_credits=6)})
        courses = [make_course("經濟學", semester="112-1"), make_course("經濟學", semester="112-2")]
        ranked = recommend_programs(courses, catalog, major="英國語文學系")
        assert ranked[0]["isRestricted"] is True
        assert ranked[0]["isCompleted"] is False
