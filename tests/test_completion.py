import copy
import json

import pytest

from completion import check_program_completion


@pytest.fixture
def abc_catalog(make_catalog):
    return make_catalog({
        "abc": {
            "name": "ABC 學程",
            "min_credits": 6,
            "description": "測試用學程",
            "requirements": [{"category": "核心課程", "min_count": 2, "courses": ["A", "B", "C"]}],
        }
    })


class TestCheckProgramCompletion:
    def test_failed_and_pending_courses(self, abc_catalog, make_course):
        courses = [
            make_course("A", score="70"),
            make_course("B", score="55"),
            make_course("C", score="成績未到或無成績"),
        ]
        result = check_program_completion("abc", courses, abc_catalog)
        core = result["categoryResults"][0]
        assert core["passedCount"] == 1
        assert core["isMet"] is False
        assert [c["name"] for c in core["passedCourses"]] == ["A"]
        assert [c["name"] for c in result["inProgressCourses"]] == ["C"]
        assert result["totalPassedCredits"] == "3.0"
        assert result["minRequiredCredits"] == "6.0"
        assert result["isCompleted"] is False

    def test_completed_program(self, abc_catalog, make_course):
        result = check_program_completion("abc", [make_course("A"), make_course("B")], abc_catalog)
        assert result["programName"] == "ABC 學程"
        assert result["programDescription"] == "測試用學程"
        assert result["totalCreditsMet"] is True
        assert result["allCategoriesMet"] is True
        assert result["isCompleted"] is True
        assert result["avgScoreRequired"] is False

    def test_wire_format_has_no_nulls(self, abc_catalog, make_course):
        result = check_program_completion("abc", [make_course("A")], abc_catalog)
        assert None not in result.values()
        for category in result["categoryResults"]:
            assert None not in category.values()
            assert isinstance(category["passedCourses"], list)

    def test_deterministic(self, abc_catalog, make_course):
        courses = [make_course("A"), make_course("C", credit=2), make_course("B", score="59")]
        first = check_program_completion("abc", courses, abc_catalog)
        second = check_program_completion("abc", courses, abc_catalog)
        assert json.dumps(first, ensure_ascii=False) == json.dumps(second, ensure_ascii=False)

    def test_unrelated_course_changes_nothing(self, abc_catalog, make_course):
        courses = [make_course("A"), make_course("B", score="成績未到或無成績")]
        before = check_program_completion("abc", courses, abc_catalog)
        after = check_program_completion("abc", courses + [make_course("Z", credit=4)], abc_catalog)
        assert before == after

    def test_inputs_not_mutated(self, make_catalog, make_course):
        catalog = make_catalog({
            "patent": {
                "name": "專利學分學程",
                "min_credits": 2,
                "requirements": [{"category": "理工學院", "min_count": 1, "courses": ["微積分"]}],
            }
        })
        courses = [make_course("微積分", credit=4)]
        snapshot_courses = copy.deepcopy(courses)
        snapshot_program = copy.deepcopy(dict(catalog.programs["patent"]))

        result = check_program_completion("patent", courses, catalog)

        assert result["categoryResults"][0]["passedCredits"] == 2.0
        assert courses == snapshot_courses
        assert dict(catalog.programs["patent"]) == snapshot_program

    def test_unknown_program(self, abc_catalog, make_course):
        result = check_program_completion("nope", [make_course("A")], abc_catalog)
        assert result["programName"] == "學程 ID nope 不存在"
        assert result["isCompleted"] is False
        assert result["categoryResults"] == []
        assert result["inProgressCourses"] == []

    def test_prerequisites_excluded_from_total(self, make_catalog, make_course):
        catalog = make_catalog({
            "pre": {
                "name": "先修測試",
                "min_credits": 3,
                "requirements": [
                    {"category": "先修課程", "courses": ["會計學"]},
                    {"category": "核心課程", "min_count": 1, "courses": ["投資學"]},
                ],
            }
        })
        result = check_program_completion("pre", [make_course("會計學"), make_course("投資學")], catalog)
        assert result["totalPassedCredits"] == "3.0"
        assert result["categoryResults"][0]["passedCredits"] == 3.0
        assert result["isCompleted"] is True

    def test_credit_ceiling_limits_total(self, make_catalog, make_course):
        catalog = make_catalog({
            "cap": {
                "name": "上限測試",
                "min_credits": 6,
                "requirements": [{"category": "選修課程", "max_credits": 4, "courses": ["A", "B"]}],
            }
        })
        result = check_program_completion("cap", [make_course("A"), make_course("B")], catalog)
        elective = result["categoryResults"][0]
        assert elective["passedCredits"] == 6.0
        assert elective["limitExceeded"] is True
        assert result["totalPassedCredits"] == "4.0"
        assert result["totalCreditsMet"] is False

    def test_general_education_single_slot(self, make_catalog, make_course):
        catalog = make_catalog({
            "ge": {
                "name": "通識測試",
                "min_credits": 3,
                "general_education_courses": ["通識一", "通識二"],
                "requirements": [{"category": "選修課程", "courses": ["通識一", "通識二"]}],
            }
        })
        courses = [make_course("通識一", credit=2), make_course("通識二", credit=3)]
        result = check_program_completion("ge", courses, catalog)
        elective, ge = result["categoryResults"]
        assert [c["name"] for c in elective["passedCourses"]] == ["通識二"]
        assert ge["category"] == "通識課程 (全域限制)"
        assert ge["exceededMessage"].endswith("通識一")
        assert result["totalPassedCredits"] == "3.0"


class TestInstructorCapScenario:
    def test_two_highest_credit_courses_counted(self, make_catalog, make_course):
        catalog = make_catalog({
            "southeast_asian_area_studies": {
                "name": "東南亞區域研究微學程",
                "min_credits": 6,
                "requirements": [{
                    "category": "選修課程",
                    "min_count": 2,
                    "courses": ["政治(王老師)", "經濟(王老師)", "宗教(王老師)"],
                }],
            }
        })
        courses = [
            make_course("宗教", credit=2),
            make_course("政治", credit=3),
            make_course("經濟", credit=3),
        ]
        result = check_program_completion("southeast_asian_area_studies", courses, catalog)
        elective = result["categoryResults"][0]
        assert sorted(c["name"] for c in elective["passedCourses"]) == ["政治", "經濟"]
        assert result["totalPassedCredits"] == "6.0"
        assert result["isCompleted"] is True
