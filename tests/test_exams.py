import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.models import StudentExamScore
from sponsorship_admin.core.spreadsheets import XLSX_MEDIA_TYPE, build_xlsx


async def _student(client: AsyncClient, headers, admission_number: str, name: str) -> dict:
    response = await client.post(
        "/api/v1/students", json={"admission_number": admission_number, "name": name}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _exam(client: AsyncClient, headers, **overrides) -> dict:
    payload = {"name": "End of Term", "term": "Term 1", "exam_date": "2023-04-01", "max_score": 80, "passing_score": 40}
    payload.update(overrides)
    response = await client.post("/api/v1/exams", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_exam_defaults_to_current_year_and_validates_scores(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    exam = await _exam(client, headers)
    assert exam["academic_year"] == "2023"

    invalid = await client.post(
        "/api/v1/exams", json={"name": "Quiz", "term": "Term 1", "max_score": 10, "passing_score": 20}, headers=headers
    )
    assert invalid.status_code == 422

    unknown_year = await client.post(
        "/api/v1/exams", json={"name": "Quiz", "term": "Term 1", "academic_year": "1999"}, headers=headers
    )
    assert unknown_year.status_code == 404


@pytest.mark.asyncio
async def test_record_scores_and_statistics(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    peter = await _student(client, headers, "ADM-002", "Peter Otieno")
    amina = await _student(client, headers, "ADM-003", "Amina Hassan")
    exam = await _exam(client, headers)
    scores_url = f"/api/v1/exams/{exam['id']}/scores"

    response = await client.post(scores_url, json={"student_id": jane["id"], "score": 68}, headers=headers)
    assert response.status_code == 200
    score = response.json()
    assert score["percentage"] == 85.0
    assert score["grade"] == "EE"
    assert score["grade_description"] == "Exceeding Expectation"
    assert score["passed"] is True

    await client.post(scores_url, json={"student_id": peter["id"], "score": 30}, headers=headers)
    await client.post(scores_url, json={"student_id": amina["id"], "did_not_sit": True}, headers=headers)

    too_high = await client.post(scores_url, json={"student_id": peter["id"], "score": 81}, headers=headers)
    assert too_high.status_code == 400
    missing = await client.post(scores_url, json={"student_id": peter["id"]}, headers=headers)
    assert missing.status_code == 422

    detail = (await client.get(f"/api/v1/exams/{exam['id']}", headers=headers)).json()
    stats = detail["statistics"]
    assert stats["students_taken"] == 3
    assert stats["did_not_sit"] == 1
    assert stats["average_percentage"] == 61.25
    assert stats["highest_percentage"] == 85.0
    assert stats["lowest_percentage"] == 37.5
    assert stats["pass_count"] == 1
    assert stats["pass_rate"] == 50.0
    assert stats["grade_distribution"] == {"EE": 1, "BE": 1}
    assert [s["student_name"] for s in detail["scores"]] == ["Amina Hassan", "Jane Wanjiru", "Peter Otieno"]
    assert detail["scores"][0]["percentage"] is None


@pytest.mark.asyncio
async def test_score_overwrite_keeps_one_score_per_student(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    exam = await _exam(client, headers)
    scores_url = f"/api/v1/exams/{exam['id']}/scores"

    first = (await client.post(scores_url, json={"student_id": jane["id"], "score": 20}, headers=headers)).json()
    second = (await client.post(scores_url, json={"student_id": jane["id"], "score": 60}, headers=headers)).json()
    assert first["id"] == second["id"]

    detail = (await client.get(f"/api/v1/exams/{exam['id']}", headers=headers)).json()
    assert [s["score"] for s in detail["scores"]] == [60]

    assert (await client.delete(f"{scores_url}/{jane['id']}", headers=headers)).status_code == 204
    assert (await client.delete(f"{scores_url}/{jane['id']}", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_past_year_score_edit_is_what_results_show(
    client: AsyncClient, db_session: AsyncSession, headers, make_year, authority
) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    exam = await _exam(client, headers)
    scores_url = f"/api/v1/exams/{exam['id']}/scores"
    await client.post(scores_url, json={"student_id": jane["id"], "score": 30}, headers=headers)

    await authority.set_current_year(year_2024.id)
    corrected = await client.post(scores_url, json={"student_id": jane["id"], "score": 50}, headers=headers)
    assert corrected.json()["academic_year_recorded"] == "2023"
    stored = (
        await db_session.execute(
            select(
                StudentExamScore.academic_year_recorded, StudentExamScore.score, StudentExamScore.is_current_record
            )
        )
    ).all()
    assert [tuple(row) for row in stored] == [("2023", 50, True)]

    results = (await client.get(f"/api/v1/students/{jane['id']}/exam-results", headers=headers)).json()
    assert [(r["exam_name"], r["score"], r["grade"]) for r in results] == [("End of Term", 50, "ME")]

    detail = (await client.get(f"/api/v1/exams/{exam['id']}", headers=headers)).json()
    assert [s["score"] for s in detail["scores"]] == [50]
    assert "2023" in detail["exam"]["warning"]

    # The current-year list shows only 2024 exams
    assert (await client.get("/api/v1/exams", headers=headers)).json() == []
    listed = (await client.get("/api/v1/exams", params={"academic_year": "2023"}, headers=headers)).json()
    assert [e["id"] for e in listed] == [exam["id"]]


@pytest.mark.asyncio
async def test_exam_update_rules(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    await make_year("2024")
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    exam = await _exam(client, headers)
    exam_url = f"/api/v1/exams/{exam['id']}"

    response = await client.put(exam_url, json={"passing_score": 90}, headers=headers)
    assert response.status_code == 400

    await client.post(f"{exam_url}/scores", json={"student_id": jane["id"], "score": 70}, headers=headers)
    response = await client.put(exam_url, json={"max_score": 60}, headers=headers)
    assert response.status_code == 400
    response = await client.put(exam_url, json={"academic_year": "2024"}, headers=headers)
    assert response.status_code == 400

    renamed = await client.put(exam_url, json={"name": "Mid Term", "max_score": 100}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Mid Term"
    detail = (await client.get(exam_url, headers=headers)).json()
    assert detail["scores"][0]["percentage"] == 70.0


@pytest.mark.asyncio
async def test_delete_exam_removes_scores(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    exam = await _exam(client, headers)
    await client.post(f"/api/v1/exams/{exam['id']}/scores", json={"student_id": jane["id"], "score": 70}, headers=headers)

    assert (await client.delete(f"/api/v1/exams/{exam['id']}", headers=headers)).status_code == 204
    assert (await client.get(f"/api/v1/exams/{exam['id']}", headers=headers)).status_code == 404
    assert (await client.get(f"/api/v1/students/{jane['id']}/exam-results", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_import_scores(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023", is_current=True)
    jane = await _student(client, headers, "ADM-001", "Jane Wanjiru")
    peter = await _student(client, headers, "ADM-002", "Peter Otieno")
    exam = await _exam(client, headers)
    content = build_xlsx(
        "Scores",
        ("admission_number", "score", "did_not_sit"),
        [
            ("ADM-001", 56, "no"),
            ("ADM-001", 60, "no"),
            ("ADM-002", None, "yes"),
            ("ADM-404", 50, "no"),
            ("ADM-003", 200, "no"),
        ],
    )

    response = await client.post(
        f"/api/v1/exams/{exam['id']}/scores/import",
        files={"file": ("scores.xlsx", content, XLSX_MEDIA_TYPE)},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["recorded"] == 2
    assert [(s["row"], s["reason"]) for s in result["skipped"]] == [
        (3, "Duplicate row for this student"),
        (5, "Student not found"),
        (6, "Student not found"),
    ]

    detail = (await client.get(f"/api/v1/exams/{exam['id']}", headers=headers)).json()
    by_student = {s["student_id"]: s for s in detail["scores"]}
    assert by_student[jane["id"]]["score"] == 56
    assert by_student[peter["id"]]["did_not_sit"] is True


@pytest.mark.asyncio
async def test_score_template(client: AsyncClient, headers) -> None:
    response = await client.get("/api/v1/exams/score-template", headers=headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
