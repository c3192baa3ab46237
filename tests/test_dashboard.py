import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_dashboard_summarises_the_current_year(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023")
    await make_year("2024", is_current=True)
    jane = (
        await client.post("/api/v1/students", json={"admission_number": "ADM-001", "name": "Jane Wanjiru"}, headers=headers)
    ).json()
    peter = (
        await client.post(
            "/api/v1/students", json={"admission_number": "ADM-002", "name": "Peter Otieno", "status": "inactive"}, headers=headers
        )
    ).json()
    sponsor = (
        await client.post(
            "/api/v1/sponsors", json={"first_name": "Anna", "last_name": "Berg", "email": "anna@example.org"}, headers=headers
        )
    ).json()
    await client.post(f"/api/v1/sponsors/{sponsor['id']}/students", json={"student_ids": [jane["id"]]}, headers=headers)

    exam = (await client.post("/api/v1/exams", json={"name": "End of Term", "term": "Term 1"}, headers=headers)).json()
    await client.post("/api/v1/exams", json={"name": "Old Exam", "term": "Term 3", "academic_year": "2023"}, headers=headers)
    await client.post(f"/api/v1/exams/{exam['id']}/scores", json={"student_id": jane["id"], "score": 70}, headers=headers)
    await client.post(f"/api/v1/exams/{exam['id']}/scores", json={"student_id": peter["id"], "score": 30}, headers=headers)

    response = await client.get("/api/v1/dashboard", headers=headers)
    assert response.status_code == 200
    body = response.json()

    assert body["academic_year"] == "2024"
    assert body["counts"] == {
        "students": 2,
        "active_students": 1,
        "sponsors": 1,
        "active_sponsors": 1,
        "exams": 1,
        "unassigned_students": 1,
    }
    assert [(s["student_name"], s["sponsor_name"]) for s in body["recent_sponsorships"]] == [("Jane Wanjiru", "Anna Berg")]
    assert len(body["recent_activity"]) > 0

    performance = body["exam_performance"]
    assert len(performance) == 1
    assert performance[0]["students_taken"] == 2
    assert performance[0]["average_percentage"] == 50.0
    assert performance[0]["pass_rate"] == 50.0


@pytest.mark.asyncio
async def test_dashboard_without_any_year(client: AsyncClient, headers) -> None:
    body = (await client.get("/api/v1/dashboard", headers=headers)).json()
    assert body["academic_year"] is None
    assert body["exam_performance"] == []
    assert body["counts"]["students"] == 0
