import pytest
from httpx import AsyncClient


async def _create_sponsor(client: AsyncClient, headers, **overrides) -> dict:
    payload = {"first_name": "Anna", "last_name": "Berg", "email": "anna@example.org"}
    payload.update(overrides)
    response = await client.post("/api/v1/sponsors", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_student(client: AsyncClient, headers, admission_number: str, name: str) -> dict:
    response = await client.post(
        "/api/v1/students", json={"admission_number": admission_number, "name": name}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_sponsor_with_slug(client: AsyncClient, headers) -> None:
    sponsor = await _create_sponsor(client, headers)
    assert sponsor["slug"] == "anna-berg"
    assert sponsor["student_count"] == 0

    namesake = await _create_sponsor(client, headers, email="anna.b@example.org")
    assert namesake["slug"] == "anna-berg-1"

    by_slug = await client.get("/api/v1/sponsors/anna-berg-1", headers=headers)
    assert by_slug.json()["id"] == namesake["id"]


@pytest.mark.asyncio
async def test_primary_update_email_must_be_one_of_the_sponsors_addresses(client: AsyncClient, headers) -> None:
    rejected = await client.post(
        "/api/v1/sponsors",
        json={
            "first_name": "Anna",
            "last_name": "Berg",
            "email": "anna@example.org",
            "primary_email_for_updates": "someone@example.org",
        },
        headers=headers,
    )
    assert rejected.status_code == 400

    sponsor = await _create_sponsor(client, headers, email2="anna.work@example.org")
    recipient = (await client.get(f"/api/v1/sponsors/{sponsor['id']}/update-email", headers=headers)).json()
    assert recipient == {"sponsor_id": sponsor["id"], "email": "anna@example.org", "is_primary_email": True}

    response = await client.put(
        f"/api/v1/sponsors/{sponsor['id']}/update-email",
        json={"primary_email_for_updates": "anna.work@example.org"},
        headers=headers,
    )
    assert response.json()["email"] == "anna.work@example.org"
    assert response.json()["is_primary_email"] is False

    # Dropping the secondary address resets the update recipient
    updated = await client.put(f"/api/v1/sponsors/{sponsor['id']}", json={"email2": None}, headers=headers)
    assert updated.json()["primary_email_for_updates"] is None


@pytest.mark.asyncio
async def test_rename_regenerates_slug(client: AsyncClient, headers) -> None:
    sponsor = await _create_sponsor(client, headers)
    response = await client.put(f"/api/v1/sponsors/{sponsor['id']}", json={"last_name": "Lind"}, headers=headers)
    assert response.json()["slug"] == "anna-lind"


@pytest.mark.asyncio
async def test_assign_and_remove_students(client: AsyncClient, headers, make_year, authority) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    sponsor = await _create_sponsor(client, headers)
    jane = await _create_student(client, headers, "ADM-001", "Jane Wanjiru")
    peter = await _create_student(client, headers, "ADM-002", "Peter Otieno")

    available = (await client.get("/api/v1/sponsors/available-students", headers=headers)).json()
    assert {s["id"] for s in available} == {jane["id"], peter["id"]}

    response = await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/students", json={"student_ids": [jane["id"]]}, headers=headers
    )
    assert response.status_code == 200
    assigned = response.json()["assigned"][0]
    assert assigned["sponsor_id"] == sponsor["id"]
    assert assigned["sponsored_since"] is not None

    # Already sponsored students are skipped
    again = await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/students", json={"student_ids": [jane["id"], peter["id"]]}, headers=headers
    )
    assert again.json()["skipped"] == [jane["id"]]

    detail = (await client.get(f"/api/v1/sponsors/{sponsor['id']}", headers=headers)).json()
    assert detail["student_count"] == 2
    assert [s["name"] for s in detail["students"]] == ["Jane Wanjiru", "Peter Otieno"]

    await authority.set_current_year(year_2024.id)
    removed = await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/students/{jane['id']}/remove",
        json={"reason": "Student graduated", "notes": "Finished primary school"},
        headers=headers,
    )
    assert removed.status_code == 200
    assert removed.json()["sponsor_id"] is None
    assert removed.json()["sponsored_since"] is None
    assert removed.json()["academic_year_recorded"] == "2024"

    # The 2023 record still shows who sponsored her then
    history = (await client.get(f"/api/v1/students/{jane['id']}/history", headers=headers)).json()
    assert [(h["academic_year_recorded"], h["sponsor_id"]) for h in history] == [
        ("2024", None),
        ("2023", sponsor["id"]),
    ]

    timeline = (await client.get(f"/api/v1/sponsors/{sponsor['id']}/timeline", headers=headers)).json()
    types = sorted(event["type"] for event in timeline)
    assert types == ["student_assignment", "student_assignment", "student_removal"]
    removal = next(event for event in timeline if event["type"] == "student_removal")
    assert "Student graduated" in removal["description"]
    assert "Finished primary school" in removal["description"]

    not_assigned = await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/students/{jane['id']}/remove",
        json={"reason": "Other"},
        headers=headers,
    )
    assert not_assigned.status_code == 404


@pytest.mark.asyncio
async def test_removal_reason_must_be_known(client: AsyncClient, headers, make_year) -> None:
    await make_year("2024", is_current=True)
    sponsor = await _create_sponsor(client, headers)
    student = await _create_student(client, headers, "ADM-001", "Jane Wanjiru")
    await client.post(f"/api/v1/sponsors/{sponsor['id']}/students", json={"student_ids": [student["id"]]}, headers=headers)

    response = await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/students/{student['id']}/remove",
        json={"reason": "Bored"},
        headers=headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_sponsor_unassigns_students(client: AsyncClient, headers, make_year, authority) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    sponsor = await _create_sponsor(client, headers)
    student = await _create_student(client, headers, "ADM-001", "Jane Wanjiru")
    await client.post(f"/api/v1/sponsors/{sponsor['id']}/students", json={"student_ids": [student["id"]]}, headers=headers)
    # A 2024 record rolled forward from 2023 carries the sponsor too
    await authority.set_current_year(year_2024.id)
    await client.put(f"/api/v1/students/{student['id']}", json={"current_grade": "Grade 5"}, headers=headers)
    before = (await client.get(f"/api/v1/students/{student['id']}/history", headers=headers)).json()
    assert [h["sponsor_id"] for h in before] == [sponsor["id"], sponsor["id"]]
    await client.post(
        f"/api/v1/sponsors/{sponsor['id']}/relatives", json={"name": "Erik Berg", "relationship": "Spouse"}, headers=headers
    )

    assert (await client.delete(f"/api/v1/sponsors/{sponsor['id']}", headers=headers)).status_code == 204
    assert (await client.get(f"/api/v1/sponsors/{sponsor['id']}", headers=headers)).status_code == 404

    current = (await client.get(f"/api/v1/students/{student['id']}", headers=headers)).json()
    assert current["sponsor_id"] is None
    assert current["sponsored_since"] is None

    history = (await client.get(f"/api/v1/students/{student['id']}/history", headers=headers)).json()
    assert [(h["academic_year_recorded"], h["sponsor_id"], h["sponsored_since"]) for h in history] == [
        ("2024", None, None),
        ("2023", None, None),
    ]


@pytest.mark.asyncio
async def test_bulk_status_and_delete(client: AsyncClient, headers) -> None:
    first = await _create_sponsor(client, headers)
    second = await _create_sponsor(client, headers, first_name="Bo", email="bo@example.org")
    ids = [first["id"], second["id"]]

    response = await client.post("/api/v1/sponsors/bulk-status", json={"sponsor_ids": ids, "status": "inactive"}, headers=headers)
    assert response.json() == {"affected": 2}
    inactive = (await client.get("/api/v1/sponsors", params={"status": "inactive"}, headers=headers)).json()
    assert len(inactive) == 2

    response = await client.post("/api/v1/sponsors/bulk-delete", json={"sponsor_ids": ids}, headers=headers)
    assert response.json() == {"affected": 2}
    assert (await client.get("/api/v1/sponsors", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_sponsor_relatives_and_timeline(client: AsyncClient, headers) -> None:
    sponsor = await _create_sponsor(client, headers)
    base = f"/api/v1/sponsors/{sponsor['id']}"

    relative = (await client.post(f"{base}/relatives", json={"name": "Erik Berg", "relationship": "Spouse"}, headers=headers)).json()
    updated = await client.put(f"{base}/relatives/{relative['id']}", json={"relationship": "Partner"}, headers=headers)
    assert updated.json()["relationship"] == "Partner"
    assert (await client.delete(f"{base}/relatives/{relative['id']}", headers=headers)).status_code == 204

    event = await client.post(f"{base}/timeline", json={"title": "Visited the school"}, headers=headers)
    assert event.status_code == 201
    timeline = (await client.get(f"{base}/timeline", headers=headers)).json()
    assert [e["title"] for e in timeline] == ["Visited the school"]
    assert (await client.delete(f"{base}/timeline/{event.json()['id']}", headers=headers)).status_code == 204
