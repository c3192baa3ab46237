from typing import List

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.academic_years import AcademicYearAuthority, YearChanged, YearChangeNotifier
from sponsorship_admin.core.exceptions import NotFoundError, TransientIOError
from sponsorship_admin.core.models import AcademicYear


@pytest.mark.asyncio
async def test_current_year_falls_back_to_most_recent(authority: AcademicYearAuthority, make_year) -> None:
    assert await authority.get_current_year() is None

    await make_year("2022")
    await make_year("2024")
    await make_year("2023")

    current = await authority.get_current_year(refresh=True)
    assert current.year_name == "2024"
    assert [y.year_name for y in await authority.list_years()] == ["2024", "2023", "2022"]


@pytest.mark.asyncio
async def test_set_current_year_flags_exactly_one(
    db_session: AsyncSession, authority: AcademicYearAuthority, make_year
) -> None:
    year_a = await make_year("2023", is_current=True)
    year_b = await make_year("2024")

    switched = await authority.set_current_year(year_b.id)
    assert switched.year_name == "2024"
    assert (await authority.get_current_year()).year_name == "2024"

    flagged = (await db_session.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True)))).scalars().all()
    assert [y.year_name for y in flagged] == ["2024"]
    await db_session.refresh(year_a)
    assert year_a.is_current is False

    # A fresh authority sees the same answer
    assert (await AcademicYearAuthority(db_session).current_year_name()) == "2024"


@pytest.mark.asyncio
async def test_set_current_year_notifies_subscribers(db_session: AsyncSession, make_year) -> None:
    year_a = await make_year("2023", is_current=True)
    year_b = await make_year("2024")
    notifier = YearChangeNotifier()
    events: List[YearChanged] = []

    async def listener(event: YearChanged) -> None:
        events.append(event)

    notifier.subscribe(listener)
    authority = AcademicYearAuthority(db_session, notifier=notifier)

    await authority.set_current_year(year_b.id)
    await authority.set_current_year(year_b.id)  # no change, no event
    await authority.set_current_year(year_a.id)

    assert events == [YearChanged(previous="2023", current="2024"), YearChanged(previous="2024", current="2023")]


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_the_switch(db_session: AsyncSession, make_year) -> None:
    await make_year("2023", is_current=True)
    year_b = await make_year("2024")
    notifier = YearChangeNotifier()
    received: List[str] = []

    async def broken(event: YearChanged) -> None:
        raise RuntimeError("listener failed")

    async def healthy(event: YearChanged) -> None:
        received.append(event.current)

    notifier.subscribe(broken)
    notifier.subscribe(healthy)
    authority = AcademicYearAuthority(db_session, notifier=notifier)

    await authority.set_current_year(year_b.id)
    assert received == ["2024"]


@pytest.mark.asyncio
async def test_failed_switch_keeps_selection_and_publishes_nothing(
    db_session: AsyncSession, make_year, monkeypatch
) -> None:
    await make_year("2023", is_current=True)
    year_b = await make_year("2024")
    notifier = YearChangeNotifier()
    events: List[YearChanged] = []

    async def listener(event: YearChanged) -> None:
        events.append(event)

    notifier.subscribe(listener)
    authority = AcademicYearAuthority(db_session, notifier=notifier)
    assert await authority.current_year_name() == "2023"

    async def failing_commit() -> None:
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(TransientIOError):
        await authority.set_current_year(year_b.id)
    monkeypatch.undo()

    assert await authority.current_year_name() == "2023"
    assert events == []
    assert (await AcademicYearAuthority(db_session).current_year_name()) == "2023"


@pytest.mark.asyncio
async def test_resolve_view_year_rejects_unknown_year(authority: AcademicYearAuthority, make_year) -> None:
    await make_year("2024", is_current=True)
    assert await authority.resolve_view_year(None) == "2024"
    assert await authority.resolve_view_year("2024") == "2024"
    with pytest.raises(NotFoundError):
        await authority.resolve_view_year("1999")


@pytest.mark.asyncio
async def test_academic_year_api(client: AsyncClient, headers) -> None:
    response = await client.post(
        "/api/v1/academic-years",
        json={"year_name": "2023", "start_date": "2023-01-01", "end_date": "2023-12-31", "set_as_current": True},
        headers=headers,
    )
    assert response.status_code == 201
    year_2023 = response.json()
    assert year_2023["is_current"] is True

    response = await client.post(
        "/api/v1/academic-years",
        json={"year_name": "2024", "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=headers,
    )
    year_2024 = response.json()
    assert year_2024["is_current"] is False

    duplicate = await client.post(
        "/api/v1/academic-years",
        json={"year_name": "2024", "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=headers,
    )
    assert duplicate.status_code == 409

    response = await client.post(f"/api/v1/academic-years/{year_2024['id']}/set-current", headers=headers)
    assert response.status_code == 200

    current = (await client.get("/api/v1/academic-years/current", headers=headers)).json()
    assert current["academic_year"]["year_name"] == "2024"
    assert current["is_fallback"] is False

    years = (await client.get("/api/v1/academic-years", headers=headers)).json()
    assert [(y["year_name"], y["is_current"]) for y in years] == [("2024", True), ("2023", False)]


@pytest.mark.asyncio
async def test_academic_years_require_authentication(client: AsyncClient) -> None:
    response = await client.get("/api/v1/academic-years")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_copy_year_into_new_year_promotes_grades(client: AsyncClient, headers, make_year) -> None:
    source = await make_year("2023", is_current=True)
    for admission_number, name, grade in (("ADM-001", "Jane Wanjiru", "Grade 4"), ("ADM-002", "Peter Otieno", "Grade 7")):
        response = await client.post(
            "/api/v1/students",
            json={"admission_number": admission_number, "name": name, "current_grade": grade},
            headers=headers,
        )
        assert response.status_code == 201
    await client.post(
        "/api/v1/exams", json={"name": "End of Term", "term": "Term 1", "max_score": 100}, headers=headers
    )

    payload = {
        "source_year_id": str(source.id),
        "new_year_name": "2024",
        "new_start_date": "2024-01-01",
        "new_end_date": "2024-12-31",
        "grade_promotion": {"Grade 4": "Grade 5"},
    }
    response = await client.post("/api/v1/academic-years/copy", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    result = response.json()
    assert result["destination"]["year_name"] == "2024"
    assert result["destination"]["is_current"] is False
    assert (result["students_copied"], result["exams_copied"]) == (2, 1)

    copied = (await client.get("/api/v1/students?academic_year=2024", headers=headers)).json()
    assert sorted((s["name"], s["current_grade"]) for s in copied) == [
        ("Jane Wanjiru", "Grade 5"),
        ("Peter Otieno", "Grade 7"),
    ]

    again = await client.post(
        "/api/v1/academic-years/copy",
        json={"source_year_id": str(source.id), "destination_year_id": result["destination"]["id"]},
        headers=headers,
    )
    assert again.status_code == 200
    assert (again.json()["students_skipped"], again.json()["exams_skipped"]) == (2, 1)

    same_year = await client.post(
        "/api/v1/academic-years/copy",
        json={"source_year_id": str(source.id), "destination_year_id": str(source.id)},
        headers=headers,
    )
    assert same_year.status_code == 400

    missing_destination = await client.post(
        "/api/v1/academic-years/copy", json={"source_year_id": str(source.id)}, headers=headers
    )
    assert missing_destination.status_code == 422


@pytest.mark.asyncio
async def test_year_statistics_compare_with_previous_year(client: AsyncClient, headers, make_year) -> None:
    await make_year("2023")
    await make_year("2024", is_current=True)
    for admission_number, name in (("ADM-001", "Jane Wanjiru"), ("ADM-002", "Peter Otieno")):
        await client.post(
            "/api/v1/students", json={"admission_number": admission_number, "name": name}, headers=headers
        )

    stats = (await client.get("/api/v1/academic-years/statistics", headers=headers)).json()
    assert [s["year_name"] for s in stats] == ["2024", "2023"]
    assert stats[0]["student_count"] == 2
    assert stats[0]["is_current"] is True
    assert stats[0]["student_change_percent"] == 0
    assert stats[1]["student_count"] == 0
    assert stats[1]["average_percentage"] is None
