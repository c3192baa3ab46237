import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.cross_year import get_cross_year_warning
from sponsorship_admin.core.exceptions import ConflictError, NotFoundError, ValidationFailedError
from sponsorship_admin.core.models import Student
from sponsorship_admin.core.versioning import VersionedRecordWriter


def _student_values(**overrides):
    values = {"admission_number": "ADM-001", "name": "Jane Wanjiru", "current_grade": "Grade 4", "status": "active"}
    values.update(overrides)
    return values


async def _flagged_count(db: AsyncSession, entity_id) -> int:
    return await db.scalar(
        select(func.count()).select_from(Student).where(
            Student.entity_id == entity_id, Student.is_current_record.is_(True)
        )
    )


@pytest.fixture()
def writer(db_session: AsyncSession, authority: AcademicYearAuthority) -> VersionedRecordWriter:
    return VersionedRecordWriter(db_session, Student, authority, label="Student")


@pytest.mark.asyncio
async def test_create_flags_the_only_row(db_session: AsyncSession, writer, make_year) -> None:
    await make_year("2024", is_current=True)
    row = await writer.create(_student_values())

    assert row.academic_year_recorded == "2024"
    assert row.is_current_record is True
    assert await _flagged_count(db_session, row.entity_id) == 1


@pytest.mark.asyncio
async def test_create_without_any_year_fails(writer) -> None:
    with pytest.raises(ValidationFailedError):
        await writer.create(_student_values())


@pytest.mark.asyncio
async def test_current_year_write_updates_in_place(db_session: AsyncSession, writer, make_year) -> None:
    await make_year("2024", is_current=True)
    row = await writer.create(_student_values())

    updated = await writer.write_current_year_value(row.entity_id, None, {"current_grade": "Grade 5"})

    assert updated.id == row.id
    assert updated.current_grade == "Grade 5"
    assert len(await writer.history(row.entity_id)) == 1


@pytest.mark.asyncio
async def test_new_current_year_rolls_forward_and_promotes(
    db_session: AsyncSession, writer, authority: AcademicYearAuthority, make_year
) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    row_2023 = await writer.create(_student_values(location="Nairobi"))

    await authority.set_current_year(year_2024.id)
    row_2024 = await writer.write_current_year_value(row_2023.entity_id, None, {"current_grade": "Grade 5"})

    assert row_2024.academic_year_recorded == "2024"
    assert row_2024.is_current_record is True
    assert row_2024.current_grade == "Grade 5"
    # Defaults carried forward from the most recent earlier year
    assert row_2024.location == "Nairobi"
    assert row_2024.admission_number == "ADM-001"

    await db_session.refresh(row_2023)
    assert row_2023.is_current_record is False
    assert row_2023.current_grade == "Grade 4"
    assert await _flagged_count(db_session, row_2023.entity_id) == 1


@pytest.mark.asyncio
async def test_past_year_write_leaves_current_row_alone(
    db_session: AsyncSession, writer, authority: AcademicYearAuthority, make_year
) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    original = await writer.create(_student_values())
    entity_id = original.entity_id

    await authority.set_current_year(year_2024.id)
    assert (await authority.get_current_year()).year_name == "2024"
    current = await writer.write_current_year_value(entity_id, None, {"current_grade": "Grade 5"})

    past = await writer.write_current_year_value(entity_id, "2023", {"current_grade": "Grade 4 (revised)"})

    assert past.academic_year_recorded == "2023"
    assert past.is_current_record is False
    assert past.current_grade == "Grade 4 (revised)"
    await db_session.refresh(current)
    assert current.is_current_record is True
    assert current.current_grade == "Grade 5"
    assert await _flagged_count(db_session, entity_id) == 1


@pytest.mark.asyncio
async def test_past_year_write_on_flagged_row_moves_flag_to_current_year(
    db_session: AsyncSession, writer, authority: AcademicYearAuthority, make_year
) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    original = await writer.create(_student_values())
    await authority.set_current_year(year_2024.id)

    past = await writer.write_current_year_value(original.entity_id, "2023", {"current_grade": "Grade 3"})

    assert past.is_current_record is False
    assert past.current_grade == "Grade 3"
    current = await writer.get_current(original.entity_id)
    assert current.academic_year_recorded == "2024"
    # The current view is unchanged by a write to an earlier year
    assert current.current_grade == "Grade 4"
    assert await _flagged_count(db_session, original.entity_id) == 1


@pytest.mark.asyncio
async def test_single_year_writer_updates_its_row_in_place(
    db_session: AsyncSession, authority: AcademicYearAuthority, make_year
) -> None:
    await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    fixed = VersionedRecordWriter(db_session, Student, authority, label="Student", roll_forward=False)
    original = await fixed.create(_student_values(), academic_year="2023")
    await authority.set_current_year(year_2024.id)

    updated = await fixed.write_current_year_value(original.entity_id, "2023", {"current_grade": "Grade 3"})

    assert updated.id == original.id
    assert updated.is_current_record is True
    rows = await fixed.history(original.entity_id)
    assert [(r.academic_year_recorded, r.current_grade) for r in rows] == [("2023", "Grade 3")]


@pytest.mark.asyncio
async def test_past_year_without_row_is_inserted_unflagged(
    db_session: AsyncSession, writer, make_year
) -> None:
    await make_year("2023")
    await make_year("2024", is_current=True)
    row = await writer.create(_student_values())

    past = await writer.write_current_year_value(row.entity_id, "2023", {"current_grade": "Grade 3"})

    assert past.academic_year_recorded == "2023"
    assert past.is_current_record is False
    assert past.name == "Jane Wanjiru"
    assert (await writer.get_current(row.entity_id)).id == row.id


@pytest.mark.asyncio
async def test_switching_years_round_trip_keeps_values(
    writer, authority: AcademicYearAuthority, make_year
) -> None:
    year_2023 = await make_year("2023", is_current=True)
    year_2024 = await make_year("2024")
    row = await writer.create(_student_values())
    before = (await writer.get_view(row.entity_id, "2023")).current_grade

    await authority.set_current_year(year_2024.id)
    await authority.set_current_year(year_2023.id)

    after = await writer.get_view(row.entity_id, "2023")
    assert after.current_grade == before
    assert (await writer.get_current(row.entity_id)).id == row.id


@pytest.mark.asyncio
async def test_every_write_sequence_keeps_one_flagged_row(
    db_session: AsyncSession, writer, authority: AcademicYearAuthority, make_year
) -> None:
    years = [await make_year(name) for name in ("2022", "2023", "2024")]
    await authority.set_current_year(years[0].id)
    row = await writer.create(_student_values())

    for year in years:
        await authority.set_current_year(year.id)
        for target in (None, "2022", "2023", "2024"):
            await writer.write_current_year_value(row.entity_id, target, {"health_status": f"{year.year_name}/{target}"})
            assert await _flagged_count(db_session, row.entity_id) == 1


@pytest.mark.asyncio
async def test_unknown_entity_is_not_found(writer, make_year) -> None:
    await make_year("2024", is_current=True)
    with pytest.raises(NotFoundError):
        await writer.write_current_year_value(uuid.uuid4(), None, {"name": "Nobody"})
    with pytest.raises(NotFoundError):
        await writer.get_current(uuid.uuid4())


@pytest.mark.asyncio
async def test_unknown_field_is_rejected(writer, make_year) -> None:
    await make_year("2024", is_current=True)
    row = await writer.create(_student_values())
    with pytest.raises(ValidationFailedError):
        await writer.write_current_year_value(row.entity_id, None, {"is_current_record": False})


@pytest.mark.asyncio
async def test_duplicate_year_slot_is_a_conflict(db_session: AsyncSession, writer, make_year) -> None:
    await make_year("2024", is_current=True)
    row = await writer.create(_student_values())
    entity_id = row.entity_id

    # A second writer that missed the first one's row
    with pytest.raises(ConflictError):
        await writer.create(_student_values(admission_number="ADM-002"), academic_year="2024", entity_id=entity_id)
    assert await _flagged_count(db_session, entity_id) == 1


@pytest.mark.parametrize(
    "record_year, selected_year, expected",
    [
        ("2023", "2024", True),
        ("2024", "2024", False),
        (None, "2024", False),
        ("", "2024", False),
        ("2023", None, True),
    ],
)
def test_cross_year_warning(record_year, selected_year, expected) -> None:
    warning = get_cross_year_warning(record_year, selected_year)
    assert (warning is not None) is expected
    if expected:
        assert record_year in warning
