"""
Writes to year-scoped entities (see core/models/versioned.py).

All promotion and demotion of is_current_record happens here. After any
successful call exactly one stored row per entity is flagged current.
Concurrent creation of the same (entity_id, academic_year_recorded) slot is
rejected by the store's unique constraint and surfaces as ConflictError.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Type
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from sponsorship_admin.core.academic_years import AcademicYearAuthority
from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.exceptions import NotFoundError, ValidationFailedError, translate_db_error

logger = get_logger("versioning")

# Writable besides __versioned_fields__; never carried forward into a new snapshot
_EXTRA_WRITABLE = ("updated_by",)


class VersionedRecordWriter:
    def __init__(
        self,
        db: AsyncSession,
        model: Type,
        authority: AcademicYearAuthority,
        label: Optional[str] = None,
        roll_forward: bool = True,
    ) -> None:
        self.db = db
        self.model = model
        self.authority = authority
        self.label = label or model.__name__
        # False: the entity lives in a single fixed year and is never copied into another
        self.roll_forward = roll_forward

    # Reads

    def current_rows(self) -> Select:
        """Query of the current-flagged row of every entity."""
        return select(self.model).where(self.model.is_current_record.is_(True))

    def rows_for_year(self, academic_year: str) -> Select:
        return select(self.model).where(self.model.academic_year_recorded == academic_year)

    async def history(self, entity_id: UUID) -> List[Any]:
        """All stored rows of an entity, newest academic year first."""
        result = await self.db.execute(
            select(self.model)
            .where(self.model.entity_id == entity_id)
            .order_by(self.model.academic_year_recorded.desc())
        )
        return list(result.scalars().all())

    async def get_current(self, entity_id: UUID) -> Any:
        result = await self.db.execute(
            self.current_rows().where(self.model.entity_id == entity_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"{self.label} not found")
        return row

    async def get_for_year(self, entity_id: UUID, academic_year: str) -> Optional[Any]:
        result = await self.db.execute(
            select(self.model).where(
                self.model.entity_id == entity_id,
                self.model.academic_year_recorded == academic_year,
            )
        )
        return result.scalar_one_or_none()

    async def get_view(self, entity_id: UUID, academic_year: Optional[str] = None) -> Any:
        """Row for an explicit year when one exists, else the current-flagged row."""
        if academic_year:
            row = await self.get_for_year(entity_id, academic_year)
            if row is not None:
                return row
        return await self.get_current(entity_id)

    # Writes

    async def create(
        self,
        values: Dict[str, Any],
        academic_year: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        commit: bool = True,
    ) -> Any:
        """Start a new logical entity with one row, flagged current."""
        year = academic_year or await self.authority.require_current_year_name()
        self._check_fields(values)
        row = self.model(
            entity_id=entity_id or uuid.uuid4(),
            academic_year_recorded=year,
            is_current_record=True,
            record_date=datetime.utcnow(),
            **values,
        )
        self.db.add(row)
        await self._finish(commit, f"{self.label} already exists for {year}")
        return row

    async def write_current_year_value(
        self,
        entity_id: UUID,
        academic_year: Optional[str],
        values: Dict[str, Any],
        commit: bool = True,
    ) -> Any:
        """
        Apply values to the entity's row for academic_year (default: the current year).

        For the current year the row is updated in place, or rolled forward from
        the most recent earlier row, and becomes the flagged row. For any other
        year only that year's row is touched and it is never flagged. If the
        flagged row is that year's row, a current-year snapshot is rolled forward
        first so the current view does not change.

        Writers built with roll_forward=False only ever touch the row for
        academic_year, which stays the flagged row.
        """
        self._check_fields(values)
        rows = await self.history(entity_id)
        if not rows:
            raise NotFoundError(f"{self.label} not found")

        current_year = await self.authority.current_year_name()
        year = academic_year or current_year
        if year is None:
            raise ValidationFailedError("No academic year is configured")

        by_year = {r.academic_year_recorded: r for r in rows}
        flagged = next((r for r in rows if r.is_current_record), None)

        try:
            if year == current_year or not self.roll_forward:
                row = by_year.get(year)
                if row is None:
                    row = self._snapshot(self._defaults_for(rows, year, flagged), year)
                await self._promote(row, flagged)
            else:
                row = by_year.get(year)
                if row is not None and row is flagged and current_year is not None:
                    source = by_year.get(current_year)
                    if source is None:
                        source = self._snapshot(row, current_year)
                    await self._promote(source, flagged)
                if row is None:
                    row = self._snapshot(self._defaults_for(rows, year, flagged), year)
                    row.is_current_record = False
                    self.db.add(row)
            for key, value in values.items():
                setattr(row, key, value)
            await self._finish(commit, f"{self.label} already has a record for {year}")
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise translate_db_error(e, f"{self.label} already has a record for {year}") from e
        return row

    async def delete_entity(self, entity_id: UUID, commit: bool = True) -> int:
        """Remove every stored row of the entity."""
        result = await self.db.execute(delete(self.model).where(self.model.entity_id == entity_id))
        if not result.rowcount:
            raise NotFoundError(f"{self.label} not found")
        await self._finish(commit, f"Could not delete {self.label}")
        return result.rowcount

    # Helpers

    def _check_fields(self, values: Dict[str, Any]) -> None:
        allowed = set(self.model.__versioned_fields__)
        allowed.update(f for f in _EXTRA_WRITABLE if hasattr(self.model, f))
        unknown = sorted(set(values) - allowed)
        if unknown:
            raise ValidationFailedError(f"Unknown field(s) for {self.label}: {', '.join(unknown)}")

    def _defaults_for(self, rows: List[Any], year: str, flagged: Any) -> Any:
        """Most recent row recorded before year, else the flagged row."""
        earlier = [r for r in rows if r.academic_year_recorded < year]
        if earlier:
            return max(earlier, key=lambda r: r.academic_year_recorded)
        return flagged or rows[0]

    def _snapshot(self, source: Any, year: str) -> Any:
        copied = {f: getattr(source, f) for f in self.model.__versioned_fields__}
        return self.model(
            entity_id=source.entity_id,
            academic_year_recorded=year,
            is_current_record=False,
            record_date=datetime.utcnow(),
            **copied,
        )

    async def _promote(self, row: Any, flagged: Any) -> None:
        # Demote first: the partial unique index allows a single flagged row per entity
        if flagged is not None and flagged is not row:
            flagged.is_current_record = False
            await self.db.flush()
        if not row.is_current_record:
            row.is_current_record = True
            row.record_date = datetime.utcnow()
        self.db.add(row)

    async def _finish(self, commit: bool, conflict_message: str) -> None:
        try:
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("%s write failed: %s", self.label, e)
            raise translate_db_error(e, conflict_message) from e
