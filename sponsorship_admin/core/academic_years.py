"""
Single authority for "which academic year is current".

Every consumer asks AcademicYearAuthority instead of querying academic_years
itself, so the fallback for a store with no flagged year lives in one place.
Switching years publishes a YearChanged event to subscribers of the shared
YearChangeNotifier after the switch has committed.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sponsorship_admin.core.app_logger import get_logger
from sponsorship_admin.core.exceptions import NotFoundError, ValidationFailedError, translate_db_error
from sponsorship_admin.core.models import AcademicYear
from sponsorship_admin.db.session import get_db

logger = get_logger("academic_years")


@dataclass(frozen=True)
class YearChanged:
    previous: Optional[str]  # year_name, None when no year was current
    current: str


YearChangeListener = Callable[[YearChanged], Awaitable[None]]


class YearChangeNotifier:
    """Fan-out of year switches. A failing listener is logged and skipped."""

    def __init__(self) -> None:
        self._listeners: List[YearChangeListener] = []

    def subscribe(self, listener: YearChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: YearChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: YearChanged) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception("Year change listener %r failed", listener)


year_change_notifier = YearChangeNotifier()


class AcademicYearAuthority:
    def __init__(self, db: AsyncSession, notifier: Optional[YearChangeNotifier] = None) -> None:
        self.db = db
        self.notifier = notifier or year_change_notifier
        self._current: Optional[AcademicYear] = None

    async def list_years(self) -> List[AcademicYear]:
        result = await self.db.execute(select(AcademicYear).order_by(AcademicYear.year_name.desc()))
        return list(result.scalars().all())

    async def get_year(self, year_id: UUID) -> AcademicYear:
        year = await self.db.get(AcademicYear, year_id)
        if not year:
            raise NotFoundError("Academic year not found")
        return year

    async def get_year_by_name(self, year_name: str) -> Optional[AcademicYear]:
        result = await self.db.execute(select(AcademicYear).where(AcademicYear.year_name == year_name))
        return result.scalar_one_or_none()

    async def get_current_year(self, refresh: bool = False) -> Optional[AcademicYear]:
        """The flagged year; otherwise the first year of list_years(); None when there are no years."""
        if self._current is not None and not refresh:
            return self._current
        result = await self.db.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True)))
        year = result.scalar_one_or_none()
        if year is None:
            years = await self.list_years()
            year = years[0] if years else None
        self._current = year
        return year

    async def current_year_name(self) -> Optional[str]:
        year = await self.get_current_year()
        return year.year_name if year else None

    async def require_current_year_name(self) -> str:
        name = await self.current_year_name()
        if name is None:
            raise ValidationFailedError("No academic year is configured")
        return name

    async def resolve_view_year(self, academic_year: Optional[str]) -> Optional[str]:
        """The year a read is scoped to: the caller's explicit choice, else the current year."""
        if academic_year:
            if await self.get_year_by_name(academic_year) is None:
                raise NotFoundError(f"Academic year '{academic_year}' not found")
            return academic_year
        return await self.current_year_name()

    async def set_current_year(self, year_id: UUID) -> AcademicYear:
        """
        Flag year_id as the only current year, commit, then notify subscribers.
        On failure the transaction is rolled back, the cached selection is kept
        and nothing is published.
        """
        cached = self._current
        target = await self.get_year(year_id)
        previous = await self.get_current_year(refresh=True)
        previous_name = previous.year_name if previous else None
        target_name = target.year_name

        try:
            await self.db.execute(
                update(AcademicYear)
                .where(AcademicYear.is_current.is_(True), AcademicYear.id != target.id)
                .values(is_current=False)
            )
            await self.db.flush()
            target.is_current = True
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._current = cached
            if cached is not None:
                # The rollback expired the cached row; reload it, or forget it if the store is unreachable
                try:
                    await self.db.refresh(cached)
                except SQLAlchemyError:
                    self._current = None
            logger.error("Switching current academic year to %s failed: %s", target_name, e)
            raise translate_db_error(e, "Another academic year is already marked as current") from e

        await self.db.refresh(target)
        self._current = target
        if previous_name != target_name:
            logger.info("Current academic year changed from %s to %s", previous_name, target_name)
            await self.notifier.publish(YearChanged(previous=previous_name, current=target_name))
        return target


async def get_academic_year_authority(db: AsyncSession = Depends(get_db)) -> AcademicYearAuthority:
    return AcademicYearAuthority(db)
