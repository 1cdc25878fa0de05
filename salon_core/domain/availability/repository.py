"""Availability rules and schedule overrides, keyed by professional"""

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ... import models
from ...shared.datetime_utils import from_storage, to_utc
from .entities import AvailabilityRule, ScheduleOverride


class AvailabilityRepository(ABC):
    @abstractmethod
    async def find_rules(self, salon_id: str, professional_id: str) -> list[AvailabilityRule]: ...

    @abstractmethod
    async def find_overrides(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[ScheduleOverride]:
        """Overrides intersecting [range_start, range_end)"""

    @abstractmethod
    async def save_rule(self, salon_id: str, rule: AvailabilityRule) -> AvailabilityRule: ...

    @abstractmethod
    async def save_override(self, salon_id: str, override: ScheduleOverride) -> ScheduleOverride: ...


class SqlAvailabilityRepository(AvailabilityRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_rules(self, salon_id: str, professional_id: str) -> list[AvailabilityRule]:
        query = (
            select(models.AvailabilityRule)
            .where(
                models.AvailabilityRule.salon_id == salon_id,
                models.AvailabilityRule.professional_id == professional_id,
            )
            .order_by(models.AvailabilityRule.day_of_week, models.AvailabilityRule.start_time)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
            return [
                AvailabilityRule(
                    id=row.id,
                    professional_id=row.professional_id,
                    day_of_week=row.day_of_week,
                    start_time=row.start_time,
                    end_time=row.end_time,
                    is_break=row.is_break,
                )
                for row in rows
            ]

    async def find_overrides(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[ScheduleOverride]:
        query = select(models.ScheduleOverride).where(
            models.ScheduleOverride.salon_id == salon_id,
            models.ScheduleOverride.professional_id == professional_id,
            models.ScheduleOverride.starts_at < to_utc(range_end),
            models.ScheduleOverride.ends_at > to_utc(range_start),
        )
        async with self._session_factory() as session:
            rows = (await session.execute(query.order_by(models.ScheduleOverride.starts_at))).scalars().all()
            return [
                ScheduleOverride(
                    id=row.id,
                    professional_id=row.professional_id,
                    starts_at=from_storage(row.starts_at),
                    ends_at=from_storage(row.ends_at),
                    reason=row.reason,
                )
                for row in rows
            ]

    async def save_rule(self, salon_id: str, rule: AvailabilityRule) -> AvailabilityRule:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    models.AvailabilityRule(
                        id=rule.id,
                        salon_id=salon_id,
                        professional_id=rule.professional_id,
                        day_of_week=rule.day_of_week,
                        start_time=rule.start_time,
                        end_time=rule.end_time,
                        is_break=rule.is_break,
                    )
                )
        return rule

    async def save_override(self, salon_id: str, override: ScheduleOverride) -> ScheduleOverride:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    models.ScheduleOverride(
                        id=override.id,
                        salon_id=salon_id,
                        professional_id=override.professional_id,
                        starts_at=to_utc(override.starts_at),
                        ends_at=to_utc(override.ends_at),
                        reason=override.reason,
                    )
                )
        return override
