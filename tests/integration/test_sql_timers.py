"""Timer tests against the SQL registry."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from questline.db.models import HabitLogRow, HabitRow
from questline.exceptions import ActiveTimerConflict, InvalidInput, NoActiveTimer
from questline.progression.achievements import AchievementCatalog
from questline.progression.service import ProgressionService


@pytest_asyncio.fixture
async def service(db_session, settings):
    db_session.add_all([
        HabitRow(id="read", user_id="u1", type="duration", target_value=20, unit="minutes"),
        HabitRow(id="run", user_id="u1", type="duration", target_value=30),
        HabitRow(id="gym", user_id="u1"),
    ])
    await db_session.flush()
    return ProgressionService(db_session, AchievementCatalog([]), settings=settings)


class TestSqlTimers:
    @pytest.mark.asyncio
    async def test_second_start_conflicts_and_keeps_first(self, service, now):
        await service.start_timer("u1", "read", now)
        with pytest.raises(ActiveTimerConflict) as exc_info:
            await service.start_timer("u1", "run", now + timedelta(minutes=1))
        assert exc_info.value.active_habit_id == "read"

        active = await service.active_timer("u1")
        assert active.habit_id == "read"
        assert active.started_at == now

    @pytest.mark.asyncio
    async def test_stop_records_log_and_xp(self, service, db_session, now):
        await service.start_timer("u1", "read", now)
        result = await service.stop_timer("u1", "read", now + timedelta(minutes=25, seconds=30))

        assert result.xp_awarded == 10
        assert await service.active_timer("u1") is None
        log = (await db_session.execute(
            HabitLogRow.__table__.select().where(HabitLogRow.habit_id == "read")
        )).one()
        assert log.value == 25

    @pytest.mark.asyncio
    async def test_short_session_logs_without_xp(self, service, now):
        await service.start_timer("u1", "read", now)
        result = await service.stop_timer("u1", "read", now + timedelta(minutes=5))
        assert result.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_stop_without_timer(self, service, now):
        with pytest.raises(NoActiveTimer):
            await service.stop_timer("u1", "read", now)

    @pytest.mark.asyncio
    async def test_boolean_habit_has_no_timer(self, service, now):
        with pytest.raises(InvalidInput):
            await service.start_timer("u1", "gym", now)

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, service, now):
        await service.start_timer("u1", "read", now)
        await service.stop_timer("u1", "read", now + timedelta(minutes=1))
        await service.start_timer("u1", "run", now + timedelta(minutes=2))
        assert (await service.active_timer("u1")).habit_id == "run"
