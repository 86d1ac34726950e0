"""Tests for SubtaskService — ownership through the goal and progress recompute."""

import uuid
from unittest.mock import patch

import pytest

from app.core.exceptions import DomainValidationError, ForbiddenError, NotFoundError
from app.core.models import GoalListQuery, PageQuery, SubtaskStatus
from app.services.subtask_service import effective_progress
from tests.conftest import create_user


@pytest.fixture
async def goal_id(services, user_id) -> uuid.UUID:
    goal = await services.goals.create_goal(user_id, "Write a novel")
    return uuid.UUID(goal["id"])


class TestEffectiveProgress:
    def test_completed_is_always_full(self):
        assert effective_progress(SubtaskStatus.COMPLETED, 10.0) == 100.0

    def test_other_statuses_keep_value(self):
        assert effective_progress(SubtaskStatus.IN_PROGRESS, 40.0) == 40.0


class TestProgressRecompute:
    """Subtask writes keep the parent goal's progress current."""

    async def test_create_updates_goal_progress(self, services, user_id, goal_id):
        await services.subtasks.create_subtask(user_id, goal_id, "Outline", progress=50)
        await services.subtasks.create_subtask(user_id, goal_id, "Draft")

        goal = await services.goals.get_goal(user_id, goal_id)
        assert goal["progress"] == 25.0

    async def test_update_refreshes_cached_goal(self, services, user_id, goal_id):
        sub = await services.subtasks.create_subtask(user_id, goal_id, "Outline")
        before = await services.goals.get_goal(user_id, goal_id)

        await services.subtasks.update_subtask(
            user_id, goal_id, uuid.UUID(sub["id"]), status=SubtaskStatus.COMPLETED
        )
        after = await services.goals.get_goal(user_id, goal_id)

        assert before["progress"] == 0.0
        assert after["progress"] == 100.0

    async def test_update_refreshes_cached_goal_lists(self, services, user_id, goal_id):
        sub = await services.subtasks.create_subtask(user_id, goal_id, "Outline")
        await services.goals.list_goals(user_id, GoalListQuery())

        await services.subtasks.update_subtask(
            user_id, goal_id, uuid.UUID(sub["id"]), progress=60
        )
        listed = await services.goals.list_goals(user_id, GoalListQuery())

        assert listed["items"][0]["progress"] == 60.0

    async def test_delete_recomputes(self, services, user_id, goal_id):
        a = await services.subtasks.create_subtask(user_id, goal_id, "A", progress=100)
        await services.subtasks.create_subtask(user_id, goal_id, "B", progress=0)

        await services.subtasks.delete_subtask(user_id, goal_id, uuid.UUID(a["id"]))

        goal = await services.goals.get_goal(user_id, goal_id)
        assert goal["progress"] == 0.0

    async def test_completed_subtask_is_stored_at_full_progress(self, services, user_id, goal_id):
        sub = await services.subtasks.create_subtask(
            user_id, goal_id, "Done already", status=SubtaskStatus.COMPLETED, progress=20
        )
        assert sub["progress"] == 100.0


class TestSubtaskReads:
    async def test_list_is_cached(self, services, user_id, goal_id):
        await services.subtasks.create_subtask(user_id, goal_id, "One")
        repo = services.subtask_repo

        with patch.object(repo, "find_by_goal", wraps=repo.find_by_goal) as spy:
            first = await services.subtasks.list_subtasks(user_id, goal_id, PageQuery())
            second = await services.subtasks.list_subtasks(user_id, goal_id, PageQuery())

        assert spy.await_count == 1
        assert first == second
        assert first["total"] == 1

    async def test_list_is_dropped_by_subtask_write(self, services, user_id, goal_id):
        await services.subtasks.list_subtasks(user_id, goal_id, PageQuery())
        await services.subtasks.create_subtask(user_id, goal_id, "New")

        page = await services.subtasks.list_subtasks(user_id, goal_id, PageQuery())
        assert page["total"] == 1

    async def test_list_requires_goal_ownership(self, services, session, goal_id):
        other = await create_user(session, "u2")
        with pytest.raises(ForbiddenError):
            await services.subtasks.list_subtasks(other.id, goal_id, PageQuery())

    async def test_get_subtask_from_wrong_goal(self, services, user_id, goal_id):
        other_goal = await services.goals.create_goal(user_id, "Other")
        sub = await services.subtasks.create_subtask(user_id, goal_id, "Mine")

        with pytest.raises(NotFoundError):
            await services.subtasks.get_subtask(
                user_id, uuid.UUID(other_goal["id"]), uuid.UUID(sub["id"])
            )


class TestSubtaskValidation:
    @pytest.mark.parametrize("progress", [-1, 101])
    async def test_progress_out_of_range(self, services, user_id, goal_id, progress):
        with pytest.raises(DomainValidationError):
            await services.subtasks.create_subtask(user_id, goal_id, "Bad", progress=progress)

    @pytest.mark.parametrize("field", ["position", "created_at"])
    async def test_unknown_field(self, services, user_id, goal_id, field):
        sub = await services.subtasks.create_subtask(user_id, goal_id, "A")
        with pytest.raises(DomainValidationError, match=f"Cannot update subtask fields: {field}"):
            await services.subtasks.update_subtask(
                user_id, goal_id, uuid.UUID(sub["id"]), **{field: 1}
            )

    async def test_create_on_missing_goal(self, services, user_id):
        with pytest.raises(NotFoundError):
            await services.subtasks.create_subtask(user_id, uuid.uuid4(), "Orphan")
