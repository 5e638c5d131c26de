"""Tests for session persistence (async SQLAlchemy + aiosqlite)."""

from __future__ import annotations

import pytest

from skane_core.flow.orchestrator import FlowOrchestrator
from skane_core.models import MicroActionId, UserFeedback
from skane_core.storage.database import dispose_engine, init_db
from skane_core.storage.repository import SessionRepository


@pytest.fixture
async def repo():
    await init_db()
    yield SessionRepository()
    await dispose_engine()


def _finished_session(session_id: str, user_id: str, features, feedback: UserFeedback) -> FlowOrchestrator:
    orch = FlowOrchestrator(session_id, user_id)
    orch.start_scan()
    orch.process_scan(features)
    orch.start_action()
    orch.complete_action()
    orch.submit_feedback(feedback)
    return orch


class TestSnapshots:
    async def test_save_and_load(self, repo, unique_id, high_activation_features):
        orch = FlowOrchestrator(unique_id, "user-a")
        orch.start_scan()
        orch.process_scan(high_activation_features)
        await repo.save_snapshot(orch.context)

        payload = await repo.load_snapshot(unique_id)
        assert payload is not None
        restored = FlowOrchestrator.from_json(payload, expected_session_id=unique_id)
        assert restored is not None
        assert restored.context == orch.context

    async def test_save_is_an_upsert(self, repo, unique_id):
        orch = FlowOrchestrator(unique_id)
        await repo.save_snapshot(orch.context)
        orch.start_scan()
        await repo.save_snapshot(orch.context)

        restored = FlowOrchestrator.from_json(await repo.load_snapshot(unique_id))
        assert restored is not None
        assert restored.flow_state.value == "SCANNING"

    async def test_unknown_session(self, repo):
        assert await repo.load_snapshot("does-not-exist") is None


class TestUserHistory:
    async def test_history_from_rated_sessions(self, repo, unique_id, high_activation_features, regulated_features):
        user = f"user-{unique_id}"
        await repo.save_snapshot(
            _finished_session(f"{unique_id}-1", user, high_activation_features, UserFeedback.BETTER).context
        )
        await repo.save_snapshot(
            _finished_session(f"{unique_id}-2", user, high_activation_features, UserFeedback.WORSE).context
        )
        await repo.save_snapshot(
            _finished_session(f"{unique_id}-3", user, regulated_features, UserFeedback.SAME).context
        )

        history = await repo.get_user_history(user)
        assert history.last_action_id == MicroActionId.BOX_BREATHING
        assert history.action_feedback[MicroActionId.PHYSIOLOGICAL_SIGH] == pytest.approx(2.0)
        assert history.action_feedback[MicroActionId.BOX_BREATHING] == pytest.approx(2.0)

    async def test_guest_has_empty_history(self, repo):
        history = await repo.get_user_history(None)
        assert history.last_action_id is None
        assert history.action_feedback == {}

    async def test_amplifier_used_today(self, repo, unique_id, high_activation_features):
        user = f"user-{unique_id}"
        assert await repo.amplifier_used_today(user) is False
        orch = FlowOrchestrator(unique_id, user)
        orch.start_scan()
        orch.process_scan(high_activation_features)
        await repo.save_snapshot(orch.context)
        assert await repo.amplifier_used_today(user) is True

    async def test_delete_for_user(self, repo, unique_id):
        user = f"user-{unique_id}"
        await repo.save_snapshot(FlowOrchestrator(f"{unique_id}-a", user).context)
        await repo.save_snapshot(FlowOrchestrator(f"{unique_id}-b", user).context)
        assert await repo.delete_for_user(user) == 2
        assert await repo.load_snapshot(f"{unique_id}-a") is None
