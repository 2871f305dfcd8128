"""Task status state machine — transition table and administrative override."""

from types import SimpleNamespace

import pytest

from fieldops.core.exceptions import ValidationError
from fieldops.models.checklist import ChecklistItem
from fieldops.services.task_lifecycle import (
    DELIVERABLE_STATUSES,
    TASK_TRANSITIONS,
    TaskTransitionError,
    override_status,
    sync_checklist_progress,
    transition,
    validate_transition,
)


def _task(status="PENDENTE"):
    return SimpleNamespace(id=1, project_id=1, status=status, started=False)


class TestTransitionTable:
    def test_actions(self):
        assert set(TASK_TRANSITIONS) == {
            "start", "reset", "submit_delivery", "approve_delivery", "reject_delivery",
        }

    def test_deliverable_statuses(self):
        assert DELIVERABLE_STATUSES == {"PENDENTE", "EM_ANDAMENTO", "REPROVADA"}

    @pytest.mark.parametrize("status,action,target", [
        ("PENDENTE", "start", "EM_ANDAMENTO"),
        ("EM_ANDAMENTO", "reset", "PENDENTE"),
        ("REPROVADA", "submit_delivery", "EM_ANALISE"),
        ("EM_ANALISE", "approve_delivery", "APROVADA"),
        ("EM_ANALISE", "reject_delivery", "REPROVADA"),
    ])
    def test_valid(self, status, action, target):
        task = _task(status)
        transition(task, action, actor_id=7)
        assert task.status == target

    @pytest.mark.parametrize("status,action", [
        ("APROVADA", "submit_delivery"),
        ("EM_ANALISE", "submit_delivery"),
        ("PENDENTE", "approve_delivery"),
        ("APROVADA", "reset"),
    ])
    def test_invalid(self, status, action):
        task = _task(status)
        with pytest.raises(TaskTransitionError) as exc:
            transition(task, action)
        assert exc.value.current_status == status
        assert task.status == status

    def test_unknown_action(self):
        assert validate_transition(_task(), "teleport")["valid"] is False


class TestChecklistProgress:
    def test_any_done_starts(self):
        task = _task("PENDENTE")
        sync_checklist_progress(task, [ChecklistItem("A"), ChecklistItem("B", concluido=True)])
        assert task.status == "EM_ANDAMENTO"

    def test_none_done_resets(self):
        task = _task("EM_ANDAMENTO")
        sync_checklist_progress(task, [ChecklistItem("A")])
        assert task.status == "PENDENTE"

    def test_empty_checklist_resets(self):
        task = _task("EM_ANDAMENTO")
        sync_checklist_progress(task, [])
        assert task.status == "PENDENTE"

    @pytest.mark.parametrize("status", ["EM_ANALISE", "APROVADA", "REPROVADA"])
    def test_other_statuses_untouched(self, status):
        task = _task(status)
        sync_checklist_progress(task, [ChecklistItem("A", concluido=True)])
        assert task.status == status


class TestOverride:
    def test_any_status_reachable(self):
        task = _task("APROVADA")
        override_status(task, "pendente", actor_id=1, started=False)
        assert task.status == "PENDENTE"
        assert task.started is False

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            override_status(_task(), "DONE", actor_id=1)
