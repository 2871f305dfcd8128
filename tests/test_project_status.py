"""Project status aggregator and explicit finalization."""

import pytest

from fieldops.core.exceptions import ForbiddenError, UnauthorizedError
from fieldops.models import db
from fieldops.models.notification import Notification
from fieldops.models.project import Project
from fieldops.services import checklist_service, delivery_service, project_status, task_service
from fieldops.services.project_status import is_task_complete, project_progress, recompute


def _reload(pk):
    db.session.expire_all()
    return db.session.get(Project, pk)


# ═══════════════════════════════════════════════════════════════════════════
#  TASK COMPLETION
# ═══════════════════════════════════════════════════════════════════════════


class TestTaskCompletion:
    @pytest.mark.parametrize("status", ["EM_ANALISE", "APROVADA"])
    def test_review_statuses_complete(self, make_task, project, executor, status):
        assert is_task_complete(make_task(project, executor, status=status))

    def test_full_checklist_completes_pending_task(self, make_task, project, executor):
        task = make_task(project, executor, checklist=[{"texto": "A", "concluido": True}])
        assert is_task_complete(task)

    def test_partial_checklist(self, make_task, project, executor):
        task = make_task(project, executor, checklist=[
            {"texto": "A", "concluido": True}, {"texto": "B"},
        ])
        assert not is_task_complete(task)

    def test_no_checklist(self, make_task, project, executor):
        assert not is_task_complete(make_task(project, executor, status="REPROVADA"))


# ═══════════════════════════════════════════════════════════════════════════
#  RECOMPUTE
# ═══════════════════════════════════════════════════════════════════════════


class TestRecompute:
    def test_all_complete_finalizes_and_sums_insumos(self, make_task, project, executor):
        make_task(project, executor, status="EM_ANALISE", insumos_value=100.0)
        make_task(project, executor, name="Laje", insumos_value=50.5,
                  checklist=[{"texto": "A", "concluido": True}])

        result = recompute(project.id)
        db.session.commit()
        assert result.became_finalized
        refreshed = _reload(project.id)
        assert refreshed.status == "FINALIZADO"
        assert refreshed.insumos_value == pytest.approx(150.5)
        assert refreshed.finalized_at is not None

    def test_one_incomplete_task_keeps_in_progress(self, make_task, project, executor):
        make_task(project, executor, status="APROVADA")
        make_task(project, executor, name="Laje")
        assert recompute(project.id).status == "EM_ANDAMENTO"

    def test_reopens_finished_project(self, make_project, make_task, executor):
        project = make_project(status="FINALIZADO")
        make_task(project, executor, status="REPROVADA")
        result = recompute(project.id)
        assert result.status_changed
        assert result.status == "EM_ANDAMENTO"

    def test_zero_tasks_keeps_status_and_zeroes_insumos(self, make_project):
        project = make_project(status="FINALIZADO", insumos_value=42.0)
        result = recompute(project.id)
        db.session.commit()
        assert result.task_count == 0
        refreshed = _reload(project.id)
        assert refreshed.status == "FINALIZADO"
        assert refreshed.insumos_value == 0.0

    def test_idempotent(self, make_task, project, executor):
        make_task(project, executor, status="APROVADA", insumos_value=10.0)
        first = recompute(project.id)
        db.session.commit()
        second = recompute(project.id)
        assert first.changed
        assert not second.changed
        assert second.to_dict()["status"] == "FINALIZADO"

    def test_deleting_last_task_keeps_finished_status(self, task, director, project):
        task_service.change_task_status(task.id, director, "APROVADA")
        assert _reload(project.id).status == "FINALIZADO"

        result = task_service.delete_task(task.id, director)
        assert result.task_count == 0
        refreshed = _reload(project.id)
        assert refreshed.status == "FINALIZADO"
        assert refreshed.insumos_value == 0.0

    def test_finishing_notifies_supervisor_and_responsibles(self, make_user, make_project,
                                                           make_task, supervisor, executor):
        owner = make_user("GM")
        project = make_project(supervisor=supervisor, responsibles=[owner])
        make_task(project, executor, status="APROVADA")

        project_status.recompute_project(project.id)
        recipients = {n.user_id for n in Notification.query.filter_by(kind="project")}
        assert recipients == {supervisor.id, owner.id}


class TestProgress:
    def test_rounded_percentage(self, make_task, project, executor):
        make_task(project, executor, status="APROVADA")
        make_task(project, executor, name="B")
        make_task(project, executor, name="C")
        assert project_progress(_reload(project.id)) == 33

    def test_no_tasks(self, project):
        assert project_progress(project) == 0

    def test_half_rounds_up(self, make_task, project, executor):
        make_task(project, executor, status="APROVADA")
        for n in range(7):
            make_task(project, executor, name=f"T{n}")
        assert project_progress(_reload(project.id)) == 13

    def test_approved_item_deliveries_count_after_flag_cleared(self, task, executor, supervisor,
                                                               project):
        checklist_service.submit_item(task.id, 0, executor, {"description": "Concretagem concluída"})
        checklist_service.review_item(task.id, 0, supervisor, "APROVADO")
        uid = task.checklist[0].uid
        checklist_service.replace_checklist(task.id, executor, [
            {"texto": "A", "uid": uid, "concluido": False},
        ])
        refreshed = _reload(project.id)
        assert not is_task_complete(refreshed.tasks[0])
        assert project_progress(refreshed) == 100


# ═══════════════════════════════════════════════════════════════════════════
#  FINALIZE
# ═══════════════════════════════════════════════════════════════════════════


class TestFinalize:
    def test_director_finalizes_regardless_of_tasks(self, task, director, project):
        project_status.finalize_project(project.id, director)
        refreshed = _reload(project.id)
        assert refreshed.status == "FINALIZADO"
        assert refreshed.finalized_at is not None

    def test_repeat_is_harmless(self, project, director):
        project_status.finalize_project(project.id, director)
        project_status.finalize_project(project.id, director)
        assert _reload(project.id).status == "FINALIZADO"

    def test_executor_forbidden(self, project, executor):
        with pytest.raises(ForbiddenError):
            project_status.finalize_project(project.id, executor)
        assert _reload(project.id).status == "EM_ANDAMENTO"

    def test_next_recompute_can_reopen(self, task, director, project):
        project_status.finalize_project(project.id, director)
        assert project_status.recompute_project(project.id).status == "EM_ANDAMENTO"


# ═══════════════════════════════════════════════════════════════════════════
#  END-TO-END SCENARIOS
# ═══════════════════════════════════════════════════════════════════════════


class TestScenarios:
    def test_approving_last_pending_delivery_finishes_project(self, make_task, project,
                                                              executor, supervisor):
        make_task(project, executor, status="APROVADA")
        second = make_task(project, executor, name="Acabamento")
        assert project_status.recompute_project(project.id).status == "EM_ANDAMENTO"

        delivery_service.submit_delivery(second.id, executor, "Pintura concluída")
        delivery_service.reject_delivery(second.id, supervisor, reason="Manchas")
        assert _reload(project.id).status == "EM_ANDAMENTO"

        delivery_service.submit_delivery(second.id, executor, "Pintura refeita")
        delivery_service.approve_delivery(second.id, supervisor)
        assert _reload(project.id).status == "FINALIZADO"

    def test_outsider_delivery_on_started_task(self, make_task, project, executor, outsider):
        task = make_task(project, executor, status="EM_ANDAMENTO")
        with pytest.raises(UnauthorizedError):
            delivery_service.submit_delivery(task.id, outsider, "Serviço entregue")
        db.session.expire_all()
        assert task.status == "EM_ANDAMENTO"

    def test_broken_legacy_checklist_does_not_block_siblings(self, make_task, project, executor):
        legacy = make_task(project, executor, name="Legado")
        legacy.checklist_json = [{"texto": "", "concluido": True}, {"texto": "x" * 600}]
        legacy.checklist_version = 1
        db.session.commit()
        sibling = make_task(project, executor, name="Acabamento")

        task = delivery_service.submit_delivery(sibling.id, executor, "Pintura concluída")
        assert task.status == "EM_ANALISE"
        assert _reload(project.id).status == "EM_ANDAMENTO"
