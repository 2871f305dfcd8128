"""
HTTP surface of the task engine: status codes, error bodies and the
main task / project flows end to end through the blueprints.
"""

import pytest

from fieldops.models import db
from fieldops.models.project import Project
from fieldops.models.stock import StockItem
from fieldops.models.task import Task

API = "/api/v1"


def _reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


# ═══════════════════════════════════════════════════════════════════════════
#  ACTOR RESOLUTION / ERROR MAPPING
# ═══════════════════════════════════════════════════════════════════════════


class TestErrorMapping:
    def test_missing_actor_is_401(self, client, task):
        res = client.get(f"{API}/tasks/{task.id}")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    @pytest.mark.parametrize("header", ["abc", "99999"])
    def test_unusable_actor_header_is_401(self, client, task, header):
        res = client.get(f"{API}/tasks/{task.id}", headers={"X-User-Id": header})
        assert res.status_code == 401

    def test_inactive_user_is_401(self, client, task, make_user):
        ghost = make_user("DIRETOR", is_active=False)
        res = client.get(f"{API}/tasks/{task.id}", headers={"X-User-Id": str(ghost.id)})
        assert res.status_code == 401

    def test_unknown_task_is_404(self, client, as_user, executor):
        res = client.get(f"{API}/tasks/424242", headers=as_user(executor))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_outsider_delivery_is_401(self, client, as_user, task, outsider):
        res = client.post(f"{API}/tasks/{task.id}/deliver",
                          json={"description": "Serviço entregue"}, headers=as_user(outsider))
        assert res.status_code == 401
        assert _reload(Task, task.id).status == "PENDENTE"

    def test_non_reviewer_is_403(self, client, as_user, task, executor):
        client.post(f"{API}/tasks/{task.id}/deliver",
                    json={"description": "Serviço entregue"}, headers=as_user(executor))
        res = client.post(f"{API}/tasks/{task.id}/approve", json={}, headers=as_user(executor))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_state_conflict_is_409_with_status(self, client, as_user, make_task, project, executor):
        task = make_task(project, executor, status="APROVADA")
        res = client.post(f"{API}/tasks/{task.id}/deliver",
                          json={"description": "Serviço entregue"}, headers=as_user(executor))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["current_status"] == "APROVADA"

    def test_validation_is_400_with_details(self, client, as_user, task, executor):
        res = client.post(f"{API}/tasks/{task.id}/deliver",
                          json={"description": "ok"}, headers=as_user(executor))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "description" in body["details"]

    def test_non_object_body_is_400(self, client, as_user, director):
        res = client.post(f"{API}/tasks", json=[1, 2], headers=as_user(director))
        assert res.status_code == 400

    def test_unknown_route_is_json_404(self, client):
        res = client.get(f"{API}/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"


# ═══════════════════════════════════════════════════════════════════════════
#  TASK CRUD
# ═══════════════════════════════════════════════════════════════════════════


class TestTaskCrud:
    def test_create(self, client, as_user, director, project, executor, member):
        res = client.post(f"{API}/tasks", json={
            "project_id": project.id,
            "executor_id": executor.id,
            "name": "Alvenaria",
            "start_date": "01/03/2025",
            "end_date": "2025-03-31",
            "insumos_value": "1200.50",
            "member_ids": [member.id, member.id],
            "checklist": [{"texto": "Marcação"}, {"texto": "Elevação", "subitens": ["1ª fiada"]}],
        }, headers=as_user(director))
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "PENDENTE"
        assert body["start_date"] == "2025-03-01"
        assert [m["user_id"] for m in body["members"]] == [member.id]
        assert [i["texto"] for i in body["checklist"]] == ["Marcação", "Elevação"]
        assert body["checklist"][1]["subitens"][0]["texto"] == "1ª fiada"
        assert _reload(Project, project.id).insumos_value == pytest.approx(1200.5)

    def test_create_forbidden_for_executor(self, client, as_user, executor, project):
        res = client.post(f"{API}/tasks", json={
            "project_id": project.id, "executor_id": executor.id, "name": "X",
        }, headers=as_user(executor))
        assert res.status_code == 403

    def test_create_with_unknown_project(self, client, as_user, director, executor):
        res = client.post(f"{API}/tasks", json={
            "project_id": 999, "executor_id": executor.id, "name": "X",
        }, headers=as_user(director))
        assert res.status_code == 400

    def test_create_requires_name(self, client, as_user, director, project, executor):
        res = client.post(f"{API}/tasks", json={
            "project_id": project.id, "executor_id": executor.id, "name": "  ",
        }, headers=as_user(director))
        assert res.status_code == 400

    def test_update_moves_task_between_projects(self, client, as_user, director, task,
                                                 make_project, project):
        target = make_project(name="Obra Norte")
        res = client.patch(f"{API}/tasks/{task.id}", json={
            "project_id": target.id, "insumos_value": 80,
        }, headers=as_user(director))
        assert res.status_code == 200
        assert _reload(Project, target.id).insumos_value == 80
        assert _reload(Project, project.id).insumos_value == 0

    def test_status_override(self, client, as_user, director, task):
        res = client.patch(f"{API}/tasks/{task.id}/status",
                           json={"status": "APROVADA", "started": True}, headers=as_user(director))
        assert res.status_code == 200
        assert res.get_json()["status"] == "APROVADA"
        assert res.get_json()["started"] is True

    def test_status_override_requires_status(self, client, as_user, director, task):
        res = client.patch(f"{API}/tasks/{task.id}/status", json={}, headers=as_user(director))
        assert res.status_code == 400

    def test_delete(self, client, as_user, director, task, project):
        res = client.delete(f"{API}/tasks/{task.id}", headers=as_user(director))
        assert res.status_code == 200
        body = res.get_json()
        assert body["deleted"] is True
        assert body["project"]["task_count"] == 0
        assert _reload(Task, task.id) is None


# ═══════════════════════════════════════════════════════════════════════════
#  FLOWS
# ═══════════════════════════════════════════════════════════════════════════


class TestDeliveryFlow:
    def test_deliver_then_reject_then_redeliver(self, client, as_user, task, executor, supervisor):
        res = client.post(f"{API}/tasks/{task.id}/deliver",
                          json={"description": "Serviço entregue"}, headers=as_user(executor))
        assert res.status_code == 201
        body = res.get_json()
        assert body["status"] == "EM_ANALISE"
        delivery_id = body["deliveries"][0]["id"]

        res = client.patch(f"{API}/tasks/{task.id}/deliver/{delivery_id}",
                           json={"description": "Serviço entregue v2"}, headers=as_user(executor))
        assert res.status_code == 200
        assert res.get_json()["description"] == "Serviço entregue v2"

        res = client.post(f"{API}/tasks/{task.id}/reject",
                          json={"reason": "Faltam fotos"}, headers=as_user(supervisor))
        assert res.status_code == 200
        assert res.get_json()["status"] == "REPROVADA"

        res = client.post(f"{API}/tasks/{task.id}/deliver",
                          json={"description": "Agora com fotos"}, headers=as_user(executor))
        assert res.status_code == 201
        assert len(res.get_json()["deliveries"]) == 2

    def test_approve_without_pending_delivery_is_409(self, client, as_user, task, supervisor):
        res = client.post(f"{API}/tasks/{task.id}/approve", json={}, headers=as_user(supervisor))
        assert res.status_code == 409


class TestChecklistFlow:
    def test_submit_review_and_list(self, client, as_user, task, executor, supervisor, project):
        res = client.post(f"{API}/tasks/{task.id}/checklist/0/submit",
                          json={"description": "Concretagem concluída",
                                "images": ["https://x/1.png", " ", "https://x/2.png"]},
                          headers=as_user(executor))
        assert res.status_code == 201
        assert res.get_json()["image_urls"] == ["https://x/1.png", "https://x/2.png"]

        res = client.patch(f"{API}/tasks/{task.id}/checklist/0/review",
                           json={"status": "APROVADO", "comment": "Ok"}, headers=as_user(supervisor))
        assert res.status_code == 200

        res = client.patch(f"{API}/tasks/{task.id}/checklist/0/review",
                           json={"status": "REPROVADO"}, headers=as_user(supervisor))
        assert res.status_code == 409

        res = client.get(f"{API}/tasks/{task.id}/checklist/deliveries", headers=as_user(executor))
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["status"] == "APROVADO"
        assert _reload(Project, project.id).status == "FINALIZADO"

    def test_subitem_query_parameter(self, client, as_user, make_task, project, executor):
        task = make_task(project, executor, checklist=[{"texto": "A", "subitens": [{"texto": "a1"}]}])
        res = client.post(f"{API}/tasks/{task.id}/checklist/0/submit?subitem_index=0",
                          json={"description": "Sub-item pronto"}, headers=as_user(executor))
        assert res.status_code == 201
        assert res.get_json()["subitem_index"] == 0

    def test_negative_subitem_index_is_400(self, client, as_user, task, executor, supervisor):
        client.post(f"{API}/tasks/{task.id}/checklist/0/submit",
                    json={"description": "Concretagem concluída"}, headers=as_user(executor))
        res = client.patch(f"{API}/tasks/{task.id}/checklist/0/review?subitem_index=-1",
                           json={"status": "APROVADO"}, headers=as_user(supervisor))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"subitem_index": -1}
        assert _reload(Task, task.id).checklist[0].concluido is False

    def test_legacy_task_with_blank_item_still_loads(self, client, as_user, task, executor):
        task.checklist_json = [{"texto": "", "concluido": True}, "x" * 600]
        task.checklist_version = 1
        db.session.commit()
        res = client.get(f"{API}/tasks/{task.id}", headers=as_user(executor))
        assert res.status_code == 200
        assert [i["texto"] for i in res.get_json()["checklist"]] == ["", "x" * 600]

    def test_bad_index_is_404(self, client, as_user, task, executor):
        res = client.post(f"{API}/tasks/{task.id}/checklist/7/submit",
                          json={"description": "Concretagem concluída"}, headers=as_user(executor))
        assert res.status_code == 404

    def test_replace_requires_checklist_key(self, client, as_user, task, executor):
        res = client.patch(f"{API}/tasks/{task.id}/checklist", json={}, headers=as_user(executor))
        assert res.status_code == 400

    def test_replace(self, client, as_user, task, member):
        res = client.patch(f"{API}/tasks/{task.id}/checklist",
                           json={"checklist": [{"texto": "A", "concluido": "true"}]},
                           headers=as_user(member))
        assert res.status_code == 200
        assert res.get_json()["status"] == "EM_ANDAMENTO"


# ═══════════════════════════════════════════════════════════════════════════
#  MY TASKS / PROJECTS / STOCK
# ═══════════════════════════════════════════════════════════════════════════


class TestMyTasks:
    def test_executor_sees_active_tasks(self, client, as_user, make_task, project, executor):
        make_task(project, executor, name="Ativa")
        make_task(project, executor, name="Fechada", status="APROVADA")
        res = client.get(f"{API}/tasks/my", headers=as_user(executor))
        assert res.status_code == 200
        assert [t["name"] for t in res.get_json()["tasks"]] == ["Ativa"]

    def test_responsible_sees_project_tasks(self, client, as_user, make_user, make_project,
                                            make_task, executor):
        owner = make_user("GM")
        project = make_project(responsibles=[owner])
        make_task(project, executor, status="REPROVADA")
        body = client.get(f"{API}/tasks/my", headers=as_user(owner)).get_json()
        assert [p["id"] for p in body["projects"]] == [project.id]
        assert body["projects"][0]["progress"] == 0
        assert len(body["tasks"]) == 1

    def test_invalid_status_filter(self, client, as_user, executor):
        res = client.get(f"{API}/tasks/my?status=BOGUS", headers=as_user(executor))
        assert res.status_code == 400


class TestProjects:
    def test_create_list_and_get(self, client, as_user, director, supervisor, executor):
        res = client.post(f"{API}/projects", json={
            "name": "Residencial Sul", "supervisor_id": supervisor.id,
            "responsible_ids": [director.id], "total_value": 250000,
        }, headers=as_user(director))
        assert res.status_code == 201
        project_id = res.get_json()["id"]

        res = client.get(f"{API}/projects?search=sul", headers=as_user(executor))
        assert res.get_json()["total"] == 1

        res = client.get(f"{API}/projects/{project_id}", headers=as_user(executor))
        body = res.get_json()
        assert body["status"] == "EM_ANDAMENTO"
        assert body["tasks"] == []
        assert body["progress"] == 0

    def test_update_responsibles(self, client, as_user, director, project, executor, member):
        res = client.put(f"{API}/projects/{project.id}/responsibles",
                         json={"responsible_ids": [executor.id, member.id]}, headers=as_user(director))
        assert res.status_code == 200
        assert {r["user_id"] for r in res.get_json()["responsibles"]} == {executor.id, member.id}

    def test_finalize_and_recompute(self, client, as_user, supervisor, task, project):
        res = client.post(f"{API}/projects/{project.id}/finalize", headers=as_user(supervisor))
        assert res.status_code == 200
        assert res.get_json()["status"] == "FINALIZADO"

        res = client.post(f"{API}/projects/{project.id}/recompute", headers=as_user(supervisor))
        assert res.get_json()["status"] == "EM_ANDAMENTO"

    def test_finalize_forbidden(self, client, as_user, executor, project):
        res = client.post(f"{API}/projects/{project.id}/finalize", headers=as_user(executor))
        assert res.status_code == 403


class TestStockApi:
    def test_allocate_release_and_available(self, client, as_user, task, executor):
        item = StockItem(name="Areia", unit="m3", quantity=5)
        db.session.add(item)
        db.session.commit()

        res = client.post(f"{API}/tasks/{task.id}/stock",
                          json={"stock_item_id": item.id, "quantity": 2}, headers=as_user(executor))
        assert res.status_code == 201
        allocation_id = res.get_json()["id"]

        res = client.get(f"{API}/stock/{item.id}/available", headers=as_user(executor))
        assert res.get_json()["available"] == 3

        res = client.post(f"{API}/tasks/{task.id}/stock",
                          json={"stock_item_id": item.id, "quantity": 9}, headers=as_user(executor))
        assert res.status_code == 409

        res = client.delete(f"{API}/tasks/{task.id}/stock/{allocation_id}", headers=as_user(executor))
        assert res.get_json() == {"released": 2, "allocation_id": allocation_id}
