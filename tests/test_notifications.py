"""Notification service and /notifications endpoints."""

from fieldops.models.notification import Notification
from fieldops.services import delivery_service
from fieldops.services.notification import NotificationService


class TestNotificationService:
    def test_create_and_list(self, executor):
        NotificationService.create(user_id=executor.id, title="Olá", kind="system")
        items, total = NotificationService.list_for_user(executor.id)
        assert total == 1
        assert items[0].title == "Olá"
        assert NotificationService.unread_count(executor.id) == 1

    def test_no_recipient_is_noop(self):
        assert NotificationService.create(user_id=None, title="x") is None
        assert Notification.query.count() == 0

    def test_disabled(self, app, executor):
        app.config["NOTIFICATIONS_ENABLED"] = False
        try:
            assert NotificationService.create(user_id=executor.id, title="x") is None
        finally:
            app.config["NOTIFICATIONS_ENABLED"] = True

    def test_broadcast_collapses_duplicates(self, executor, supervisor):
        sent = NotificationService.broadcast(
            user_ids=[executor.id, supervisor.id, executor.id, None], title="Aviso",
        )
        assert len(sent) == 2

    def test_mark_read_is_per_user(self, executor, outsider):
        notif = NotificationService.create(user_id=executor.id, title="x")
        assert NotificationService.mark_read(notif.id, outsider.id) is None
        assert NotificationService.mark_read(notif.id, executor.id).is_read is True

    def test_mark_all_read(self, executor):
        for i in range(3):
            NotificationService.create(user_id=executor.id, title=f"n{i}")
        assert NotificationService.mark_all_read(executor.id) == 3
        assert NotificationService.unread_count(executor.id) == 0

    def test_delivery_verdict_in_title(self, task, executor, supervisor):
        delivery_service.submit_delivery(task.id, executor, "Fundação entregue")
        delivery_service.reject_delivery(task.id, supervisor, reason="Faltam fotos")
        delivery_service.submit_delivery(task.id, executor, "Fotos anexadas")
        delivery_service.approve_delivery(task.id, supervisor)
        titles = [n.title for n in Notification.query.filter_by(user_id=executor.id, kind="delivery")
                  .order_by(Notification.id)]
        assert titles == [f"Entrega recusada: {task.name}", f"Entrega aprovada: {task.name}"]


class TestNotificationAPI:
    def test_requires_actor(self, client):
        res = client.get("/api/v1/notifications")
        assert res.status_code == 401

    def test_list_unread_and_mark(self, client, as_user, executor):
        first = NotificationService.create(user_id=executor.id, title="a")
        NotificationService.create(user_id=executor.id, title="b")

        res = client.post(f"/api/v1/notifications/{first.id}/read", headers=as_user(executor))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        res = client.get("/api/v1/notifications?unread=true", headers=as_user(executor))
        body = res.get_json()
        assert body["total"] == 1
        assert body["unread_count"] == 1
        assert body["items"][0]["title"] == "b"

        res = client.post("/api/v1/notifications/read-all", headers=as_user(executor))
        assert res.get_json() == {"marked_read": 1}

    def test_other_users_notification_is_404(self, client, as_user, executor, outsider):
        notif = NotificationService.create(user_id=executor.id, title="a")
        res = client.post(f"/api/v1/notifications/{notif.id}/read", headers=as_user(outsider))
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
