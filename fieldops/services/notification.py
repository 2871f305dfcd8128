"""
Notification Service.

Creates and queries in-app notifications for task-engine events. Every
``notify_*`` helper is called after the main unit of work has committed,
wrapped in ``best_effort``; a failure here never undoes a task transition.
"""

from datetime import datetime, timezone

from flask import current_app

from fieldops.models import db
from fieldops.models.notification import Notification
from fieldops.models.task import DELIVERY_APPROVED, ITEM_APPROVED


def _enabled():
    return current_app.config.get("NOTIFICATIONS_ENABLED", True)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", kind="system", entity_type="", entity_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed), or None
            when notifications are disabled or there is no recipient.
        """
        if not _enabled() or user_id is None:
            return None
        notif = Notification(
            user_id=user_id,
            title=title,
            message=message,
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, user_ids, title, message="", kind="system", entity_type="", entity_id=None):
        """Send the same notification to several users (duplicates collapsed)."""
        if not _enabled():
            return []
        notifications = []
        for uid in dict.fromkeys(u for u in user_ids if u is not None):
            notif = Notification(
                user_id=uid,
                title=title,
                message=message,
                kind=kind,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a user, newest first."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read. Returns None if absent."""
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        q = Notification.query.filter_by(user_id=user_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count

    # ── Task-engine events ────────────────────────────────────────────────

    @staticmethod
    def notify_delivery_submitted(task, delivery):
        project = task.project
        return NotificationService.create(
            user_id=project.supervisor_id if project else None,
            title=f"Entrega enviada: {task.name}",
            message=f"Uma entrega da etapa '{task.name}' aguarda análise.",
            kind="delivery",
            entity_type="task",
            entity_id=task.id,
        )

    @staticmethod
    def notify_delivery_reviewed(task, delivery):
        approved = delivery.status == DELIVERY_APPROVED
        verdict = "aprovada" if approved else "recusada"
        message = f"A entrega da etapa '{task.name}' foi {verdict}."
        if delivery.comment:
            message += f" Comentário: {delivery.comment}"
        return NotificationService.create(
            user_id=task.executor_id,
            title=f"Entrega {verdict}: {task.name}",
            message=message,
            kind="delivery",
            entity_type="task",
            entity_id=task.id,
        )

    @staticmethod
    def notify_item_submitted(task, record, item_text):
        project = task.project
        return NotificationService.create(
            user_id=project.supervisor_id if project else None,
            title=f"Item do checklist enviado: {item_text}",
            message=f"Etapa '{task.name}': item aguarda análise.",
            kind="checklist",
            entity_type="task",
            entity_id=task.id,
        )

    @staticmethod
    def notify_item_reviewed(task, record, item_text):
        verdict = "aprovado" if record.status == ITEM_APPROVED else "reprovado"
        message = f"Etapa '{task.name}': o item '{item_text}' foi {verdict}."
        if record.comment:
            message += f" Comentário: {record.comment}"
        return NotificationService.create(
            user_id=record.submitted_by_id,
            title=f"Item {verdict}: {item_text}",
            message=message,
            kind="checklist",
            entity_type="task",
            entity_id=task.id,
        )

    @staticmethod
    def notify_project_finalized(project):
        recipients = [project.supervisor_id, *sorted(project.responsible_ids)]
        return NotificationService.broadcast(
            user_ids=recipients,
            title=f"Projeto finalizado: {project.name}",
            message=f"Todas as etapas do projeto '{project.name}' foram concluídas.",
            kind="project",
            entity_type="project",
            entity_id=project.id,
        )
