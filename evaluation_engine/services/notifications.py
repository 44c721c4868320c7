"""
E-mail fan-out announcing an evaluation instance to its evaluators.

Sends go through django.core.mail with a bounded number running at the
same time (EVALUATION_ENGINE["NOTIFICATION_CONCURRENCY"], 5 by default).
A failed send is recorded for that recipient and never aborts the batch.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from django.conf import settings
from django.core.mail import send_mail

from evaluation_engine.models import Channel
from evaluation_engine.repositories.base import (
    AcademicRecordRepository, EvaluationStoreRepository, InstanceRecord
)
from evaluation_engine.services.identity import display_name

logger = logging.getLogger(__name__)

REMINDER_PREFIX = "RECORDATORIO: "
DEFAULT_CONCURRENCY = 5


def _engine_setting(name, default):
    return getattr(settings, "EVALUATION_ENGINE", {}).get(name, default)


@dataclass
class NotificationResult:
    instance_id: int
    reminder: bool
    sent: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)    # (email, error)

    @property
    def total(self) -> int:
        return len(self.sent) + len(self.failed)


class NotificationService:

    def __init__(
        self,
        academic: AcademicRecordRepository,
        store: EvaluationStoreRepository,
        sender: Callable = send_mail,
        max_workers: Optional[int] = None,
    ):
        self.academic = academic
        self.store = store
        self.sender = sender
        self.max_workers = max_workers or _engine_setting("NOTIFICATION_CONCURRENCY", DEFAULT_CONCURRENCY)

    def recipients_for(self, instance: InstanceRecord) -> List[Tuple[str, str]]:
        """(name, email) pairs of whoever answers this instance."""
        if instance.channel == Channel.STUDENT:
            return self.academic.student_emails(instance.period_id)
        if instance.channel == Channel.SELF:
            return self.academic.teacher_emails(instance.period_id)
        if instance.channel == Channel.PEER:
            evaluator_ids = {a.evaluator_id for a in self.store.list_assignments(instance.period_id)}
            if not evaluator_ids:
                return []
            return self.academic.teacher_emails_for_ids(evaluator_ids)
        return []

    def build_message(self, instance: InstanceRecord, period_name: str, name: str, reminder: bool) -> Tuple[str, str]:
        label = Channel(instance.channel).label
        subject = f"{REMINDER_PREFIX if reminder else ''}{label} - {period_name}"
        lines = [
            f"Estimado/a {display_name(name, 'docente')}:",
            "",
            f"Se encuentra habilitada la {label.lower()} del período {period_name}.",
        ]
        if instance.ends_at:
            lines.append(f"Fecha límite: {instance.ends_at:%d/%m/%Y %H:%M}.")
        lines += ["", f"Ingrese al sistema: {_engine_setting('NOTIFICATION_SITE_URL', '')}"]
        return subject, "\n".join(lines)

    def notify(self, instance: InstanceRecord, period_name: str) -> NotificationResult:
        reminder = instance.notified_at is not None
        result = NotificationResult(instance_id=instance.instance_id, reminder=reminder)

        recipients = self.recipients_for(instance)
        if not recipients:
            logger.warning("Instance %s has no recipients to notify", instance.instance_id)
            return result

        def _send(recipient):
            name, email = recipient
            subject, body = self.build_message(instance, period_name, name, reminder)
            try:
                self.sender(subject, body, settings.DEFAULT_FROM_EMAIL, [email], fail_silently=False)
            except Exception as exc:
                logger.warning("Notification to %s failed: %s", email, exc)
                return email, str(exc)
            return email, None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = list(executor.map(_send, recipients))

        for email, error in outcomes:
            if error is None:
                result.sent.append(email)
            else:
                result.failed.append((email, error))

        logger.info("Instance %s notified: %d sent, %d failed%s",
                    instance.instance_id, len(result.sent), len(result.failed),
                    " (reminder)" if reminder else "")
        return result
