from django.db import models
from django.db.models import Q, F
from django.utils import timezone

# ── Lookup / Enum helpers ────────────────────────────────────────────────

class Channel(models.TextChoices):
    SELF      = "SELF",      "Autoevaluación"
    STUDENT   = "STUDENT",   "Heteroevaluación"
    PEER      = "PEER",      "Coevaluación"
    AUTHORITY = "AUTHORITY", "Evaluación de autoridades"


# Channels whose score comes from questionnaire responses (and therefore
# from an EvaluationInstance). Authority ratings are direct 0-100 scores.
RESPONSE_CHANNELS = (Channel.SELF, Channel.STUDENT, Channel.PEER)


class InstanceStatus(models.TextChoices):
    PENDING   = "PENDING",   "Pending"
    COMPLETED = "COMPLETED", "Completed"


class QuestionCategory(models.TextChoices):
    ATTITUDINAL  = "ACTITUDINAL",   "Actitudinal"
    CONCEPTUAL   = "CONCEPTUAL",    "Conceptual"
    PROCEDURAL   = "PROCEDIMENTAL", "Procedimental"


class RecordStatus(models.TextChoices):
    ACTIVE  = "ACTIVE",  "Active"
    DELETED = "DELETED", "Deleted"


# ── Evaluation store ─────────────────────────────────────────────────────
# Teacher / period / teaching-assignment ids reference the academic store
# and are kept as plain integers (no cross-database foreign keys).

class EvaluationInstance(models.Model):
    instance_id  = models.BigAutoField(primary_key=True)
    channel      = models.CharField(max_length=10, choices=Channel.choices)
    period_id    = models.PositiveIntegerField(db_index=True)
    status       = models.CharField(max_length=10, choices=InstanceStatus.choices, default=InstanceStatus.PENDING)
    starts_at    = models.DateTimeField(default=timezone.now)
    ends_at      = models.DateTimeField(null=True, blank=True)
    notified_at  = models.DateTimeField(null=True, blank=True)
    created_at   = models.DateTimeField(default=timezone.now)
    updated_at   = models.DateTimeField(auto_now=True)
    deleted_at   = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["channel", "period_id"],
                condition=Q(deleted_at__isnull=True),
                name="uniq_active_instance_per_channel_period",
            )
        ]


class Question(models.Model):
    question_id = models.BigAutoField(primary_key=True)
    channel     = models.CharField(max_length=10, choices=Channel.choices)
    category    = models.CharField(max_length=13, choices=QuestionCategory.choices)
    text        = models.TextField()
    created_at  = models.DateTimeField(default=timezone.now)


class ResponseRecord(models.Model):
    response_id   = models.BigAutoField(primary_key=True)
    instance      = models.ForeignKey(EvaluationInstance, on_delete=models.CASCADE, related_name="responses")
    question      = models.ForeignKey(Question, on_delete=models.PROTECT, related_name="responses")
    evaluator_id  = models.PositiveIntegerField()
    evaluated_id  = models.PositiveIntegerField(db_index=True)   # academic Teacher.teacher_id
    assignment_id = models.PositiveIntegerField()                # academic TeachingAssignment.assignment_id
    value         = models.DecimalField(max_digits=4, decimal_places=2)   # Likert 0..5
    created_at    = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["instance", "evaluator_id", "evaluated_id", "assignment_id", "question"],
                name="uniq_response_per_question_and_tuple",
            )
        ]


class CompletedEvaluation(models.Model):
    """Marks one (instance, evaluator, evaluated, assignment) response set as done."""
    completion_id = models.BigAutoField(primary_key=True)
    instance      = models.ForeignKey(EvaluationInstance, on_delete=models.CASCADE, related_name="completions")
    evaluator_id  = models.PositiveIntegerField()
    evaluated_id  = models.PositiveIntegerField(db_index=True)
    assignment_id = models.PositiveIntegerField()
    completed_at  = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["instance", "evaluator_id", "evaluated_id", "assignment_id"],
                name="uniq_completion_per_tuple",
            )
        ]


class PeerAssignment(models.Model):
    assignment_id  = models.BigAutoField(primary_key=True)
    period_id      = models.PositiveIntegerField(db_index=True)
    evaluator_id   = models.PositiveIntegerField()
    evaluated_id   = models.PositiveIntegerField()
    subject_id     = models.PositiveIntegerField(null=True, blank=True)
    scheduled_date = models.DateField(null=True, blank=True)
    start_time     = models.TimeField(null=True, blank=True)
    end_time       = models.TimeField(null=True, blank=True)
    created_at     = models.DateTimeField(default=timezone.now)
    updated_at     = models.DateTimeField(auto_now=True)

    class Meta:
        # a general (subject-less) grant and a subject grant for the same pair coexist
        constraints = [
            models.UniqueConstraint(
                fields=["period_id", "evaluator_id", "evaluated_id", "subject_id"],
                condition=Q(subject_id__isnull=False),
                name="uniq_peer_assignment_with_subject",
            ),
            models.UniqueConstraint(
                fields=["period_id", "evaluator_id", "evaluated_id"],
                condition=Q(subject_id__isnull=True),
                name="uniq_peer_assignment_general",
            ),
            models.CheckConstraint(
                condition=~Q(evaluator_id=F("evaluated_id")),
                name="peer_assignment_not_self",
            ),
        ]


class AuthorityScore(models.Model):
    score_id          = models.BigAutoField(primary_key=True)
    period_id         = models.PositiveIntegerField(db_index=True)
    teacher_id        = models.PositiveIntegerField(db_index=True)
    career_id         = models.PositiveIntegerField(null=True, blank=True)
    evaluator_cedula  = models.CharField(max_length=20)
    evaluator_name    = models.CharField(max_length=200, blank=True)
    score             = models.DecimalField(max_digits=5, decimal_places=2)   # 0..100
    observations      = models.TextField(blank=True)
    status            = models.CharField(max_length=7, choices=RecordStatus.choices, default=RecordStatus.ACTIVE)
    created_at        = models.DateTimeField(default=timezone.now)
    updated_at        = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["period_id", "teacher_id", "evaluator_cedula"],
                condition=Q(status="ACTIVE"),
                name="uniq_active_authority_score",
            )
        ]
