from decimal import Decimal

from rest_framework import serializers

from evaluation_engine.models import Channel, RESPONSE_CHANNELS
from evaluation_engine.utils import LabelChoiceField

RESPONSE_CHANNEL_CHOICES = [(c.value, c.label) for c in RESPONSE_CHANNELS]


class InstanceInputSerializer(serializers.Serializer):
    # authority ratings are direct scores, they never get an instance
    channel   = LabelChoiceField(choices=RESPONSE_CHANNEL_CHOICES)
    period_id = serializers.IntegerField(min_value=1)
    starts_at = serializers.DateTimeField(required=False, allow_null=True)
    ends_at   = serializers.DateTimeField(required=False, allow_null=True)


class AssignmentInputSerializer(serializers.Serializer):
    period_id      = serializers.IntegerField(min_value=1)
    evaluator_id   = serializers.IntegerField(min_value=1)
    evaluated_id   = serializers.IntegerField(min_value=1)
    subject_id     = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    start_time     = serializers.TimeField(required=False, allow_null=True)
    end_time       = serializers.TimeField(required=False, allow_null=True)


class ResponseItemSerializer(serializers.Serializer):
    question_id   = serializers.IntegerField(min_value=1)
    evaluated_id  = serializers.IntegerField(min_value=1)
    assignment_id = serializers.IntegerField(min_value=1)
    value         = serializers.DecimalField(
        max_digits=4, decimal_places=2, min_value=Decimal("0"), max_value=Decimal("5")
    )


class ResponseSubmissionSerializer(serializers.Serializer):
    """
    One response set: every item answers a different question about the
    same evaluated teacher and teaching assignment.
    """
    instance_id  = serializers.IntegerField(min_value=1)
    evaluator_id = serializers.IntegerField(min_value=1)
    responses    = ResponseItemSerializer(many=True, allow_empty=False)
    edit         = serializers.BooleanField(required=False, default=False)

    def validate_responses(self, items):
        subjects = {(i["evaluated_id"], i["assignment_id"]) for i in items}
        if len(subjects) > 1:
            raise serializers.ValidationError(
                "All responses of a submission must target the same teacher and assignment."
            )

        question_ids = [i["question_id"] for i in items]
        if len(set(question_ids)) != len(question_ids):
            raise serializers.ValidationError("A question can only be answered once per submission.")
        return items


class AuthorityScoreInputSerializer(serializers.Serializer):
    period_id        = serializers.IntegerField(min_value=1)
    teacher_id       = serializers.IntegerField(min_value=1)
    evaluator_cedula = serializers.CharField(max_length=20)
    score            = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal("0"), max_value=Decimal("100")
    )
    career_id        = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    evaluator_name   = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    observations     = serializers.CharField(required=False, allow_blank=True, default="")


class ReportQuerySerializer(serializers.Serializer):
    """Arguments of the read operations; only the ones passed are checked."""
    period_id = serializers.IntegerField(min_value=1, required=False)
    cedula    = serializers.CharField(max_length=20, required=False)
    career_id = serializers.IntegerField(min_value=1, required=False)
    channel   = LabelChoiceField(choices=Channel.choices, required=False)
    limit     = serializers.IntegerField(min_value=1, max_value=50, required=False)
    top       = serializers.IntegerField(min_value=1, max_value=20, required=False)
    instance_id  = serializers.IntegerField(min_value=1, required=False)
    evaluator_id = serializers.IntegerField(min_value=1, required=False)
