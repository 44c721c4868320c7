from rest_framework import serializers

from evaluation_engine.models import Channel, InstanceStatus
from evaluation_engine.utils import LabelChoiceField


class InstanceSerializer(serializers.Serializer):
    instance_id   = serializers.IntegerField()
    channel       = LabelChoiceField(choices=Channel.choices)
    channel_label = serializers.SerializerMethodField()
    period_id     = serializers.IntegerField()
    status        = serializers.ChoiceField(choices=InstanceStatus.choices)
    starts_at     = serializers.DateTimeField(allow_null=True)
    ends_at       = serializers.DateTimeField(allow_null=True)
    notified_at   = serializers.DateTimeField(allow_null=True)

    def get_channel_label(self, obj):
        return Channel(obj.channel).label


class PeerAssignmentSerializer(serializers.Serializer):
    assignment_id  = serializers.IntegerField(source="assignment.assignment_id")
    period_id      = serializers.IntegerField(source="assignment.period_id")
    evaluator_id   = serializers.IntegerField(source="assignment.evaluator_id")
    evaluator_name = serializers.CharField()
    evaluated_id   = serializers.IntegerField(source="assignment.evaluated_id")
    evaluated_name = serializers.CharField()
    subject_id     = serializers.IntegerField(source="assignment.subject_id", allow_null=True)
    scheduled_date = serializers.DateField(source="assignment.scheduled_date", allow_null=True)
    start_time     = serializers.TimeField(source="assignment.start_time", allow_null=True)
    end_time       = serializers.TimeField(source="assignment.end_time", allow_null=True)


class ChannelScoresField(serializers.DictField):
    """{channel: score|null} keyed by channel code."""
    child = serializers.FloatField(allow_null=True)


class CompositeScoreSerializer(serializers.Serializer):
    period_id     = serializers.IntegerField()
    cedula        = serializers.CharField()
    composite     = serializers.FloatField(allow_null=True)
    per_channel   = ChannelScoresField()
    contributions = ChannelScoresField()


class TeacherResultSerializer(serializers.Serializer):
    cedula        = serializers.CharField()
    name          = serializers.CharField()
    composite     = serializers.FloatField(allow_null=True)
    per_channel   = ChannelScoresField()
    contributions = ChannelScoresField()


class ChannelParticipationSerializer(serializers.Serializer):
    completed = serializers.IntegerField()
    expected  = serializers.IntegerField()
    rate      = serializers.FloatField()


class ParticipationSerializer(serializers.Serializer):
    period_id = serializers.IntegerField()
    rate      = serializers.FloatField()
    completed = serializers.IntegerField()
    expected  = serializers.IntegerField()
    breakdown = serializers.DictField(child=ChannelParticipationSerializer())


class SummaryMetricsSerializer(serializers.Serializer):
    teachers_evaluated    = serializers.IntegerField()
    completed_evaluations = serializers.IntegerField()
    general_average       = serializers.FloatField()
    participation_rate    = serializers.FloatField()


class PeriodSummarySerializer(serializers.Serializer):
    period_id          = serializers.IntegerField()
    period_name        = serializers.CharField()
    current            = SummaryMetricsSerializer()
    previous           = SummaryMetricsSerializer()
    previous_period_id = serializers.IntegerField(allow_null=True)


class CareerReportSerializer(serializers.Serializer):
    period_id   = serializers.IntegerField()
    period_name = serializers.CharField()
    career_id   = serializers.IntegerField()
    career_name = serializers.CharField()
    teachers    = TeacherResultSerializer(many=True)


class HistoryPointSerializer(serializers.Serializer):
    period_id       = serializers.IntegerField()
    period_name     = serializers.CharField()
    general_average = serializers.FloatField(allow_null=True)


class ItemAverageSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    text        = serializers.CharField()
    count       = serializers.IntegerField()
    mean        = serializers.FloatField()
    percent     = serializers.FloatField()


class QuestionExtremesSerializer(serializers.Serializer):
    category = serializers.CharField()
    best     = ItemAverageSerializer(many=True)
    worst    = ItemAverageSerializer(many=True)


class CareerChannelAverageSerializer(serializers.Serializer):
    career_id   = serializers.IntegerField()
    career_name = serializers.CharField()
    teachers    = serializers.IntegerField()
    responses   = serializers.IntegerField()
    categories  = serializers.DictField(child=serializers.FloatField(allow_null=True))
    average     = serializers.FloatField(allow_null=True)


class CareerAveragesReportSerializer(serializers.Serializer):
    period_id             = serializers.IntegerField()
    channel               = LabelChoiceField(choices=Channel.choices)
    careers               = CareerChannelAverageSerializer(many=True)
    institutional_average = serializers.FloatField(allow_null=True)


class WorklistItemSerializer(serializers.Serializer):
    evaluated_id   = serializers.IntegerField()
    evaluated_name = serializers.CharField()
    assignment_id  = serializers.IntegerField()
    subject_name   = serializers.CharField(allow_blank=True)
    done           = serializers.BooleanField()


class EvaluatorWorklistSerializer(serializers.Serializer):
    instance_id  = serializers.IntegerField()
    channel      = LabelChoiceField(choices=Channel.choices)
    evaluator_id = serializers.IntegerField()
    pending      = WorklistItemSerializer(many=True)
    completed    = WorklistItemSerializer(many=True)


class PeerReportRowSerializer(PeerAssignmentSerializer):
    subject_name = serializers.CharField(allow_blank=True)
    completed    = serializers.BooleanField()


class PeerAssignmentReportSerializer(serializers.Serializer):
    period_id         = serializers.IntegerField()
    period_name       = serializers.CharField()
    career_id         = serializers.IntegerField(allow_null=True)
    rows              = PeerReportRowSerializer(many=True)
    total_assignments = serializers.IntegerField()
    total_evaluators  = serializers.IntegerField()
    total_evaluated   = serializers.IntegerField()
    completed         = serializers.IntegerField()
    pending           = serializers.IntegerField()
    completion_rate   = serializers.FloatField()


class NotificationResultSerializer(serializers.Serializer):
    instance_id = serializers.IntegerField()
    reminder    = serializers.BooleanField()
    total       = serializers.IntegerField()
    sent        = serializers.ListField(child=serializers.EmailField())
    failed      = serializers.SerializerMethodField()

    def get_failed(self, obj):
        return [{"email": email, "error": error} for email, error in obj.failed]
