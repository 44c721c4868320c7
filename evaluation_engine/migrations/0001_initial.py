from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

CHANNEL_CHOICES = [
    ('SELF', 'Autoevaluación'),
    ('STUDENT', 'Heteroevaluación'),
    ('PEER', 'Coevaluación'),
    ('AUTHORITY', 'Evaluación de autoridades'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='EvaluationInstance',
            fields=[
                ('instance_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('channel', models.CharField(choices=CHANNEL_CHOICES, max_length=10)),
                ('period_id', models.PositiveIntegerField(db_index=True)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('COMPLETED', 'Completed')], default='PENDING', max_length=10)),
                ('starts_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('ends_at', models.DateTimeField(blank=True, null=True)),
                ('notified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('deleted_at__isnull', True)), fields=('channel', 'period_id'), name='uniq_active_instance_per_channel_period'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Question',
            fields=[
                ('question_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('channel', models.CharField(choices=CHANNEL_CHOICES, max_length=10)),
                ('category', models.CharField(choices=[('ACTITUDINAL', 'Actitudinal'), ('CONCEPTUAL', 'Conceptual'), ('PROCEDIMENTAL', 'Procedimental')], max_length=13)),
                ('text', models.TextField()),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
        ),
        migrations.CreateModel(
            name='ResponseRecord',
            fields=[
                ('response_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('evaluator_id', models.PositiveIntegerField()),
                ('evaluated_id', models.PositiveIntegerField(db_index=True)),
                ('assignment_id', models.PositiveIntegerField()),
                ('value', models.DecimalField(decimal_places=2, max_digits=4)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='responses', to='evaluation_engine.evaluationinstance')),
                ('question', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='responses', to='evaluation_engine.question')),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('instance', 'evaluator_id', 'evaluated_id', 'assignment_id', 'question'), name='uniq_response_per_question_and_tuple'),
                ],
            },
        ),
        migrations.CreateModel(
            name='CompletedEvaluation',
            fields=[
                ('completion_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('evaluator_id', models.PositiveIntegerField()),
                ('evaluated_id', models.PositiveIntegerField(db_index=True)),
                ('assignment_id', models.PositiveIntegerField()),
                ('completed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='completions', to='evaluation_engine.evaluationinstance')),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('instance', 'evaluator_id', 'evaluated_id', 'assignment_id'), name='uniq_completion_per_tuple'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PeerAssignment',
            fields=[
                ('assignment_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('period_id', models.PositiveIntegerField(db_index=True)),
                ('evaluator_id', models.PositiveIntegerField()),
                ('evaluated_id', models.PositiveIntegerField()),
                ('subject_id', models.PositiveIntegerField(blank=True, null=True)),
                ('scheduled_date', models.DateField(blank=True, null=True)),
                ('start_time', models.TimeField(blank=True, null=True)),
                ('end_time', models.TimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('subject_id__isnull', False)), fields=('period_id', 'evaluator_id', 'evaluated_id', 'subject_id'), name='uniq_peer_assignment_with_subject'),
                    models.UniqueConstraint(condition=models.Q(('subject_id__isnull', True)), fields=('period_id', 'evaluator_id', 'evaluated_id'), name='uniq_peer_assignment_general'),
                    models.CheckConstraint(condition=models.Q(('evaluator_id', models.F('evaluated_id')), _negated=True), name='peer_assignment_not_self'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuthorityScore',
            fields=[
                ('score_id', models.BigAutoField(primary_key=True, serialize=False)),
                ('period_id', models.PositiveIntegerField(db_index=True)),
                ('teacher_id', models.PositiveIntegerField(db_index=True)),
                ('career_id', models.PositiveIntegerField(blank=True, null=True)),
                ('evaluator_cedula', models.CharField(max_length=20)),
                ('evaluator_name', models.CharField(blank=True, max_length=200)),
                ('score', models.DecimalField(decimal_places=2, max_digits=5)),
                ('observations', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('DELETED', 'Deleted')], default='ACTIVE', max_length=7)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'ACTIVE')), fields=('period_id', 'teacher_id', 'evaluator_cedula'), name='uniq_active_authority_score'),
                ],
            },
        ),
    ]
