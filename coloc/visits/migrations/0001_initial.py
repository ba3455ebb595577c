import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


ROLE_CHOICES = [('requester', 'Requester'), ('host', 'Host')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Visit',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('housing_id', models.CharField(db_index=True, max_length=64)),
                ('scheduled_at', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('refused', 'Refused')], default='pending', max_length=10)),
                ('validated_by_requester', models.BooleanField(default=False)),
                ('notes', models.TextField(blank=True)),
                ('contact_phone', models.CharField(blank=True, max_length=20)),
                ('attached_documents', models.JSONField(blank=True, default=list)),
                ('linked_review_id', models.CharField(blank=True, max_length=64)),
                ('not_validated_notified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='requested_visits', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-scheduled_at'],
                'indexes': [
                    models.Index(fields=['requester', 'status'], name='visit_requester_status_idx'),
                    models.Index(fields=['status', 'scheduled_at'], name='visit_status_scheduled_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReminderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('recipient_role', models.CharField(choices=ROLE_CHOICES, max_length=10)),
                ('kind', models.CharField(choices=[('D2', '2 days before'), ('D1', '1 day before'), ('H2', '2 hours before'), ('H1', '1 hour before'), ('M30', '30 minutes before')], max_length=4)),
                ('fire_at', models.DateTimeField()),
                ('title', models.CharField(max_length=255)),
                ('body', models.TextField()),
                ('delivered', models.BooleanField(default=False)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('skip_reason', models.CharField(blank=True, max_length=50)),
                ('last_error', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='visit_reminders', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reminders', to='visits.visit')),
            ],
            options={
                'ordering': ['fire_at'],
                'indexes': [
                    models.Index(fields=['delivered', 'fire_at'], name='reminder_delivered_fire_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('visit', 'recipient_role', 'kind'), name='unique_reminder_per_visit_role_kind'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('housing_id', models.CharField(blank=True, max_length=64)),
                ('notification_type', models.CharField(choices=[('VISIT_ACCEPTED', 'Visit Accepted'), ('VISIT_REFUSED', 'Visit Refused'), ('VISIT_CANCELLED', 'Visit Cancelled'), ('VISIT_REMINDER', 'Visit Reminder'), ('VISIT_NOT_VALIDATED', 'Visit Not Validated'), ('NEW_MESSAGE', 'New Message')], max_length=20)),
                ('role', models.CharField(blank=True, choices=ROLE_CHOICES, max_length=10)),
                ('title', models.CharField(max_length=255)),
                ('body', models.TextField()),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('sent_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
                ('visit', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='visits.visit')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'is_read', 'created_at'], name='notification_user_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TaskHeartbeat',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('task_name', models.CharField(max_length=100, unique=True)),
                ('last_run', models.DateTimeField()),
                ('status', models.CharField(choices=[('OK', 'OK'), ('FAILED', 'Failed')], max_length=10)),
                ('details', models.TextField(blank=True)),
            ],
        ),
    ]
