from django.contrib import admin

from .models import Notification, ReminderItem, TaskHeartbeat, Visit


class ReminderItemInline(admin.TabularInline):
    model = ReminderItem
    extra = 0
    fields = ['recipient', 'recipient_role', 'kind', 'fire_at', 'delivered', 'skip_reason']
    readonly_fields = fields
    can_delete = False


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ['id', 'housing_id', 'requester', 'scheduled_at', 'status', 'validated_by_requester']
    list_filter = ['status', 'validated_by_requester']
    search_fields = ['housing_id', 'requester__email']
    raw_id_fields = ['requester']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ReminderItemInline]

    def get_readonly_fields(self, request, obj=None):
        # scheduled_at is fixed once the visit exists
        if obj is not None:
            return ['scheduled_at', *self.readonly_fields]
        return self.readonly_fields


@admin.register(ReminderItem)
class ReminderItemAdmin(admin.ModelAdmin):
    list_display = ['visit', 'recipient', 'recipient_role', 'kind', 'fire_at', 'delivered']
    list_filter = ['delivered', 'recipient_role', 'kind']
    raw_id_fields = ['visit', 'recipient']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['user', 'notification_type', 'title', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read']
    search_fields = ['user__email', 'title']
    raw_id_fields = ['user', 'visit', 'sent_by']


@admin.register(TaskHeartbeat)
class TaskHeartbeatAdmin(admin.ModelAdmin):
    list_display = ['task_name', 'status', 'last_run']
