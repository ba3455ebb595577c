from rest_framework import serializers

from .models import Notification, ReminderItem, Visit


class VisitSerializer(serializers.ModelSerializer):
    class Meta:
        model = Visit
        fields = [
            'id', 'housing_id', 'requester', 'scheduled_at', 'status',
            'validated_by_requester', 'notes', 'contact_phone',
            'attached_documents', 'linked_review_id', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class VisitCreateSerializer(serializers.Serializer):
    housing_id = serializers.CharField(max_length=64)
    scheduled_at = serializers.DateTimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    contact_phone = serializers.CharField(
        max_length=20, required=False, allow_blank=True, default='',
    )


class VisitStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=20)


class VisitDocumentsSerializer(serializers.Serializer):
    documents = serializers.ListField(
        child=serializers.CharField(max_length=255), allow_empty=False,
    )


class VisitReviewSerializer(serializers.Serializer):
    review_id = serializers.CharField(max_length=64)


class ReminderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReminderItem
        fields = [
            'id', 'recipient_role', 'kind', 'fire_at', 'title', 'body',
            'delivered', 'delivered_at', 'skip_reason',
        ]
        read_only_fields = fields


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            'id', 'visit', 'housing_id', 'notification_type', 'role',
            'sent_by', 'title', 'body', 'is_read', 'created_at',
        ]
        read_only_fields = fields
