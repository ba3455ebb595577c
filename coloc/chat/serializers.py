from rest_framework import serializers

from .models import Message


class MessageSerializer(serializers.ModelSerializer):
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)
    receiver_name = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            'id', 'visit', 'sender', 'sender_name', 'receiver', 'receiver_name',
            'content', 'attachments', 'kind', 'read', 'read_at', 'created_at',
        ]
        read_only_fields = fields

    def get_receiver_name(self, obj):
        return obj.receiver.display_name if obj.receiver_id else None


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True, default='')
    attachments = serializers.ListField(
        child=serializers.CharField(max_length=500), required=False, default=list,
    )
