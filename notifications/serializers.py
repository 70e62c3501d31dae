from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    """Serializer for Notification model"""

    song_title = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = [
            'id',
            'user',
            'type',
            'title',
            'message',
            'split_sheet',
            'song_title',
            'read',
            'created_at',
        ]
        read_only_fields = fields

    def get_song_title(self, obj):
        if obj.split_sheet_id and obj.split_sheet:
            return obj.split_sheet.song.final_title
        return None


class MarkReadSerializer(serializers.Serializer):
    """Either a list of notification ids or markAllRead."""
    notificationIds = serializers.ListField(
        child=serializers.IntegerField(),
        required=False,
        allow_empty=True
    )
    markAllRead = serializers.BooleanField(required=False, default=False)

    def validate(self, data):
        if not data.get('markAllRead') and not data.get('notificationIds'):
            raise serializers.ValidationError('Invalid payload')
        return data
