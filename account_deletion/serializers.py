from rest_framework import serializers

CONFIRMATION_TEXT = 'DELETE'


class DeletionRequestSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1)
    confirmation = serializers.CharField()

    def validate_confirmation(self, value):
        if value != CONFIRMATION_TEXT:
            raise serializers.ValidationError(f'Type {CONFIRMATION_TEXT} to confirm')
        return value
