import re

from rest_framework import serializers
from .models import InviteCode, ProOrg, Publisher, UserProfile

USERNAME_MIN_LENGTH = 4
USERNAME_MAX_LENGTH = 30
USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
USERNAME_REQUIRED_MESSAGE = 'User ID and new username are required'
RESERVED_USERNAMES = {
    'admin', 'system', 'user', 'root', 'administrator', 'moderator', 'staff',
}


class InviteCodeSerializer(serializers.ModelSerializer):
    """Serializer for InviteCode model"""

    created_by_email = serializers.EmailField(source='created_by.email', read_only=True, default=None)

    class Meta:
        model = InviteCode
        fields = [
            'id',
            'code',
            'role',
            'created_by',
            'created_by_email',
            'used_by',
            'used_at',
            'expires_at',
            'created_at',
        ]
        read_only_fields = fields


class GenerateInviteSerializer(serializers.Serializer):
    """Role an invite grants. Accepts any case."""
    role = serializers.CharField()

    def validate_role(self, value):
        role = str(value or '').strip().upper()
        if role not in (UserProfile.ROLE_LABEL, UserProfile.ROLE_ADMIN):
            raise serializers.ValidationError('Invalid role')
        return role


class RedeemInviteSerializer(serializers.Serializer):
    code = serializers.CharField()
    requestedRole = serializers.CharField()

    def validate_code(self, value):
        return str(value or '').strip().upper()

    def validate_requestedRole(self, value):
        return str(value or '').strip().upper()


class PublisherSerializer(serializers.ModelSerializer):

    class Meta:
        model = Publisher
        fields = ['id', 'name', 'ipi_number']
        read_only_fields = fields


class ProOrgSerializer(serializers.ModelSerializer):

    class Meta:
        model = ProOrg
        fields = ['id', 'name', 'country']
        read_only_fields = fields


class ArtistSerializer(serializers.ModelSerializer):
    """Profile as listed to label accounts."""

    userId = serializers.IntegerField(source='user_id', read_only=True)
    name = serializers.SerializerMethodField()
    labelId = serializers.IntegerField(source='label_id', read_only=True, allow_null=True)
    email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = UserProfile
        fields = ['userId', 'name', 'role', 'labelId', 'email']
        read_only_fields = fields

    def get_name(self, obj):
        return obj.username or obj.user.get_full_name() or obj.user.username


class UserIdSerializer(serializers.Serializer):
    userId = serializers.IntegerField(
        error_messages={'required': 'Missing userId', 'null': 'Missing userId'}
    )


class UsernameChangeSerializer(serializers.Serializer):
    """
    New public handle for a profile.

    Trimmed, 4 to 30 characters of letters, digits, dots, hyphens and
    underscores, not reserved. Stored lowercase.
    """
    userId = serializers.IntegerField(
        error_messages={'required': USERNAME_REQUIRED_MESSAGE}
    )
    newUsername = serializers.CharField(
        trim_whitespace=True,
        error_messages={
            'required': USERNAME_REQUIRED_MESSAGE,
            'blank': USERNAME_REQUIRED_MESSAGE,
        }
    )

    def validate_newUsername(self, value):
        if len(value) < USERNAME_MIN_LENGTH:
            raise serializers.ValidationError(
                f'Username must be at least {USERNAME_MIN_LENGTH} characters'
            )
        if len(value) > USERNAME_MAX_LENGTH:
            raise serializers.ValidationError(
                f'Username must be less than {USERNAME_MAX_LENGTH} characters'
            )
        if value.lower() in RESERVED_USERNAMES:
            raise serializers.ValidationError('This username is reserved and cannot be used')
        if not USERNAME_PATTERN.match(value):
            raise serializers.ValidationError(
                'Username can only contain letters, numbers, dots, hyphens, and underscores'
            )
        return value.lower()
