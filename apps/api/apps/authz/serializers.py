"""
Authz serializers - login and current user.
"""
from rest_framework import serializers

from apps.authz.models import User


class LoginSerializer(serializers.Serializer):
    """Credentials for POST /api/auth/login/."""
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class SessionSerializer(serializers.Serializer):
    """Issued session returned by login."""
    token = serializers.CharField()
    expires_at = serializers.DateTimeField()


class MeSerializer(serializers.ModelSerializer):
    """
    Current user plus the chat identity resolved for them.

    profile_id is the Patient or Doctor id; null for admins.
    """
    display_name = serializers.CharField(read_only=True)
    profile_id = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'first_name',
            'last_name',
            'display_name',
            'role',
            'profile_id',
        ]
        read_only_fields = fields

    def get_profile_id(self, obj):
        identity = self.context.get('identity')
        return str(identity.profile_id) if identity is not None else None
