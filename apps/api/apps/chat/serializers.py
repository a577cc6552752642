"""
Chat serializers.
"""
from rest_framework import serializers

from apps.chat.models import Conversation, Message
from apps.chat.relay import channel_for_conversation


class ConversationCreateSerializer(serializers.Serializer):
    """
    Body of POST /api/v1/chat/conversations/.

    The requester comes from the session; only the counterpart is supplied.
    """
    appointment_id = serializers.UUIDField()
    counterpart_user_id = serializers.UUIDField()


class ConversationSerializer(serializers.ModelSerializer):
    """Conversation as returned by create and detail."""
    appointment_id = serializers.UUIDField(read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    doctor_id = serializers.UUIDField(read_only=True)
    channel = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id',
            'appointment_id',
            'patient_id',
            'doctor_id',
            'channel',
            'created_at',
            'last_activity_at',
        ]
        read_only_fields = fields

    def get_channel(self, obj):
        return channel_for_conversation(obj.id)


class ConversationSummarySerializer(ConversationSerializer):
    """
    Conversation list row, enriched by apps.chat.registry.list_conversations.
    """
    counterpart_user_id = serializers.UUIDField(read_only=True)
    counterpart_name = serializers.CharField(read_only=True)
    counterpart_specialization = serializers.CharField(read_only=True, allow_null=True)
    last_message = serializers.CharField(read_only=True, allow_null=True)

    class Meta(ConversationSerializer.Meta):
        fields = ConversationSerializer.Meta.fields + [
            'counterpart_user_id',
            'counterpart_name',
            'counterpart_specialization',
            'last_message',
        ]
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer):
    """Stored message; same keys as the relay event payload."""
    conversation_id = serializers.IntegerField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True)
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)

    class Meta:
        model = Message
        fields = [
            'id',
            'conversation_id',
            'sender_id',
            'sender_name',
            'body',
            'created_at',
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """Emptiness is checked by the store, on the trimmed body."""
    body = serializers.CharField(allow_blank=True, trim_whitespace=False)


class MessageListQuerySerializer(serializers.Serializer):
    after_id = serializers.IntegerField(required=False, min_value=0)


class RelayAuthSerializer(serializers.Serializer):
    """Pusher posts these as form fields."""
    socket_id = serializers.CharField()
    channel_name = serializers.CharField()
