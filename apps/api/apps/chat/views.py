"""
Chat API views.
"""
import logging

from django.conf import settings
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.identity import CHAT_ROLES
from apps.chat import registry, store
from apps.chat.models import Conversation
from apps.chat.permissions import HasChatIdentity
from apps.chat.relay import conversation_id_from_channel, get_relay
from apps.chat.serializers import (
    ConversationCreateSerializer,
    ConversationSerializer,
    ConversationSummarySerializer,
    MessageCreateSerializer,
    MessageListQuerySerializer,
    MessageSerializer,
    RelayAuthSerializer,
)
from apps.core.errors import Forbidden, InvalidRole, NotFound
from apps.core.observability import metrics
from apps.core.observability.events import log_relay_subscription

logger = logging.getLogger(__name__)


class ConversationViewSet(viewsets.ViewSet):
    """
    ViewSet for chat conversations and their messages.

    Endpoints:
    - POST /api/v1/chat/conversations/ - Ensure the conversation for an appointment
      (201 when created, 200 when it already existed)
    - GET /api/v1/chat/conversations/ - List my conversations, most recent first
    - GET /api/v1/chat/conversations/{id}/ - Conversation detail
    - GET /api/v1/chat/conversations/{id}/messages/ - Full history, ascending id
    - POST /api/v1/chat/conversations/{id}/messages/ - Send a message

    Query parameters:
    - ?role=patient|doctor (list) - must match the caller's own role
    - ?after_id=N (messages) - only messages with id > N

    RBAC:
    - Patient / Doctor with profile: own conversations only
    - Admin / no profile: InvalidRole (400)
    - Non-participant: Forbidden (403)
    """
    permission_classes = [HasChatIdentity]

    def create(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        conversation, created = registry.ensure_conversation(
            appointment_id=serializer.validated_data['appointment_id'],
            requester_user_id=request.user.id,
            counterpart_user_id=serializer.validated_data['counterpart_user_id'],
        )
        return Response(
            {'conversation': ConversationSerializer(conversation).data},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    def list(self, request):
        identity = request.auth
        role = request.query_params.get('role')
        if role:
            if role not in CHAT_ROLES:
                raise InvalidRole()
            if role != identity.role:
                raise Forbidden('role does not match the authenticated user')

        conversations = registry.list_conversations(identity)
        return Response({
            'conversations': ConversationSummarySerializer(conversations, many=True).data
        })

    def retrieve(self, request, pk=None):
        conversation = registry.get_conversation_for(self._conversation_id(pk), request.auth)
        return Response({'conversation': ConversationSerializer(conversation).data})

    @action(detail=True, methods=['get', 'post'])
    def messages(self, request, pk=None):
        """
        GET: history in ascending id order.
        POST: append {body}; answered once the message is stored, whatever
        happens to the broadcast.
        """
        conversation = registry.get_conversation_for(self._conversation_id(pk), request.auth)

        if request.method == 'POST':
            serializer = MessageCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            message = store.send_message(
                conversation.id, request.user, serializer.validated_data['body']
            )
            return Response(
                {'message': MessageSerializer(message).data},
                status=status.HTTP_201_CREATED
            )

        query = MessageListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        messages = store.list_messages(conversation.id, after_id=query.validated_data.get('after_id'))
        return Response({'messages': MessageSerializer(messages, many=True).data})

    def _conversation_id(self, pk):
        try:
            return int(pk)
        except (TypeError, ValueError):
            raise NotFound('conversation not found')


class RelayAuthView(APIView):
    """
    POST /api/v1/chat/relay/auth

    Signs a Pusher private-channel subscription for (socket_id, channel_name).

    Only chat channels are signed. Participant membership is checked only
    when settings.CHAT_RELAY_ENFORCE_MEMBERSHIP is on; otherwise any
    authenticated user is granted and the grant is logged.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RelayAuthSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        socket_id = serializer.validated_data['socket_id']
        channel_name = serializer.validated_data['channel_name']
        enforce = settings.CHAT_RELAY_ENFORCE_MEMBERSHIP

        conversation_id = conversation_id_from_channel(channel_name)
        if conversation_id is None:
            self._deny(request, channel_name, 'not_a_chat_channel', enforce)
            raise Forbidden('channel is not a chat channel')

        if enforce:
            conversation = Conversation.objects.filter(id=conversation_id).first()
            if conversation is None or not conversation.has_participant(request.auth):
                self._deny(request, channel_name, 'not_a_participant', enforce)
                raise Forbidden()

        grant = get_relay().authorize_subscription(socket_id, channel_name)
        metrics.chat_relay_auth_total.labels(result='granted').inc()
        log_relay_subscription(
            channel_name, request.user.id, granted=True, membership_checked=enforce
        )
        return Response(grant)

    def _deny(self, request, channel_name, reason, enforce):
        metrics.chat_relay_auth_total.labels(result='denied').inc()
        log_relay_subscription(
            channel_name, request.user.id, granted=False, reason=reason,
            membership_checked=enforce
        )


class RelayConfigView(APIView):
    """GET /api/v1/chat/relay/config - public key and cluster for subscribers."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(get_relay().client_config())
