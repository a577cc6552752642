"""
Conversation registry.

Creates and looks up conversations keyed by (appointment, patient, doctor).
At most one conversation exists per triple; the unique constraint on
chat_conversation is the enforcement point, so concurrent ensure calls from
any number of workers converge on the same row.
"""
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import OuterRef, Subquery

from apps.appointments.models import Appointment
from apps.authz.identity import (
    find_profile_by_user_id,
    identity_for_user_id,
    opposite_role,
)
from apps.authz.models import RoleChoices
from apps.chat.models import Conversation, Message
from apps.core.errors import DomainValidationError, Forbidden, NotFound
from apps.core.observability import metrics
from apps.core.observability.events import (
    log_conversation_ensured,
    log_conversation_insert_race,
)
from apps.core.observability.tracing import trace_span

logger = logging.getLogger(__name__)


def _split_pair(identity, counterpart_profile_id):
    """Return (patient_id, doctor_id) for the requester and counterpart."""
    if identity.role == RoleChoices.PATIENT:
        return identity.profile_id, counterpart_profile_id
    return counterpart_profile_id, identity.profile_id


def insert_or_get(appointment_id, patient_id, doctor_id):
    """
    Insert a conversation; on a uniqueness violation return the existing row.

    Returns:
        (Conversation, created)
    """
    try:
        with transaction.atomic():
            conversation = Conversation.objects.create(
                appointment_id=appointment_id,
                patient_id=patient_id,
                doctor_id=doctor_id,
            )
        return conversation, True
    except IntegrityError:
        existing = Conversation.objects.filter(
            appointment_id=appointment_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
        ).first()
        if existing is None:
            # Not a duplicate (e.g. dangling FK); let the caller see it
            raise
        metrics.chat_conversations_ensured_total.labels(result='race').inc()
        log_conversation_insert_race(appointment_id, patient_id, doctor_id, existing.id)
        return existing, False


def _check_appointment(appointment_id, patient_id, doctor_id):
    appointment = (
        Appointment.objects
        .filter(id=appointment_id, patient_id=patient_id, doctor_id=doctor_id)
        .only('id', 'status')
        .first()
    )
    if appointment is None:
        raise NotFound('appointment not found')
    if appointment.status not in settings.CHAT_APPOINTMENT_STATUSES:
        raise DomainValidationError(
            f'chat is not available for {appointment.status} appointments'
        )


def ensure_conversation(appointment_id, requester_user_id, counterpart_user_id):
    """
    Return the conversation for (appointment, requester, counterpart), creating it if needed.

    Idempotent: repeated or concurrent calls for the same pairing, from
    either side, resolve to the same conversation.

    Raises:
        DomainValidationError: appointment_id / counterpart missing, or the
            appointment status does not allow chat
        InvalidRole: requester is not a patient or doctor with a profile
        ProfileNotFound: counterpart has no profile of the opposite role
        NotFound: appointment missing or not between these two participants

    Returns:
        (Conversation, created)
    """
    if not appointment_id:
        raise DomainValidationError('appointment_id is required')
    if not counterpart_user_id:
        raise DomainValidationError('counterpart_user_id is required')

    identity = identity_for_user_id(requester_user_id)
    counterpart_profile_id = find_profile_by_user_id(
        counterpart_user_id, opposite_role(identity.role)
    )
    patient_id, doctor_id = _split_pair(identity, counterpart_profile_id)

    with trace_span('chat.ensure_conversation', attributes={'appointment_id': str(appointment_id)}):
        existing = Conversation.objects.filter(
            appointment_id=appointment_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
        ).first()
        if existing is not None:
            conversation, created = existing, False
        else:
            _check_appointment(appointment_id, patient_id, doctor_id)
            conversation, created = insert_or_get(appointment_id, patient_id, doctor_id)

    if created or existing is not None:
        metrics.chat_conversations_ensured_total.labels(
            result='created' if created else 'existing'
        ).inc()
    log_conversation_ensured(conversation, created, identity.role)
    return conversation, created


def get_conversation_for(conversation_id, identity):
    """
    Fetch a conversation the identity takes part in.

    Raises:
        NotFound: no such conversation
        Forbidden: identity is not its patient or doctor
    """
    conversation = (
        Conversation.objects
        .select_related('patient__user', 'doctor__user')
        .filter(id=conversation_id)
        .first()
    )
    if conversation is None:
        raise NotFound('conversation not found')
    if not conversation.has_participant(identity):
        logger.warning(
            'Non-participant conversation access',
            extra={
                'event': 'chat_access_denied',
                'conversation_id': conversation_id,
                'role': getattr(identity, 'role', None),
            }
        )
        raise Forbidden()
    return conversation


def _counterpart(conversation, identity):
    if identity.role == RoleChoices.PATIENT:
        doctor = conversation.doctor
        return doctor.user, f"Dr. {doctor.user.display_name}", doctor.specialization
    patient = conversation.patient
    return patient.user, patient.user.display_name, None


def list_conversations(identity):
    """
    Conversations of the identity, most recently active first.

    Each row carries counterpart_user_id, counterpart_name,
    counterpart_specialization and last_message (None when empty).
    """
    last_body = (
        Message.objects
        .filter(conversation_id=OuterRef('pk'))
        .order_by('-id')
        .values('body')[:1]
    )
    queryset = (
        Conversation.objects
        .select_related('patient__user', 'doctor__user')
        .annotate(last_message=Subquery(last_body))
        .order_by('-last_activity_at', '-id')
    )
    if identity.role == RoleChoices.PATIENT:
        queryset = queryset.filter(patient_id=identity.profile_id)
    else:
        queryset = queryset.filter(doctor_id=identity.profile_id)

    conversations = list(queryset)
    for conversation in conversations:
        user, name, specialization = _counterpart(conversation, identity)
        conversation.counterpart_user_id = user.id
        conversation.counterpart_name = name
        conversation.counterpart_specialization = specialization
    return conversations
