"""
Chat models: chat_conversation, chat_message
"""
from django.conf import settings
from django.db import models
from django.utils import timezone


class Conversation(models.Model):
    """
    One chat thread per (appointment, patient, doctor).

    Fields:
    - id: serial PK (clients address conversations by this number)
    - appointment_id: FK -> appointment
    - patient_id: FK -> patient
    - doctor_id: FK -> doctor
    - created_at
    - last_activity_at: bumped on every appended message

    BUSINESS RULES:
    - The (appointment, patient, doctor) triple is unique; the database
      constraint is what makes concurrent creation converge on one row
    - Conversations are never deleted by chat code (PROTECT everywhere)
    """
    id = models.BigAutoField(primary_key=True)
    appointment = models.ForeignKey(
        'appointments.Appointment',
        on_delete=models.PROTECT,
        related_name='conversations'
    )
    patient = models.ForeignKey(
        'authz.Patient',
        on_delete=models.PROTECT,
        related_name='conversations'
    )
    doctor = models.ForeignKey(
        'authz.Doctor',
        on_delete=models.PROTECT,
        related_name='conversations'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    last_activity_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'chat_conversation'
        verbose_name = 'Conversation'
        verbose_name_plural = 'Conversations'
        constraints = [
            models.UniqueConstraint(
                fields=['appointment', 'patient', 'doctor'],
                name='uniq_conversation_appointment_pair'
            ),
        ]
        indexes = [
            models.Index(fields=['patient', '-last_activity_at'], name='idx_conv_patient_activity'),
            models.Index(fields=['doctor', '-last_activity_at'], name='idx_conv_doctor_activity'),
        ]

    def __str__(self):
        return f"Conversation {self.id} (appointment {self.appointment_id})"

    def has_participant(self, identity):
        """True if the identity is this conversation's patient or doctor."""
        if identity is None:
            return False
        if identity.role == 'patient':
            return self.patient_id == identity.profile_id
        if identity.role == 'doctor':
            return self.doctor_id == identity.profile_id
        return False


class Message(models.Model):
    """
    Immutable chat message.

    BUSINESS RULES:
    - Ordered by id; ids are assigned under the conversation row lock so
      id order is commit order within a conversation
    - Body is stored as sent; it must be non-empty after trimming
    - No update or delete path exists
    """
    id = models.BigAutoField(primary_key=True)
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.PROTECT,
        related_name='messages'
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='chat_messages'
    )
    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'chat_message'
        verbose_name = 'Message'
        verbose_name_plural = 'Messages'
        ordering = ['id']
        indexes = [
            models.Index(fields=['conversation', 'id'], name='idx_message_conversation'),
        ]

    def __str__(self):
        return f"Message {self.id} in conversation {self.conversation_id}"
