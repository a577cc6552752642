"""
Appointment model.

Booking itself (create, approve, reschedule) lives outside this service; chat
only reads appointments to anchor conversations.
"""
import uuid
from django.db import models


class AppointmentStatusChoices(models.TextChoices):
    """
    Appointment status:
    - pending -> approved | rejected | cancelled
    - approved -> completed | cancelled
    - completed, rejected, cancelled are terminal states
    """
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class Appointment(models.Model):
    """
    Booked visit between a patient and a doctor.

    Fields:
    - id: UUID PK
    - patient_id: FK -> patient
    - doctor_id: FK -> doctor
    - appointment_date: datetime
    - status: enum
    - reason_for_visit, notes nullable
    - created_at, updated_at

    BUSINESS RULES:
    - A chat conversation may only be opened for an appointment whose
      status is in settings.CHAT_APPOINTMENT_STATUSES
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'authz.Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    doctor = models.ForeignKey(
        'authz.Doctor',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    appointment_date = models.DateTimeField()
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.PENDING
    )
    reason_for_visit = models.TextField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        indexes = [
            models.Index(fields=['patient'], name='idx_appointment_patient'),
            models.Index(fields=['doctor'], name='idx_appointment_doctor'),
            models.Index(fields=['appointment_date'], name='idx_appointment_date'),
            models.Index(fields=['status'], name='idx_appointment_status'),
        ]

    def __str__(self):
        return f"Appointment {self.appointment_date:%Y-%m-%d %H:%M} ({self.status})"
