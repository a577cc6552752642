"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Users with patient / doctor profiles and an approved appointment
- API clients authenticated with real session tokens
- The in-memory broadcast relay
"""
import json
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.appointments.models import Appointment, AppointmentStatusChoices
from apps.authz.models import Doctor, Patient, RoleChoices, User
from apps.authz.services import create_session
from apps.chat.client.transport import Subscription
from apps.chat.relay import get_relay, reset_relay


def _client_for(user):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {create_session(user).token}')
    return client


# ============================================================================
# Relay
# ============================================================================

@pytest.fixture(autouse=True)
def fresh_relay():
    """Each test starts with an empty InMemoryRelay."""
    reset_relay()
    yield
    reset_relay()


@pytest.fixture
def relay():
    """The InMemoryRelay used by the code under test."""
    return get_relay()


class LoopbackSubscriber:
    """RelaySubscriber that receives whatever the server-side relay publishes."""

    def __init__(self):
        self.bindings = []

    def subscribe(self, channel_name, event_name, callback, on_ready=None):
        binding = (channel_name, event_name, callback)
        self.bindings.append(binding)
        if on_ready is not None:
            on_ready()
        return Subscription(channel_name, lambda: self.bindings.remove(binding))

    def deliver(self, channel_name, event_name, payload):
        for bound_channel, bound_event, callback in list(self.bindings):
            if (bound_channel, bound_event) == (channel_name, event_name):
                # Payloads cross the relay as JSON
                callback(json.loads(json.dumps(payload)))


@pytest.fixture
def loopback_subscriber(relay, monkeypatch):
    """Subscriber wired to the InMemoryRelay: publishes are delivered live."""
    subscriber = LoopbackSubscriber()
    record = relay.publish

    def publish_and_deliver(channel_name, event_name, payload):
        record(channel_name, event_name, payload)
        subscriber.deliver(channel_name, event_name, payload)

    monkeypatch.setattr(relay, 'publish', publish_and_deliver)
    return subscriber


# ============================================================================
# Users and profiles
# ============================================================================

@pytest.fixture
def patient_user(db):
    return User.objects.create_user(
        email='patient@test.com',
        password='testpass123',
        first_name='Pat',
        last_name='Jones',
        role=RoleChoices.PATIENT,
    )


@pytest.fixture
def patient(patient_user):
    return Patient.objects.create(user=patient_user)


@pytest.fixture
def doctor_user(db):
    return User.objects.create_user(
        email='doctor@test.com',
        password='testpass123',
        first_name='Dana',
        last_name='Smith',
        role=RoleChoices.DOCTOR,
    )


@pytest.fixture
def doctor(doctor_user):
    return Doctor.objects.create(
        user=doctor_user,
        specialization='Cardiology',
        is_approved=True,
    )


@pytest.fixture
def other_patient(db):
    """A patient unrelated to the fixtures' conversations."""
    user = User.objects.create_user(
        email='other.patient@test.com',
        password='testpass123',
        first_name='Olly',
        last_name='Other',
        role=RoleChoices.PATIENT,
    )
    return Patient.objects.create(user=user)


@pytest.fixture
def other_doctor(db):
    user = User.objects.create_user(
        email='other.doctor@test.com',
        password='testpass123',
        first_name='Owen',
        last_name='Other',
        role=RoleChoices.DOCTOR,
    )
    return Doctor.objects.create(user=user, specialization='Dermatology', is_approved=True)


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser(email='admin@test.com', password='testpass123')


# ============================================================================
# Appointments
# ============================================================================

@pytest.fixture
def make_appointment(db):
    """Factory: make_appointment(patient, doctor, status='approved')."""
    def _make(patient, doctor, status=AppointmentStatusChoices.APPROVED):
        return Appointment.objects.create(
            patient=patient,
            doctor=doctor,
            appointment_date=timezone.now() + timedelta(days=1),
            status=status,
        )
    return _make


@pytest.fixture
def appointment(make_appointment, patient, doctor):
    """Approved appointment between `patient` and `doctor`."""
    return make_appointment(patient, doctor)


@pytest.fixture
def conversation(appointment, patient, doctor):
    from apps.chat.models import Conversation
    return Conversation.objects.create(appointment=appointment, patient=patient, doctor=doctor)


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def patient_client(patient):
    """API client authenticated as `patient`."""
    return _client_for(patient.user)


@pytest.fixture
def doctor_client(doctor):
    """API client authenticated as `doctor`."""
    return _client_for(doctor.user)


@pytest.fixture
def other_patient_client(other_patient):
    return _client_for(other_patient.user)


@pytest.fixture
def admin_client(admin_user):
    """Admin: authenticated, but has no chat identity."""
    return _client_for(admin_user)
