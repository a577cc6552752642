"""
Django management command to seed a patient, a doctor and an approved
appointment so the chat flow can be tried end to end.

Usage:
    python manage.py seed_chat_demo [--password secret]

FOR DEVELOPMENT ONLY
"""
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from apps.appointments.models import Appointment, AppointmentStatusChoices
from apps.authz.models import Doctor, Patient, RoleChoices, User
from apps.authz.services import create_session


class Command(BaseCommand):
    help = 'Create demo patient/doctor accounts with an approved appointment and print session tokens'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='chat-demo-1234')

    def _user(self, email, password, role, first_name, last_name):
        user, created = User.objects.get_or_create(
            email=email,
            defaults={'role': role, 'first_name': first_name, 'last_name': last_name},
        )
        user.set_password(password)
        user.save()
        verb = 'Created' if created else 'Updated'
        self.stdout.write(self.style.SUCCESS(f'✓ {verb} {role} "{email}"'))
        return user

    @transaction.atomic
    def handle(self, *args, **options):
        password = options['password']

        patient_user = self._user('patient@example.com', password, RoleChoices.PATIENT, 'Pat', 'Jones')
        doctor_user = self._user('doctor@example.com', password, RoleChoices.DOCTOR, 'Dana', 'Smith')

        patient, _ = Patient.objects.get_or_create(user=patient_user)
        doctor, _ = Doctor.objects.get_or_create(
            user=doctor_user,
            defaults={
                'specialization': 'General Practice',
                'is_approved': True,
                'approval_date': timezone.now(),
            },
        )

        appointment = Appointment.objects.filter(
            patient=patient, doctor=doctor, status=AppointmentStatusChoices.APPROVED
        ).first()
        if appointment is None:
            appointment = Appointment.objects.create(
                patient=patient,
                doctor=doctor,
                appointment_date=timezone.now() + timedelta(days=1),
                status=AppointmentStatusChoices.APPROVED,
            )
            self.stdout.write(self.style.SUCCESS(f'✓ Created appointment {appointment.id}'))

        patient_session = create_session(patient_user)
        doctor_session = create_session(doctor_user)

        self.stdout.write('')
        self.stdout.write('=' * 70)
        self.stdout.write(self.style.SUCCESS('✓ CHAT DEMO READY'))
        self.stdout.write('=' * 70)
        self.stdout.write(f'  Appointment:     {appointment.id}')
        self.stdout.write(f'  Patient user:    {patient_user.id}')
        self.stdout.write(f'  Patient token:   {patient_session.token}')
        self.stdout.write(f'  Doctor user:     {doctor_user.id}')
        self.stdout.write(f'  Doctor token:    {doctor_session.token}')
        self.stdout.write('=' * 70)
