"""
Tests for identity resolution and session-token authentication.
"""
from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone
from rest_framework import status

from apps.authz import identity as identity_resolver
from apps.authz.identity import DoctorIdentity, PatientIdentity
from apps.authz.models import AuthSession, RoleChoices, User
from apps.authz.services import create_session
from apps.core.errors import InvalidRole, ProfileNotFound, Unauthenticated


@pytest.mark.django_db
class TestResolve:
    """Test identity.resolve(credential)."""

    def test_patient_token_resolves_to_patient_identity(self, patient):
        session = create_session(patient.user)

        resolved = identity_resolver.resolve(session.token)

        assert resolved.user == patient.user
        assert resolved.identity == PatientIdentity(user_id=patient.user.id, profile_id=patient.id)
        assert resolved.identity.role == RoleChoices.PATIENT

    def test_doctor_token_resolves_to_doctor_identity(self, doctor):
        session = create_session(doctor.user)

        resolved = identity_resolver.resolve(session.token)

        assert isinstance(resolved.identity, DoctorIdentity)
        assert resolved.identity.profile_id == doctor.id

    def test_admin_has_no_chat_identity(self, admin_user):
        session = create_session(admin_user)

        resolved = identity_resolver.resolve(session.token)

        assert resolved.user == admin_user
        assert resolved.identity is None

    @pytest.mark.parametrize('credential', [None, '', 'not-a-real-token'])
    def test_missing_or_unknown_token_is_unauthenticated(self, credential):
        with pytest.raises(Unauthenticated):
            identity_resolver.resolve(credential)

    def test_expired_token_is_unauthenticated(self, patient):
        session = create_session(patient.user)
        AuthSession.objects.filter(id=session.id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )

        with pytest.raises(Unauthenticated):
            identity_resolver.resolve(session.token)

    def test_inactive_user_is_unauthenticated(self, patient):
        session = create_session(patient.user)
        User.objects.filter(id=patient.user.id).update(is_active=False)

        with pytest.raises(Unauthenticated):
            identity_resolver.resolve(session.token)


@pytest.mark.django_db
class TestProfileLookup:
    """Test identity_for_user and find_profile_by_user_id."""

    def test_identity_for_user_without_profile_is_invalid_role(self, patient_user):
        # patient_user has no Patient row
        with pytest.raises(InvalidRole):
            identity_resolver.identity_for_user(patient_user)

    def test_identity_for_admin_is_invalid_role(self, admin_user):
        with pytest.raises(InvalidRole):
            identity_resolver.identity_for_user(admin_user)

    def test_find_profile_returns_profile_id(self, doctor):
        assert identity_resolver.find_profile_by_user_id(doctor.user.id, 'doctor') == doctor.id

    def test_find_profile_with_wrong_role_is_not_found(self, patient):
        with pytest.raises(ProfileNotFound) as exc_info:
            identity_resolver.find_profile_by_user_id(patient.user.id, 'doctor')

        assert exc_info.value.message == 'counterpart profile not found'

    def test_opposite_role(self):
        assert identity_resolver.opposite_role(RoleChoices.PATIENT) == 'doctor'
        assert identity_resolver.opposite_role('doctor') == 'patient'
        with pytest.raises(InvalidRole):
            identity_resolver.opposite_role('admin')


@pytest.mark.django_db
class TestSessionTokenAuthentication:
    """Test the DRF authentication class through GET /api/v1/me/."""

    endpoint = '/api/v1/me/'

    def test_bearer_token_authenticates(self, patient_client, patient):
        response = patient_client.get(self.endpoint)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['id'] == str(patient.user.id)
        assert response.data['role'] == 'patient'
        assert response.data['profile_id'] == str(patient.id)

    def test_cookie_authenticates(self, api_client, doctor):
        api_client.cookies['auth_token'] = create_session(doctor.user).token

        response = api_client.get(self.endpoint)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['profile_id'] == str(doctor.id)

    def test_missing_credential_is_401_with_bearer_challenge(self, api_client):
        response = api_client.get(self.endpoint)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response['WWW-Authenticate'] == 'Bearer'
        assert response.data['error']['code'] == 'UNAUTHENTICATED'

    def test_unknown_token_is_401(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer nope')

        response = api_client.get(self.endpoint)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['code'] == 'UNAUTHENTICATED'

    def test_admin_me_has_no_profile(self, admin_client):
        response = admin_client.get(self.endpoint)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['role'] == 'admin'
        assert response.data['profile_id'] is None


@pytest.mark.django_db
class TestLoginLogout:
    """Test POST /api/auth/login/ and /api/auth/logout/."""

    def test_login_issues_token_and_cookie(self, api_client, patient):
        response = api_client.post('/api/auth/login/', {
            'email': 'patient@test.com',
            'password': 'testpass123',
        })

        assert response.status_code == status.HTTP_200_OK
        token = response.data['token']
        assert AuthSession.objects.filter(token=token, user=patient.user).exists()
        assert response.cookies['auth_token'].value == token

    def test_login_wrong_password_is_401(self, api_client, patient):
        response = api_client.post('/api/auth/login/', {
            'email': 'patient@test.com',
            'password': 'wrong',
        })

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['code'] == 'UNAUTHENTICATED'

    def test_login_missing_fields_is_validation_error(self, api_client):
        response = api_client.post('/api/auth/login/', {'email': 'patient@test.com'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'VALIDATION_ERROR'
        assert 'password' in response.data['error']['fields']

    def test_logout_revokes_session_and_is_idempotent(self, api_client, patient):
        token = create_session(patient.user).token
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        first = api_client.post('/api/auth/logout/')
        second = api_client.post('/api/auth/logout/')

        assert first.status_code == status.HTTP_204_NO_CONTENT
        assert second.status_code == status.HTTP_204_NO_CONTENT
        assert not AuthSession.objects.filter(token=token).exists()
        assert api_client.get('/api/v1/me/').status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestPurgeExpiredSessions:
    """Test the purge_auth_sessions management command."""

    def test_deletes_only_expired_sessions(self, patient, doctor):
        expired = create_session(patient.user)
        AuthSession.objects.filter(id=expired.id).update(
            expires_at=timezone.now() - timedelta(seconds=1)
        )
        live = create_session(doctor.user)
        out = StringIO()

        call_command('purge_auth_sessions', stdout=out)

        assert list(AuthSession.objects.values_list('id', flat=True)) == [live.id]
        assert 'Deleted 1 expired session' in out.getvalue()
