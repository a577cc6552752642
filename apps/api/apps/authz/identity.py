"""
Identity resolution for chat.

Maps a credential to the authenticated user and a tagged identity:

    Identity = PatientIdentity(user_id, profile_id) | DoctorIdentity(user_id, profile_id)

The role+profile pair returned here is the only identity downstream code
trusts; ids supplied in request bodies are never used for authorization.
"""
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from django.utils import timezone

from apps.authz.models import AuthSession, Doctor, Patient, RoleChoices, User
from apps.core.errors import InvalidRole, ProfileNotFound, Unauthenticated


@dataclass(frozen=True)
class PatientIdentity:
    user_id: UUID
    profile_id: UUID
    role = RoleChoices.PATIENT


@dataclass(frozen=True)
class DoctorIdentity:
    user_id: UUID
    profile_id: UUID
    role = RoleChoices.DOCTOR


Identity = Union[PatientIdentity, DoctorIdentity]

CHAT_ROLES = {RoleChoices.PATIENT.value, RoleChoices.DOCTOR.value}

_PROFILE_MODELS = {
    RoleChoices.PATIENT.value: Patient,
    RoleChoices.DOCTOR.value: Doctor,
}


@dataclass(frozen=True)
class ResolvedUser:
    """Authenticated user plus its chat identity (None for admins / missing profile)."""
    user: User
    identity: Optional[Identity]


def opposite_role(role):
    """Patient <-> doctor. Anything else has no counterpart."""
    if role == RoleChoices.PATIENT:
        return RoleChoices.DOCTOR.value
    if role == RoleChoices.DOCTOR:
        return RoleChoices.PATIENT.value
    raise InvalidRole()


def identity_for_user(user) -> Identity:
    """
    Build the tagged identity for a user.

    Raises:
        InvalidRole: role is not patient/doctor, or the role profile is missing
    """
    if user.role == RoleChoices.PATIENT:
        profile = Patient.objects.filter(user_id=user.id).only('id').first()
        if profile is not None:
            return PatientIdentity(user_id=user.id, profile_id=profile.id)
    elif user.role == RoleChoices.DOCTOR:
        profile = Doctor.objects.filter(user_id=user.id).only('id').first()
        if profile is not None:
            return DoctorIdentity(user_id=user.id, profile_id=profile.id)
    raise InvalidRole()


def identity_for_user_id(user_id) -> Identity:
    user = User.objects.filter(id=user_id, is_active=True).first()
    if user is None:
        raise Unauthenticated()
    return identity_for_user(user)


def find_profile_by_user_id(user_id, role) -> UUID:
    """
    Translate a raw user id into the role-specific profile id.

    Raises:
        ProfileNotFound: no profile of that role for the user
    """
    model = _PROFILE_MODELS.get(role)
    if model is None or user_id is None:
        raise ProfileNotFound()
    profile_id = (
        model.objects
        .filter(user_id=user_id, user__role=role)
        .values_list('id', flat=True)
        .first()
    )
    if profile_id is None:
        raise ProfileNotFound()
    return profile_id


def resolve(credential) -> ResolvedUser:
    """
    Resolve an opaque session token.

    Raises:
        Unauthenticated: token missing, unknown, expired, or user inactive
    """
    if not credential:
        raise Unauthenticated()

    session = (
        AuthSession.objects
        .select_related('user')
        .filter(token=credential)
        .first()
    )
    if session is None or session.expires_at <= timezone.now():
        raise Unauthenticated('Session is invalid or has expired')
    if not session.user.is_active:
        raise Unauthenticated('User account is disabled')

    try:
        identity = identity_for_user(session.user)
    except InvalidRole:
        identity = None

    return ResolvedUser(user=session.user, identity=identity)
