# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for password hashing and
validates password strength.

MULTI-TENANT: A user reaches data only through a Membership. Registration
provisions a fresh organization with the new user as its owner; staff created
by an owner/manager join the creator's organization.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char
- Unknown login, wrong password and "no active organization" all surface as
  the same InvalidCredentialsError; the real reason goes to security_events
- Plaintext passwords are never stored or logged
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, Organization, Membership
from ..roles import Role, USER_ADMIN_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError, fits_db_int
from . import session_service
from .permission_service import ensure_role, log_security_event
from .tenant_service import MembershipContext, resolve_membership, list_active_memberships, TenantAccessError


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class DuplicateLoginError(ConflictError):
    """Raised when the requested login name is already taken."""


class InvalidCredentialsError(Exception):
    """Unknown login, wrong password, or no active organization."""


@dataclass
class LoginResult:
    user: User
    token: session_service.IssuedToken
    context: MembershipContext | None
    organization: Organization | None
    # Populated only when the user must pick an organization first
    organization_choices: list[int]


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash never matches.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


_dummy_hash: str | None = None


def _burn_password_check(password: str) -> None:
    # Unknown logins still pay for one bcrypt comparison so response time
    # does not reveal whether the login exists.
    global _dummy_hash
    if _dummy_hash is None:
        rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
        _dummy_hash = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=rounds)).decode("utf-8")
    verify_password(password or "", _dummy_hash)


def _clean_identity(name, username) -> tuple[str, str]:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    name = name.strip()
    username = username.strip()
    if len(name) > 255:
        raise ValidationError("name exceeds max length 255")
    if len(username) > 64:
        raise ValidationError("username exceeds max length 64")
    return name, username


def _ensure_login_available(username: str) -> None:
    if db.session.query(User.id).filter(User.username == username).first():
        raise DuplicateLoginError("Username already exists")


def register(name: str, username: str, password: str) -> User:
    """
    Self-registration.

    Creates the user, a new organization named after them, and an active
    owner membership, all in one commit. The new organization becomes the
    user's current tenant.

    Raises:
        ValidationError / PasswordValidationError: bad input
        DuplicateLoginError: username taken (also on a lost insert race)
    """
    name, username = _clean_identity(name, username)
    password_hash = hash_password(password)
    _ensure_login_available(username)

    try:
        user = User(name=name, username=username, password_hash=password_hash)
        org = Organization(name=f"{name}'s Store")
        db.session.add_all([user, org])
        db.session.flush()

        db.session.add(Membership(org_id=org.id, user_id=user.id, role=Role.OWNER.value, is_active=True))
        user.current_org_id = org.id
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateLoginError("Username already exists")

    current_app.logger.info("Registered user %s with organization %s", user.id, org.id)
    return user


def login(username: str, password: str, ip_address: str | None = None, user_agent: str | None = None) -> LoginResult:
    """
    Verify credentials and issue a session token.

    Raises InvalidCredentialsError (same message) when the login is unknown,
    the password does not match, or the user has no active membership.
    When several active memberships exist without a stored selection, login
    still succeeds but context is None and organization_choices is filled.
    """
    user = db.session.query(User).filter(User.username == username).first()

    if user is None:
        _burn_password_check(password)
        _record_failed_login(None, "Unknown username", ip_address, user_agent)
        raise InvalidCredentialsError("Invalid credentials")

    if not verify_password(password or "", user.password_hash):
        _record_failed_login(user.id, "Password mismatch", ip_address, user_agent)
        raise InvalidCredentialsError("Invalid credentials")

    memberships = list_active_memberships(user.id)
    if not memberships:
        _record_failed_login(user.id, "No active organization", ip_address, user_agent)
        raise InvalidCredentialsError("Invalid credentials")

    context: MembershipContext | None
    choices: list[int] = []
    try:
        context = resolve_membership(user.id)
    except TenantAccessError:
        context = None
        choices = [m.org_id for m in memberships]

    token = session_service.issue_token(user.id)

    log_security_event(
        user_id=user.id,
        event_type="LOGIN_SUCCEEDED",
        success=True,
        org_id=context.org_id if context else None,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return LoginResult(
        user=user,
        token=token,
        context=context,
        organization=db.session.get(Organization, context.org_id) if context else None,
        organization_choices=choices,
    )


def _record_failed_login(user_id, reason, ip_address, user_agent) -> None:
    log_security_event(
        user_id=user_id,
        event_type="LOGIN_FAILED",
        success=False,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def create_member(actor: MembershipContext, name: str, username: str, password: str, role) -> User:
    """
    Create a staff user inside the actor's organization.

    Requires owner/manager. Role must be one of the closed Role values.
    """
    ensure_role(actor, USER_ADMIN_ROLES)

    try:
        role = Role.parse(role)
    except ValueError as e:
        raise ValidationError(str(e))

    name, username = _clean_identity(name, username)
    password_hash = hash_password(password)
    _ensure_login_available(username)

    try:
        user = User(name=name, username=username, password_hash=password_hash, current_org_id=actor.org_id)
        db.session.add(user)
        db.session.flush()
        db.session.add(Membership(org_id=actor.org_id, user_id=user.id, role=role.value, is_active=True))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateLoginError("Username already exists")

    current_app.logger.info("User %s created member %s (%s) in org %s", actor.user_id, user.id, role.value, actor.org_id)
    return user


def list_members(actor: MembershipContext) -> list[dict]:
    """Users of the actor's organization with role and active flag, by name."""
    ensure_role(actor, USER_ADMIN_ROLES)

    rows = (
        db.session.query(User, Membership)
        .join(Membership, Membership.user_id == User.id)
        .filter(Membership.org_id == actor.org_id)
        .order_by(User.name.asc(), User.id.asc())
        .all()
    )

    result = []
    for user, membership in rows:
        item = user.to_dict()
        item["role"] = membership.role
        item["is_active"] = membership.is_active
        result.append(item)
    return result


def _get_membership_in_org(org_id: int, user_id: int) -> Membership:
    if not fits_db_int(user_id):
        raise NotFoundError("User not found")
    membership = db.session.query(Membership).filter_by(org_id=org_id, user_id=user_id).first()
    if membership is None:
        raise NotFoundError("User not found")
    return membership


def update_member(actor: MembershipContext, target_user_id: int, role=None, is_active=None) -> Membership:
    """
    Change a member's role and/or active flag in the actor's organization.

    Takes effect on the target's next request (roles are never cached in tokens).
    """
    ensure_role(actor, USER_ADMIN_ROLES)
    membership = _get_membership_in_org(actor.org_id, target_user_id)

    if role is not None:
        try:
            membership.role = Role.parse(role).value
        except ValueError as e:
            raise ValidationError(str(e))

    if is_active is not None:
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")
        membership.is_active = is_active

    db.session.commit()
    return membership


def reset_password(actor: MembershipContext, target_user_id: int, new_password: str) -> None:
    """
    Owner/manager sets a new password for a member of their organization.

    Raises:
        PermissionDeniedError: actor is a cashier
        NotFoundError: target has no membership in the actor's organization
        PasswordValidationError: weak password
    """
    ensure_role(actor, USER_ADMIN_ROLES)
    _get_membership_in_org(actor.org_id, target_user_id)

    password_hash = hash_password(new_password)
    user = db.session.get(User, target_user_id)
    user.password_hash = password_hash
    db.session.commit()

    current_app.logger.info("User %s reset password for user %s", actor.user_id, target_user_id)
