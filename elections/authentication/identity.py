# elections/authentication/identity.py

# Accounts, credentials and the single admin / single superadmin roles

import logging

from sqlalchemy.exc import IntegrityError

from elections import db
from elections.authentication.rbac import UserRole
from elections.database.models import User
from elections.encryption.password_hashing import PasswordHashingService
from elections.errors import (
    AuthError, DuplicateError, NotFoundError, StateConflictError, ValidationError,
)

logger = logging.getLogger(__name__)

password_service = PasswordHashingService()


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def register_user(full_name, email, srn, password, role=UserRole.VOTER.value):
    """Create an account; the password is hashed here, before the insert."""
    if User.query.filter_by(srn=srn).first() is not None:
        raise DuplicateError("User already exists")
    if User.query.filter_by(email=email).first() is not None:
        raise DuplicateError("Email is already registered")

    user = User(
        full_name=full_name,
        email=email,
        srn=srn,
        password_hash=password_service.hash_password(password),
        role=role,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration of the same srn/email
        db.session.rollback()
        raise DuplicateError("User already exists")
    logger.info("Registered user %s (%s)", user.id, user.role)
    return user


def authenticate(email, password):
    user = User.query.filter_by(email=email).first()
    if user is None or not password_service.verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    if password_service.needs_rehash(user.password_hash):
        user.password_hash = password_service.hash_password(password)
        db.session.commit()
    return user


def reset_password(user_id, current_password, new_password):
    user = db.session.get(User, user_id)
    if user is None or not password_service.verify_password(current_password, user.password_hash):
        raise AuthError("Invalid credentials")
    if not new_password:
        raise ValidationError("newPassword is required")
    user.password_hash = password_service.hash_password(new_password)
    db.session.commit()
    return user


def list_users():
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()


def current_holder(role):
    return User.query.filter_by(role=role).first()


def _reassign_role(target, role, demote_to=UserRole.VOTER.value):
    """Demote whoever holds `role` and promote `target`, in one transaction.

    The partial unique index on privileged roles rejects a second holder, so
    a concurrent reassignment either commits whole or fails here.
    """
    try:
        User.query.filter(User.role == role, User.id != target.id).update(
            {User.role: demote_to}, synchronize_session=False,
        )
        db.session.flush()
        target.role = role
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StateConflictError(f"Concurrent {role} reassignment, please retry")
    db.session.refresh(target)
    return target


def assign_admin(user_id):
    """Make `user_id` the single admin. Returns (user, changed)."""
    user = get_user(user_id)
    if user.role == UserRole.ADMIN.value:
        return user, False
    if user.role == UserRole.SUPERADMIN.value:
        raise StateConflictError("The superadmin cannot also be the admin")
    _reassign_role(user, UserRole.ADMIN.value)
    logger.info("User %s is now admin", user.id)
    return user, True


def transfer_superadmin(user_id):
    """Hand ownership to `user_id`; the previous superadmin becomes a voter."""
    user = get_user(user_id)
    if user.role == UserRole.SUPERADMIN.value:
        return user, False
    if user.role == UserRole.ADMIN.value:
        raise ValidationError(
            "Cannot transfer superadmin to the current admin. "
            "Please assign a different admin or change this user's role first."
        )
    _reassign_role(user, UserRole.SUPERADMIN.value)
    logger.info("User %s is now superadmin", user.id)
    return user, True


def bootstrap_superadmin(full_name, email, srn, password):
    if current_holder(UserRole.SUPERADMIN.value) is not None:
        raise DuplicateError("A superadmin already exists")
    return register_user(full_name, email, srn, password, role=UserRole.SUPERADMIN.value)
