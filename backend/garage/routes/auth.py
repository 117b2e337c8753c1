from flask import Blueprint, request
from flask_jwt_extended import create_access_token
from sqlalchemy import select
from garage import get_db
from garage.constants.roles import Role
from garage.decorators.auth import require_auth
from garage.errors import Unauthorized, ValidationError
from garage.models.authz import AppUser
from garage.services.policy import current_principal

auth_bp = Blueprint('auth', __name__)


def user_json(u: AppUser):
    return {
        'id': u.id,
        'username': u.username,
        'display_name': u.display_name,
        'role': u.role,
        'worker_id': u.worker_id,
        'is_active': u.is_active,
    }


def issue_token(u: AppUser) -> str:
    return create_access_token(identity=str(u.id), additional_claims={
        'role': u.role,
        'worker_id': u.worker_id,
        'display_name': u.display_name,
    })


@auth_bp.post('/login')
def login():
    data = request.json or {}
    username = data.get('username')
    password = data.get('password')
    if not username or not password:
        raise ValidationError(description='Username and password required')
    session = get_db()
    user = session.execute(select(AppUser).where(AppUser.username == username)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password) or Role.parse(user.role) is None:
        raise Unauthorized(description='Invalid username or password')
    return {'user': user_json(user), 'access_token': issue_token(user)}


@auth_bp.get('/me')
@require_auth
def me():
    principal = current_principal()
    session = get_db()
    user = session.get(AppUser, principal.user_id)
    if not user or not user.is_active:
        raise Unauthorized(description='User not found or inactive')
    return user_json(user)
