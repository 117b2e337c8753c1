from functools import wraps
from flask_jwt_extended import verify_jwt_in_request
from garage.constants.roles import Role
from garage.services.policy import current_principal, require


def require_roles(*roles: Role):
    """Verify the bearer token; when roles are given, the principal must hold one of them."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            principal = current_principal()
            if roles:
                require(principal.role in roles, 'Role not permitted')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_auth(fn):
    return require_roles()(fn)
