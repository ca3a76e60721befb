# Overview: Role-based permission checks and security event logging.

"""
Permission checking and security event logging.

Permissions are resolved from the user's role through DEFAULT_ROLE_PERMISSIONS.
Only denials are written to security_events; grants are not logged.
"""

from ..extensions import db
from ..models import User, SecurityEvent
from ..permissions import get_role_permissions
from groupbuy.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission or does not own the resource."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_DENIED
    - LOGIN_FAILED
    - ROLE_CHANGED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Permission codes for a user (empty for unknown or inactive users)."""
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(user.id, "MANAGE_PRODUCTS", resource="/api/products")
    """
    if not user_has_permission(user_id, permission_code):
        log_security_event(
            user_id=user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Missing permission: {permission_code}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}")


def deny_ownership(user_id: int | None, resource: str, reason: str) -> PermissionDeniedError:
    """
    Record an ownership denial (host touching another host's batch, etc.)
    and return the error for the caller to raise.
    """
    log_security_event(
        user_id=user_id,
        event_type="OWNERSHIP_DENIED",
        success=False,
        resource=resource,
        reason=reason,
    )
    return PermissionDeniedError(reason)
