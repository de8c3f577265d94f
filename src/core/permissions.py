"""Role-based permission checks."""
from models.user import UserRole


def can_access_admin_pages(role: UserRole | None) -> bool:
    """Admin area is restricted to admins."""
    return role == UserRole.ADMIN


def can_create_course(role: UserRole | None) -> bool:
    """Only admins author courses."""
    return role == UserRole.ADMIN


def can_update_course(role: UserRole | None) -> bool:
    """Only admins edit courses."""
    return role == UserRole.ADMIN


def can_delete_course(role: UserRole | None) -> bool:
    """Only admins delete courses."""
    return role == UserRole.ADMIN


def can_create_section(role: UserRole | None) -> bool:
    """Only admins add sections to a course."""
    return role == UserRole.ADMIN


def can_update_section(role: UserRole | None) -> bool:
    """Only admins edit course sections."""
    return role == UserRole.ADMIN


def can_delete_section(role: UserRole | None) -> bool:
    """Only admins delete course sections."""
    return role == UserRole.ADMIN
