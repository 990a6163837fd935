"""
Admin permission catalogue and the rules for who may manage whom.
"""
from typing import Dict, Iterable, List, Optional

PERMISSIONS = [
    {"id": "slots", "name": "Parking Slots", "description": "Manage parking slots, add/edit/delete slots", "category": "core"},
    {"id": "bookings", "name": "Bookings", "description": "View and manage user bookings", "category": "core"},
    {"id": "users", "name": "User Management", "description": "Manage regular users, view profiles, handle support", "category": "management"},
    {"id": "admins", "name": "Admin Management", "description": "Manage admin accounts, permissions, and roles", "category": "management"},
    {"id": "analytics", "name": "Analytics", "description": "View dashboard analytics and insights", "category": "analytics"},
    {"id": "reports", "name": "Reports", "description": "Generate and export detailed reports", "category": "analytics"},
    {"id": "settings", "name": "System Settings", "description": "Modify system configuration and preferences", "category": "system"},
    {"id": "billing", "name": "Billing", "description": "Manage pricing, payments, and financial data", "category": "system"},
]

ALL = "all"

ADMIN_LEVELS = {
    "manager": {
        "name": "Manager",
        "description": "Limited administrative access",
        "max_permissions": ["slots", "bookings", "users", "analytics", "reports"],
    },
    "super": {
        "name": "Super Admin",
        "description": "Full system access",
        "max_permissions": ALL,
    },
}


def has_permission(user_permissions: Iterable[str], required: str) -> bool:
    granted = set(user_permissions or [])
    return required in granted or ALL in granted


def has_any_permission(user_permissions: Iterable[str], required: Iterable[str]) -> bool:
    user_permissions = list(user_permissions or [])
    return any(has_permission(user_permissions, p) for p in required)


def has_all_permissions(user_permissions: Iterable[str], required: Iterable[str]) -> bool:
    user_permissions = list(user_permissions or [])
    return all(has_permission(user_permissions, p) for p in required)


def get_available_permissions(admin_level: str) -> List[str]:
    allowed = ADMIN_LEVELS[admin_level]["max_permissions"]
    if allowed == ALL:
        return [p["id"] for p in PERMISSIONS]
    return list(allowed)


def validate_permissions(admin_level: str, permissions: Iterable[str]) -> dict:
    available = get_available_permissions(admin_level)
    if ADMIN_LEVELS[admin_level]["max_permissions"] == ALL:
        available.append(ALL)
    invalid = [p for p in permissions if p not in available]
    return {"valid": not invalid, "invalid_permissions": invalid}


def get_permission_info(permission_id: str) -> Optional[dict]:
    return next((p for p in PERMISSIONS if p["id"] == permission_id), None)


def get_permissions_by_category() -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {}
    for permission in PERMISSIONS:
        grouped.setdefault(permission["category"], []).append(permission)
    return grouped


def can_manage_admin(current_level: str, current_permissions: Iterable[str], target_level: str) -> bool:
    current_permissions = list(current_permissions or [])
    if current_level == "super" and has_permission(current_permissions, "admins"):
        return True
    # managers never manage super admins
    if current_level == "manager" and target_level == "manager":
        return has_permission(current_permissions, "admins")
    return False


def can_assign_permissions(current_level: str, current_permissions: Iterable[str], to_assign: Iterable[str]) -> bool:
    current_permissions = list(current_permissions or [])
    if not has_permission(current_permissions, "admins"):
        return False
    if current_level == "super":
        return True
    available = get_available_permissions(current_level)
    return all(p in available and has_permission(current_permissions, p) for p in to_assign)
