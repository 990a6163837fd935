import logging
import re
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import check_auth, hash_password, public_user
from database import USERS, create_document, get_db, is_valid_id, pagination, to_object_id, utcnow
from permissions import can_assign_permissions, can_manage_admin, validate_permissions
from schemas import User, UserBulkUpdate, UserDelete, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

VALID_ROLES = ("user", "admin", "attendant")
SORT_FIELDS = ("created_at", "updated_at", "last_login", "name", "email", "role", "status")
MIN_PASSWORD_LENGTH = 6


def is_active_super(user: dict) -> bool:
    return (
        user.get("role") == "admin"
        and user.get("admin_level") == "super"
        and user.get("status") == "active"
    )


def other_active_super_admins(db: Database, excluded_ids: list) -> int:
    return db[USERS].count_documents({
        "role": "admin",
        "admin_level": "super",
        "status": "active",
        "_id": {"$nin": excluded_ids},
    })


def authorize_admin_changes(caller: Optional[dict], targets: List[dict], fields: dict) -> None:
    """Admin level and permission edits made by a signed-in caller must stay within what they may grant."""
    if caller is None or not ({"admin_level", "permissions"} & fields.keys()):
        return
    level = caller.get("admin_level") or "manager"
    granted = caller.get("permissions") or []

    for current in targets:
        for target_level in {current.get("admin_level"), fields.get("admin_level")} - {None}:
            if not can_manage_admin(level, granted, target_level):
                raise HTTPException(status_code=403, detail="Not allowed to manage this admin")
    if fields.get("permissions") and not can_assign_permissions(level, granted, fields["permissions"]):
        raise HTTPException(status_code=403, detail="Not allowed to assign these permissions")


def check_changes(db: Database, targets: List[dict], fields: dict) -> None:
    """Validate ``fields`` as applied to every target; lower-cases ``email`` in place."""
    role = fields.get("role")
    if role and role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role specified")

    target_ids = [t["_id"] for t in targets]
    if fields.get("email"):
        fields["email"] = fields["email"].lower()
        if len(targets) > 1:
            raise HTTPException(status_code=400, detail="Email cannot be set on several users")
        if db[USERS].find_one({"email": fields["email"], "_id": {"$nin": target_ids}}):
            raise HTTPException(status_code=400, detail="Email already exists")

    removed_supers = 0
    for current in targets:
        result = {**current, **fields}
        if result.get("role") == "user" and (fields.get("vehicle_number") == "" or fields.get("vehicle_type") == ""):
            raise HTTPException(status_code=400, detail="Vehicle number and type are required for users")

        if result.get("role") == "admin" and ({"admin_level", "permissions"} & fields.keys()):
            level = result.get("admin_level") or "manager"
            check = validate_permissions(level, result.get("permissions") or [])
            if not check["valid"]:
                invalid = ", ".join(check["invalid_permissions"])
                raise HTTPException(status_code=400, detail=f"Permissions not allowed for {level}: {invalid}")

        # demotion and deactivation both take a super admin out of the pool
        if is_active_super(current) and not is_active_super(result):
            removed_supers += 1

    if removed_supers and other_active_super_admins(db, target_ids) == 0:
        if len(targets) == 1:
            raise HTTPException(status_code=400, detail="Cannot demote or deactivate the last active super admin")
        raise HTTPException(status_code=400, detail="Cannot demote or deactivate all super admins")


@router.post("", status_code=201)
def create_user(user: User, db: Database = Depends(get_db)):
    if user.role == "user" and (not user.vehicle_number or not user.vehicle_type):
        raise HTTPException(status_code=400, detail="Vehicle number and type are required for users")

    email = user.email.lower()
    if db[USERS].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already exists")

    data = user.model_dump()
    data.update({"email": email, "password": hash_password(user.password), "last_login": None})

    if user.role == "admin":
        level = user.admin_level or "manager"
        check = validate_permissions(level, user.permissions)
        if not check["valid"]:
            invalid = ", ".join(check["invalid_permissions"])
            raise HTTPException(status_code=400, detail=f"Permissions not allowed for {level}: {invalid}")
        data["admin_level"] = level
        data["is_verified"] = True
    else:
        data["admin_level"] = None

    try:
        user_id = create_document(db, USERS, data)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already exists")

    logger.info("Created %s account %s", user.role, user_id)
    return {"success": True, "data": public_user(db[USERS].find_one({"_id": to_object_id(user_id)}))}


def user_stats(db: Database) -> dict:
    users = db[USERS]
    now = utcnow()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    recently_active = (
        users.find({"last_login": {"$gte": now - timedelta(days=7)}, "status": "active"})
        .limit(10)
    )
    return {
        "total_users": users.count_documents({}),
        "active_users": users.count_documents({"status": "active"}),
        "inactive_users": users.count_documents({"status": "inactive"}),
        "new_users_this_month": users.count_documents({"created_at": {"$gte": start_of_month}}),
        "users_by_role": {role: users.count_documents({"role": role}) for role in VALID_ROLES},
        "recently_active": [
            {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email"), "last_login": u.get("last_login")}
            for u in recently_active
        ],
    }


@router.get("")
def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    include_stats: bool = False,
    db: Database = Depends(get_db),
):
    if sort_by not in SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Cannot sort by {sort_by}")

    query = {}
    if role:
        query["role"] = role
    if status:
        query["status"] = status
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"name": pattern},
            {"email": pattern},
            {"vehicle_number": pattern},
            {"phone": pattern},
        ]

    users = (
        db[USERS]
        .find(query)
        .sort(sort_by, -1 if sort_order == "desc" else 1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    total_count = db[USERS].count_documents(query)

    response = {
        "success": True,
        "data": [public_user(u) for u in users],
        "pagination": pagination(page, limit, total_count),
    }
    if include_stats:
        response["stats"] = user_stats(db)
    return response


@router.patch("/{user_id}")
def update_user(user_id: str, req: UserUpdate, request: Request, db: Database = Depends(get_db)):
    if not is_valid_id(user_id):
        raise HTTPException(status_code=400, detail="Invalid user ID format")
    oid = to_object_id(user_id)

    current = db[USERS].find_one({"_id": oid})
    if not current:
        raise HTTPException(status_code=404, detail="User not found")

    fields = req.model_dump(exclude_unset=True)
    password = fields.pop("password", None)

    authorize_admin_changes(check_auth(request), [current], fields)
    check_changes(db, [current], fields)

    if password and password.strip():
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")
        fields["password"] = hash_password(password)

    fields["updated_at"] = utcnow()
    try:
        result = db[USERS].update_one({"_id": oid}, {"$set": fields})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already exists")

    return {
        "success": True,
        "modified_count": result.modified_count,
        "data": public_user(db[USERS].find_one({"_id": oid})),
    }


@router.delete("")
def delete_users(req: UserDelete, db: Database = Depends(get_db)):
    if req.id:
        if not is_valid_id(req.id):
            raise HTTPException(status_code=400, detail="Invalid user ID format")
        oid = to_object_id(req.id)

        target = db[USERS].find_one({"_id": oid})
        if not target:
            raise HTTPException(status_code=404, detail="User not found")
        if target.get("role") == "admin" and target.get("admin_level") == "super":
            if other_active_super_admins(db, [oid]) == 0:
                raise HTTPException(status_code=400, detail="Cannot delete the last active super admin")

        result = db[USERS].delete_one({"_id": oid})
        logger.info("Deleted user %s", req.id)
        return {"success": True, "deleted_count": result.deleted_count, "message": "User deleted successfully"}

    if req.user_ids:
        if not all(is_valid_id(i) for i in req.user_ids):
            raise HTTPException(status_code=400, detail="Invalid user ID format in bulk delete")
        oids = [to_object_id(i) for i in req.user_ids]

        supers = db[USERS].count_documents({"_id": {"$in": oids}, "role": "admin", "admin_level": "super"})
        if supers and other_active_super_admins(db, oids) == 0:
            raise HTTPException(status_code=400, detail="Cannot delete all super admins")

        result = db[USERS].delete_many({"_id": {"$in": oids}})
        logger.info("Bulk deleted %s users", result.deleted_count)
        return {
            "success": True,
            "deleted_count": result.deleted_count,
            "message": f"{result.deleted_count} users deleted successfully",
        }

    raise HTTPException(status_code=400, detail="Missing user ID or user IDs")


@router.put("")
def bulk_update_users(req: UserBulkUpdate, request: Request, db: Database = Depends(get_db)):
    if not all(is_valid_id(i) for i in req.user_ids):
        raise HTTPException(status_code=400, detail="Invalid user ID format in bulk update")
    oids = [to_object_id(i) for i in req.user_ids]

    # identity and credentials are never bulk-edited; unknown keys are dropped
    raw = {k: v for k, v in req.updates.items() if k not in ("_id", "id", "password")}
    try:
        updates = UserUpdate(**raw).model_dump(exclude_unset=True)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(p) for p in error["loc"])
        raise HTTPException(status_code=400, detail=f"{field}: {error['msg']}")
    updates.pop("password", None)
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    targets = list(db[USERS].find({"_id": {"$in": oids}}))
    authorize_admin_changes(check_auth(request), targets, updates)
    check_changes(db, targets, updates)

    updates["updated_at"] = utcnow()
    result = db[USERS].update_many({"_id": {"$in": oids}}, {"$set": updates})
    return {
        "success": True,
        "modified_count": result.modified_count,
        "matched_count": result.matched_count,
        "message": f"{result.modified_count} users updated successfully",
    }
