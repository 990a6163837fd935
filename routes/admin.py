import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import USERS, get_db, is_valid_id, to_object_id, utcnow
from permissions import ADMIN_LEVELS, get_permissions_by_category
from schemas import ActivityLogRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

RECENT_LOGIN_WINDOW = timedelta(days=7)


def activity_entry(admin: dict, now: datetime) -> dict:
    last_login = admin.get("last_login")
    created_at = admin.get("created_at")
    last_activity = last_login or admin.get("updated_at")
    reference = last_login or created_at
    days_since = math.floor((now - reference).total_seconds() / 86400) if reference else 0

    if last_login:
        action = {
            "action": "Login",
            "timestamp": last_login,
            "details": f"Last login {days_since} days ago",
        }
    else:
        action = {"action": "Account Created", "timestamp": created_at, "details": "Account created"}
    action["status"] = "success" if admin.get("status") == "active" else "inactive"

    return {
        "id": str(admin["_id"]),
        "admin_name": admin.get("name"),
        "admin_email": admin.get("email"),
        "admin_level": admin.get("admin_level"),
        "status": admin.get("status"),
        "last_login": last_login,
        "last_activity": last_activity,
        "days_since_last_login": days_since,
        "created_at": created_at,
        "actions": [action],
    }


def admin_stats(db: Database, now: datetime) -> dict:
    admins = db[USERS]
    return {
        "total_admins": admins.count_documents({"role": "admin"}),
        "active_admins": admins.count_documents({"role": "admin", "status": "active"}),
        "super_admins": admins.count_documents({"role": "admin", "admin_level": "super"}),
        "recent_logins": admins.count_documents({
            "role": "admin",
            "last_login": {"$gte": now - RECENT_LOGIN_WINDOW},
        }),
    }


@router.get("/activity")
def admin_activity(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    admin_id: Optional[str] = None,
    db: Database = Depends(get_db),
):
    match = {"role": "admin"}
    if admin_id and is_valid_id(admin_id):
        match["_id"] = to_object_id(admin_id)

    now = utcnow()
    entries = [activity_entry(a, now) for a in db[USERS].find(match)]
    entries.sort(key=lambda e: (e["last_activity"] is not None, e["last_activity"] or now), reverse=True)
    skip = (page - 1) * limit

    total = db[USERS].count_documents({"role": "admin"})
    return {
        "success": True,
        "data": {
            "logs": entries[skip:skip + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
            "stats": admin_stats(db, now),
        },
    }


@router.post("/activity")
def log_admin_activity(req: ActivityLogRequest, db: Database = Depends(get_db)):
    oid = to_object_id(req.admin_id, "admin")
    # only logins leave a trace, on the admin's own record
    if req.action == "login":
        now = utcnow()
        db[USERS].update_one(
            {"_id": oid, "role": "admin"},
            {"$set": {"last_login": now, "updated_at": now}},
        )
    logger.info("Admin %s activity: %s", req.admin_id, req.action)
    return {"success": True, "message": "Activity logged successfully"}


@router.get("/permissions")
def permission_catalogue():
    return {
        "success": True,
        "data": {
            "permissions": get_permissions_by_category(),
            "admin_levels": ADMIN_LEVELS,
        },
    }
