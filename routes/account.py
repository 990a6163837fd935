from fastapi import APIRouter, Depends, HTTPException, Request
from pymongo.database import Database

from auth import authenticate_user, check_auth
from database import get_db
from schemas import LoginRequest

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/login")
def login(req: LoginRequest, db: Database = Depends(get_db)):
    user = authenticate_user(db, req.email, req.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"success": True, "data": user}


@router.get("/me")
def me(request: Request):
    user = check_auth(request)
    if not user:
        raise HTTPException(status_code=401, detail="Not logged in")
    return {"success": True, "data": user}
