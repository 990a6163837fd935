import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from routes import account, admin, bookings, pricing_tiers, slots, users

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Parking Lot Management API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(slots.router)
app.include_router(bookings.router)
app.include_router(pricing_tiers.router)
app.include_router(admin.router)
app.include_router(users.router)
app.include_router(account.router)


# -------------------- ERROR ENVELOPE --------------------
def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        problems.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return error_response(400, "; ".join(problems) or "Invalid request")


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_error(request: Request, exc: DuplicateKeyError):
    return error_response(400, "Record already exists")


@app.exception_handler(PyMongoError)
async def database_error(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(500, str(exc))


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, str(exc))


# -------------------- STARTUP --------------------
@app.on_event("startup")
def startup_db():
    if database.db is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; data endpoints will fail")
        return
    database.ensure_indexes(database.db)


@app.get("/")
def read_root():
    return {"message": "Parking Lot Management API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "Running",
        "database": "Not Available" if database.db is None else "Connected",
    }
    try:
        response["collections"] = database.db.list_collection_names() if database.db is not None else []
    except PyMongoError as e:
        response["database"] = f"Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
