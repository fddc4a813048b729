import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from database import SESSIONS, USERS, create_document, get_db, serialize_doc
from schemas import (
    AuthResponse,
    AuthUser,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    User,
    UserOut,
)
from security import (
    ACCESS_TOKEN_TTL,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Response envelope ----------

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(data: Any = None, message: Optional[str] = None) -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    body = {"success": True, "timestamp": _timestamp()}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "status": exc.status_code,
            "timestamp": _timestamp(),
            "path": request.url.path,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    field_errors = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"][1:]) or "body"
        field_errors[field] = err["msg"]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation failed",
            "fieldErrors": field_errors,
            "status": 400,
            "timestamp": _timestamp(),
            "path": request.url.path,
        },
    )


# ---------- Helpers ----------

def user_out(user: dict) -> UserOut:
    return UserOut.model_validate(serialize_doc(dict(user)))


def issue_tokens(user: dict) -> AuthResponse:
    """Mint an access/refresh pair and open the refresh session."""
    user_id = str(user["_id"])
    roles = user.get("roles") or ["USER"]
    refresh_token, jti, expires_at = create_refresh_token(user_id)
    create_document(SESSIONS, {"jti": jti, "userId": user_id, "expiresAt": expires_at})
    return AuthResponse(
        access_token=create_access_token(user_id, roles),
        refresh_token=refresh_token,
        expires_in=int(ACCESS_TOKEN_TTL.total_seconds()),
        user=AuthUser(id=user_id, email=user["email"], roles=roles),
    )


def find_user(db, user_id: str) -> Optional[dict]:
    try:
        return db[USERS].find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        return None


def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)) -> UserOut:
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token, "access")
    except JWTError:
        raise credentials_exception
    user = find_user(db, payload["sub"])
    if not user or not user.get("isActive", True):
        raise credentials_exception
    return user_out(user)


# ---------- Health ----------

@app.get("/")
def read_root():
    return {"message": "Storefront backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = database.db
    if db is None:
        return response
    response["database"] = "✅ Available"
    response["database_name"] = getattr(db, "name", None)
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# ---------- Auth ----------

@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, db=Depends(get_db)):
    if db[USERS].find_one({"email": payload.email}):
        raise HTTPException(400, "Email is already taken")
    if db[USERS].find_one({"username": payload.username}):
        raise HTTPException(400, "Username is already taken")
    user = User(
        email=payload.email,
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        password=get_password_hash(payload.password),
        phone=payload.phone,
    )
    try:
        user_id = create_document(USERS, user)
    except DuplicateKeyError:
        raise HTTPException(400, "Email or username is already taken")
    logger.info("Registered user %s", payload.email)
    created = db[USERS].find_one({"_id": ObjectId(user_id)})
    return envelope(issue_tokens(created), "Registration successful")


@app.post("/api/auth/login")
def login(payload: LoginRequest, db=Depends(get_db)):
    user = db[USERS].find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password", "")):
        logger.warning("Invalid credentials for %s", payload.email)
        raise HTTPException(401, "Invalid email or password")
    if not user.get("isActive", True):
        raise HTTPException(401, "Account is disabled")
    return envelope(issue_tokens(user), "Login successful")


@app.post("/api/auth/refresh")
def refresh(payload: RefreshTokenRequest, db=Depends(get_db)):
    invalid = HTTPException(401, "Invalid refresh token")
    try:
        claims = decode_token(payload.refresh_token, "refresh")
    except JWTError:
        raise invalid
    if not db[SESSIONS].find_one({"jti": claims.get("jti")}):
        raise invalid
    user = find_user(db, claims["sub"])
    if not user or not user.get("isActive", True):
        raise invalid
    user_id = str(user["_id"])
    roles = user.get("roles") or ["USER"]
    response = AuthResponse(
        access_token=create_access_token(user_id, roles),
        refresh_token=payload.refresh_token,
        expires_in=int(ACCESS_TOKEN_TTL.total_seconds()),
        user=AuthUser(id=user_id, email=user["email"], roles=roles),
    )
    return envelope(response, "Token refreshed")


@app.post("/api/auth/logout")
def logout(payload: Optional[RefreshTokenRequest] = None, db=Depends(get_db)):
    if payload is not None:
        try:
            claims = decode_token(payload.refresh_token, "refresh")
        except JWTError:
            claims = None
        if claims:
            db[SESSIONS].delete_one({"jti": claims.get("jti")})
    return envelope(message="Logged out")


@app.post("/api/auth/logout-all")
def logout_all(current: UserOut = Depends(get_current_user), db=Depends(get_db)):
    result = db[SESSIONS].delete_many({"userId": current.id})
    logger.info("Revoked %d sessions for %s", result.deleted_count, current.email)
    return envelope({"revoked": result.deleted_count}, "Logged out from all devices")


@app.get("/api/auth/me")
def me(current: UserOut = Depends(get_current_user)):
    return envelope(current)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
