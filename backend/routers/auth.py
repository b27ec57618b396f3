import sqlite3
import time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.security import issue_session_token, require_session, session_user_id
from database.db import create_tables, get_exam_center_for_superintendent, get_user_by_id, verify_user_credentials

router = APIRouter()


class UserLogin(BaseModel):
    username: str
    password: str


@router.post("/auth/login")
def login(payload: UserLogin):
    username = payload.username.strip()
    password = payload.password.strip()

    if not username:
        raise HTTPException(status_code=400, detail="Username is required.")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    try:
        user = verify_user_credentials(username, password)
    except sqlite3.OperationalError:
        # Self-heal when DB schema is missing (e.g., startup skipped).
        try:
            create_tables()
            user = verify_user_credentials(username, password)
        except sqlite3.OperationalError:
            raise HTTPException(
                status_code=503,
                detail="Authentication service unavailable. Please retry.",
            )

    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    token, claims = issue_session_token(user["id"], role=user["role"])
    now = int(time.time())
    return {
        "access_token": token,
        "token_type": "bearer",
        "user_id": user["id"],
        "role": claims["role"],
        "expires_at": claims["exp"],
        "expires_in": max(0, int(claims["exp"]) - now),
    }


@router.get("/auth/me")
def auth_me(session: dict = Depends(require_session)):
    user = get_user_by_id(session_user_id(session))
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired session token.")
    center = get_exam_center_for_superintendent(user["id"])
    return {
        **user,
        "exam_center": center,
        "expires_at": session.get("exp"),
        "issued_at": session.get("iat"),
    }
