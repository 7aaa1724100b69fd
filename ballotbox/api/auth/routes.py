from flask import Blueprint, current_app
from flasgger import swag_from
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    get_jwt_identity,
    jwt_required,
    get_jwt,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...utils.audit import audit_log
from ...utils.clock import utcnow
from ...utils.ids import as_uuid
from ...services.rate_limiter import get_rate_limiter
from ...utils.rate_limit import client_ip, rate_limited
from ...utils.rbac import admin_required
from ...extensions import db
from ...models.user import User
from ...models.token_blocklist import TokenBlocklist
from ...schemas.auth import LoginSchema, UserCreateSchema
from ...schemas.user import UserSchema
from ...utils.validation import validate_or_abort

auth_bp = Blueprint("auth", __name__)

login_req_schema = LoginSchema()
user_create_schema = UserCreateSchema()
user_schema = UserSchema()


@auth_bp.post("/login")
@rate_limited("login")
@swag_from({
    "tags": ["Auth"],
    "summary": "Poll worker / administrator login",
    "description": "Validates username/password and returns access/refresh tokens on successful login.",
    "parameters": [{
        "in": "body",
        "name": "body",
        "required": True,
        "schema": {
            "type": "object",
            "properties": {
                "username": {"type": "string", "example": "station1"},
                "password": {"type": "string", "example": "StrongPass123"},
            },
            "required": ["username", "password"],
        },
    }],
    "responses": {
        200: {"description": "Login successful, tokens returned"},
        400: {"description": "Validation error"},
        401: {"description": "Invalid credentials"},
        403: {"description": "User account not active"},
        429: {"description": "Too many attempts"},
    }
})
def login():
    payload = validate_or_abort(login_req_schema)

    username = payload["username"].strip().lower()
    password = payload["password"]

    try:
        user = User.query.filter_by(username=username).first()

        # Invalid credentials (don't leak which part failed)
        if not user or not user.check_password(password):
            audit_log(
                action="LOGIN_FAILED_INVALID_CREDENTIALS",
                entity_type="AUTH",
                details={"username": username},
            )
            db.session.commit()
            return {"message": "Invalid username or password"}, 401

        if not user.is_active:
            audit_log(
                action="LOGIN_FAILED_INACTIVE_ACCOUNT",
                entity_type="AUTH",
                entity_id=str(user.id),
                details={"username": user.username},
            )
            db.session.commit()
            return {"message": "Account is not active. Please contact an administrator."}, 403

        additional_claims = {"role": user.role}
        access_token = create_access_token(identity=str(user.id), additional_claims=additional_claims)
        refresh_token = create_refresh_token(identity=str(user.id), additional_claims=additional_claims)

        user.last_login_at = utcnow()
        audit_log(
            action="LOGIN_SUCCESS",
            entity_type="AUTH",
            entity_id=str(user.id),
            details={"username": user.username, "role": user.role},
        )
        db.session.commit()
        get_rate_limiter().reset(client_ip(), "login")

        return {
            "message": "Login successful",
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "user": user_schema.dump(user),
        }, 200

    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error during login")
        return {"message": "Authentication service error. Please try again."}, 500


@auth_bp.post("/refresh")
@jwt_required(refresh=True)
@swag_from({
    "tags": ["Auth"],
    "security": [{"BearerAuth": []}],
    "summary": "Refresh access token (requires refresh token)",
    "responses": {
        200: {"description": "New access token issued"},
        401: {"description": "Unauthorized"},
    },
})
def refresh():
    user = db.session.get(User, _identity_uuid())
    if not user or not user.is_active:
        return {"message": "User inactive or not found"}, 401

    access = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    return {"access_token": access}, 200


@auth_bp.get("/me")
@jwt_required()
@swag_from({
    "tags": ["Auth"],
    "security": [{"BearerAuth": []}],
    "summary": "Get current operator profile",
    "responses": {200: {"description": "Profile"}, 401: {"description": "Unauthorized"}, 404: {"description": "User not found"}},
})
def me():
    user = db.session.get(User, _identity_uuid())
    if not user:
        return {"message": "User not found"}, 404
    return {"user": user_schema.dump(user)}, 200


@auth_bp.post("/logout")
@jwt_required()
@swag_from({
    "tags": ["Auth"],
    "security": [{"BearerAuth": []}],
    "summary": "Logout (revoke access token)",
    "responses": {200: {"description": "Logged out"}, 401: {"description": "Unauthorized"}},
})
def logout():
    return _revoke_current("access")


@auth_bp.post("/logout/refresh")
@jwt_required(refresh=True)
def logout_refresh():
    return _revoke_current("refresh")


@auth_bp.post("/users")
@jwt_required()
@admin_required
@swag_from({
    "tags": ["Auth"],
    "security": [{"BearerAuth": []}],
    "summary": "Create a poll worker or administrator account (admin only)",
    "responses": {201: {"description": "Created"}, 400: {"description": "Validation error"}, 409: {"description": "Username taken"}},
})
def create_user():
    payload = validate_or_abort(user_create_schema)
    username = payload["username"].strip().lower()

    if User.query.filter_by(username=username).first():
        return {"message": "Username already taken"}, 409

    user = User(username=username, display_name=payload.get("display_name"), role=payload["role"])
    user.set_password(payload["password"])

    try:
        db.session.add(user)
        db.session.flush()
        audit_log(
            action="USER_CREATED",
            entity_type="AUTH",
            entity_id=str(user.id),
            details={"username": user.username, "role": user.role},
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return {"message": "Username already taken"}, 409
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error creating user")
        return {"message": "Failed to create user"}, 500

    return {"message": "User created", "user": user_schema.dump(user)}, 201


def _identity_uuid():
    return as_uuid(get_jwt_identity())


def _revoke_current(token_type: str):
    jti = get_jwt().get("jti")
    if not jti:
        return {"message": "Invalid token"}, 400

    try:
        TokenBlocklist.revoke(jti, token_type, user_id=_identity_uuid())
        audit_log(
            action="LOGOUT_ACCESS" if token_type == "access" else "LOGOUT_REFRESH",
            entity_type="AUTH",
            details={"user_id": str(get_jwt_identity())},
        )
        db.session.commit()
        return {"message": "Logged out successfully"}, 200
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("DB error during logout")
        return {"message": "Logout failed"}, 500
