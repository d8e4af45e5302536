"""
Academy Authentication Routes

Registration with email confirmation, sign-in, password recovery,
invitation acceptance and the caller's own profile.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from . import identity, repository
from .config import settings
from .db import DB_UNAVAILABLE_DETAIL, get_db_connection_with_retry
from .email_client import EmailClient, EmailDeliveryError, get_email_client
from .email_templates import confirm_account_email, reset_password_email
from .jwt_auth import (
    INVALID_REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_current_user,
)
from .models import (
    AcceptInvitationRequest,
    CurrentUser,
    LinkType,
    LoginRequest,
    PaymentProvider,
    PaymentStatus,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    Role,
    UpdatePasswordRequest,
    UpdateProfileRequest,
)
from .rate_limit import AUTH_RATE_LIMIT_MESSAGE, limiter

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])
confirm_router = APIRouter(tags=["Authentication"])

EMAIL_SEND_FAILED = "No se pudo enviar el email. Intenta de nuevo."
PASSWORD_TOO_SHORT = "La contrasena debe tener al menos 6 caracteres"
INVALID_INVITATION = "Invitacion invalida o expirada"


def _password_ok(password: str) -> bool:
    return len(password) >= settings.MIN_PASSWORD_LENGTH


@auth_router.post("/register")
@limiter.limit(settings.RATE_LIMIT_AUTH, error_message=AUTH_RATE_LIMIT_MESSAGE)
async def register_user(
    request: Request, payload: RegisterRequest, email_client: EmailClient = Depends(get_email_client)
):
    """Create an unconfirmed account and email the confirmation link"""
    email = identity.normalize_email(payload.email)
    password = payload.password
    full_name = payload.full_name.strip() if payload.full_name else None
    country = payload.country.strip() if payload.country else None
    redirect_to = identity.sanitize_redirect(payload.redirect)

    if not email or not password or not full_name or not country:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if not _password_ok(password):
        raise HTTPException(status_code=400, detail=PASSWORD_TOO_SHORT)

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                try:
                    user_id = identity.create_user(
                        cursor, email, password=password, full_name=full_name, country=country
                    )
                except identity.EmailAlreadyRegistered:
                    conn.rollback()
                    raise HTTPException(status_code=400, detail="Este email ya esta registrado")
                token = identity.generate_link_token(cursor, user_id, LinkType.SIGNUP)
                conn.commit()

                confirm_url = identity.build_action_link(token, LinkType.SIGNUP, redirect_to)
                try:
                    await email_client.send_email(
                        email,
                        f"Confirma tu cuenta - {settings.APP_NAME}",
                        confirm_account_email(full_name, confirm_url),
                    )
                except EmailDeliveryError as e:
                    logger.error(f"Signup confirmation email failed for {user_id}: {e}")
                    # An unconfirmed account without its link cannot be used
                    identity.delete_user(cursor, user_id)
                    conn.commit()
                    raise HTTPException(status_code=502, detail=EMAIL_SEND_FAILED)
            finally:
                cursor.close()

        logger.info(f"Registration pending confirmation: {user_id}")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Registration error: {e}")
        raise HTTPException(status_code=500, detail="Error al crear la cuenta")


@confirm_router.get("/auth/confirm")
def confirm_link(
    token_hash: Optional[str] = None,
    link_type_value: Optional[str] = Query(None, alias="type"),
    next_path: Optional[str] = Query(None, alias="next"),
):
    """Landing endpoint for emailed links; always answers with a redirect"""
    safe_next = identity.sanitize_redirect(next_path)
    failure = RedirectResponse(url="/login?error=auth", status_code=303)

    try:
        link_type = LinkType(link_type_value) if link_type_value else None
    except ValueError:
        link_type = None
    if not token_hash or link_type is None:
        return failure

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                return failure
            cursor = conn.cursor(dictionary=True)
            try:
                if link_type == LinkType.RECOVERY:
                    # Consumed by /update-password
                    row = identity.verify_link_token(cursor, token_hash, link_type, consume=False)
                    if not row:
                        return failure
                    separator = "&" if "?" in safe_next else "?"
                    query = urlencode({"token_hash": token_hash})
                    return RedirectResponse(url=f"{safe_next}{separator}{query}", status_code=303)

                row = identity.verify_link_token(cursor, token_hash, link_type)
                if not row:
                    conn.rollback()
                    return failure
                identity.confirm_email(cursor, row["user_id"])
                conn.commit()
                logger.info(f"Email confirmed for {row['user_id']}")
                return RedirectResponse(url=safe_next, status_code=303)
            finally:
                cursor.close()
    except Exception as e:
        logger.error(f"Link confirmation error: {e}")
        return failure


@auth_router.post("/login")
def login_user(payload: LoginRequest):
    """Email + password sign-in returning access and refresh tokens"""
    email = identity.normalize_email(payload.email) or ""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                user = identity.authenticate(cursor, email, payload.password)
                if not user:
                    logger.warning(f"Failed login attempt for email: {email}")
                    raise HTTPException(status_code=401, detail="Email o contrasena incorrectos")
                if not user.get("email_confirmed_at"):
                    raise HTTPException(status_code=403, detail="Debes confirmar tu email antes de iniciar sesion")

                identity.record_login(cursor, user["id"])
                conn.commit()
            finally:
                cursor.close()

        role = user.get("role") or Role.STUDENT.value
        logger.info(f"Successful login for user: {user['id']}")
        return {
            "success": True,
            "access_token": create_access_token(user["id"], user["email"], role),
            "refresh_token": create_refresh_token(user["id"], user["email"], role),
            "token_type": "Bearer",
            "user": {"id": user["id"], "email": user["email"], "full_name": user.get("full_name"), "role": role},
            "redirect": "/admin" if role == Role.ADMIN.value else "/curso",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Login failed")


@auth_router.post("/refresh")
def refresh_session(payload: RefreshRequest):
    """New access token carrying the role currently stored on the profile"""
    claims = decode_refresh_token(payload.refresh_token)
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                profile = repository.get_profile(cursor, claims["sub"])
            finally:
                cursor.close()

        if not profile:
            logger.warning(f"Refresh refused, no profile for user {claims['sub']}")
            raise HTTPException(status_code=401, detail=INVALID_REFRESH_TOKEN)

        role = profile.get("role") or Role.STUDENT.value
        email = profile.get("email") or claims.get("email", "")
        return {"access_token": create_access_token(profile["id"], email, role), "token_type": "Bearer"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Token refresh error: {e}")
        raise HTTPException(status_code=500, detail="Token refresh failed")


@auth_router.post("/reset-password")
@limiter.limit(settings.RATE_LIMIT_AUTH, error_message=AUTH_RATE_LIMIT_MESSAGE)
async def reset_password(
    request: Request, payload: ResetPasswordRequest, email_client: EmailClient = Depends(get_email_client)
):
    """Email a recovery link. Unknown addresses get the same answer as known ones."""
    email = identity.normalize_email(payload.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                user = identity.get_user_by_email(cursor, email)
                if not user:
                    return {"success": True}
                token = identity.generate_link_token(cursor, user["id"], LinkType.RECOVERY)
                conn.commit()
            finally:
                cursor.close()

        reset_url = identity.build_action_link(token, LinkType.RECOVERY, "/update-password")
        try:
            await email_client.send_email(
                email, f"Restablecer contrasena - {settings.APP_NAME}", reset_password_email(reset_url)
            )
        except EmailDeliveryError as e:
            logger.error(f"Reset password email failed for {user['id']}: {e}")
            raise HTTPException(status_code=502, detail=EMAIL_SEND_FAILED)

        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Reset password error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@auth_router.post("/update-password")
def update_password(payload: UpdatePasswordRequest):
    """Consume a recovery link and set a new password"""
    if not _password_ok(payload.password):
        raise HTTPException(status_code=400, detail=PASSWORD_TOO_SHORT)

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                row = identity.verify_link_token(cursor, payload.token_hash, LinkType.RECOVERY)
                if not row:
                    conn.rollback()
                    raise HTTPException(status_code=400, detail="Enlace invalido o expirado")
                identity.set_password(cursor, row["user_id"], payload.password)
                # Receiving the link proves ownership of the address
                identity.confirm_email(cursor, row["user_id"])
                conn.commit()
            finally:
                cursor.close()

        logger.info(f"Password updated for {row['user_id']}")
        return {"success": True, "message": "Contrasena actualizada correctamente"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update password error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@auth_router.get("/invitations/{token}")
def get_invitation(token: str):
    """Email of a pending invitation, for the acceptance form"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                invitation = repository.find_valid_invitation(cursor, token)
            finally:
                cursor.close()

        if not invitation:
            raise HTTPException(status_code=400, detail=INVALID_INVITATION)
        return {"email": invitation["email"], "expires_at": invitation["expires_at"]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Invitation lookup error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@auth_router.post("/accept-invitation")
def accept_invitation(payload: AcceptInvitationRequest):
    """Turn a pending invitation into a confirmed, enrolled account"""
    if not payload.token or not payload.full_name or not payload.password:
        raise HTTPException(status_code=400, detail="Todos los campos son requeridos")
    if not _password_ok(payload.password):
        raise HTTPException(status_code=400, detail=PASSWORD_TOO_SHORT)

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                invitation = repository.find_valid_invitation(cursor, payload.token)
                if not invitation:
                    raise HTTPException(status_code=400, detail=INVALID_INVITATION)

                try:
                    user_id = identity.create_user(
                        cursor,
                        invitation["email"],
                        password=payload.password,
                        full_name=payload.full_name.strip(),
                        email_confirmed=True,
                    )
                except identity.EmailAlreadyRegistered:
                    conn.rollback()
                    raise HTTPException(status_code=400, detail="Este email ya tiene una cuenta registrada")

                try:
                    repository.upsert_enrollment(
                        cursor,
                        user_id,
                        payment_provider=PaymentProvider.MANUAL.value,
                        payment_status=PaymentStatus.COMPLETED.value,
                        payment_method="invitation",
                        amount_usd=0,
                        currency="USD",
                    )
                except Exception as e:
                    # The account stays usable; an admin can grant access afterwards
                    logger.error(f"Enrollment for invited user {user_id} failed: {e}")

                if not repository.mark_invitation_accepted(cursor, invitation["id"]):
                    conn.rollback()
                    raise HTTPException(status_code=400, detail=INVALID_INVITATION)
                conn.commit()
            except HTTPException:
                raise
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

        logger.info(f"Invitation {invitation['id']} accepted by {user_id}")
        return {"success": True, "message": "Cuenta creada correctamente"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Accept invitation error: {e}")
        raise HTTPException(status_code=500, detail="Error al crear la cuenta")


@auth_router.get("/profile")
def get_profile(user: CurrentUser = Depends(get_current_user)):
    """Current user's profile and enrollment"""
    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                profile = repository.get_profile(cursor, user.id)
                enrollment = repository.get_enrollment(cursor, user.id)
            finally:
                cursor.close()

        if not profile:
            raise HTTPException(status_code=404, detail="Perfil no encontrado")
        return {"profile": profile, "enrollment": enrollment}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get profile error: {e}")
        raise HTTPException(status_code=500, detail="Failed to get profile")


@auth_router.put("/profile")
def update_profile(payload: UpdateProfileRequest, user: CurrentUser = Depends(get_current_user)):
    full_name = payload.full_name.strip()
    if len(full_name) < 2:
        raise HTTPException(status_code=400, detail="El nombre debe tener al menos 2 caracteres")

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                repository.update_profile(
                    cursor,
                    user.id,
                    full_name,
                    (payload.phone or "").strip() or None,
                    (payload.country or "").strip() or None,
                )
                conn.commit()
            finally:
                cursor.close()

        return {"success": True, "message": "Perfil actualizado correctamente"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Update profile error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update profile")
