"""
Purchase webhook

Called by the checkout platform after a successful payment. Grants course
access, creating a passwordless account when needed and emailing a
password setup link.
"""

import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from . import identity, repository
from .config import settings
from .db import DB_UNAVAILABLE_DETAIL, get_db_connection_with_retry
from .email_client import EmailClient, EmailDeliveryError, get_email_client
from .email_templates import welcome_email
from .logger_config import get_logger
from .models import LinkType, PaymentProvider, PurchaseWebhookPayload

logger = get_logger(__name__, component="purchase_webhook")

webhook_router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])

SIGNATURE_HEADER = "x-webhook-signature"
PURCHASE_PAYMENT_METHOD = "purchase"
DEFAULT_AMOUNT_USD = 180
DEFAULT_CURRENCY = "USD"
MISSING_FIELDS_DETAIL = "Missing required fields: email, full_name, purchase_id"


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    if not signature:
        logger.warning("Webhook received without signature")
        return False
    if not secret:
        logger.error("WEBHOOK_SECRET not configured")
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature.strip().lower())


def _body_signature(data) -> Optional[str]:
    if isinstance(data, dict) and isinstance(data.get("signature"), str):
        return data["signature"]
    return None


def _provider(value: Optional[str]) -> str:
    try:
        return PaymentProvider((value or "").lower()).value
    except ValueError:
        return PaymentProvider.MANUAL.value


def _grant_enrollment(cursor, user_id: str, payload: PurchaseWebhookPayload) -> None:
    repository.upsert_enrollment(
        cursor,
        user_id,
        payment_provider=_provider(payload.payment_provider),
        payment_method=PURCHASE_PAYMENT_METHOD,
        amount_usd=payload.amount or DEFAULT_AMOUNT_USD,
        currency=(payload.currency or DEFAULT_CURRENCY).upper(),
        payment_id=payload.purchase_id,
    )


@webhook_router.post("/purchase")
async def purchase_webhook(request: Request, email_client: EmailClient = Depends(get_email_client)):
    """Grant access for a verified purchase. Replays of the same purchase are harmless."""
    raw_body = await request.body()

    try:
        data = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    # signature first, so a tampered request is a 401 whatever its shape
    signature = request.headers.get(SIGNATURE_HEADER) or _body_signature(data)
    if not verify_signature(raw_body, signature, settings.WEBHOOK_SECRET):
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = PurchaseWebhookPayload.model_validate(data)
    except ValidationError:
        raise HTTPException(status_code=400, detail=MISSING_FIELDS_DETAIL)

    email = identity.normalize_email(payload.email)
    full_name = payload.full_name.strip() if payload.full_name else None
    if not email or not full_name or not payload.purchase_id:
        raise HTTPException(status_code=400, detail=MISSING_FIELDS_DETAIL)

    log = logger.with_context(purchase_id=payload.purchase_id)

    try:
        with get_db_connection_with_retry() as conn:
            if not conn:
                raise HTTPException(status_code=500, detail=DB_UNAVAILABLE_DETAIL)

            cursor = conn.cursor(dictionary=True)
            try:
                existing = repository.get_profile_by_email(cursor, email) or identity.get_user_by_email(cursor, email)
                if existing:
                    _grant_enrollment(cursor, existing["id"], payload)
                    conn.commit()
                    log.info("Enrollment verified for existing user", user_id=existing["id"])
                    return {
                        "success": True,
                        "message": "User already exists, enrollment verified",
                        "user_existed": True,
                    }

                try:
                    user_id = identity.create_user(cursor, email, full_name=full_name, email_confirmed=True)
                except identity.EmailAlreadyRegistered:
                    # Created concurrently by a replay of this webhook
                    conn.rollback()
                    user = identity.get_user_by_email(cursor, email)
                    _grant_enrollment(cursor, user["id"], payload)
                    conn.commit()
                    return {
                        "success": True,
                        "message": "User already exists, enrollment verified",
                        "user_existed": True,
                    }

                _grant_enrollment(cursor, user_id, payload)
                token = identity.generate_link_token(cursor, user_id, LinkType.RECOVERY)
                conn.commit()
            except HTTPException:
                raise
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

        log.info("Account created from purchase", user_id=user_id)

        reset_url = identity.build_action_link(token, LinkType.RECOVERY, "/update-password")
        try:
            await email_client.send_email(
                email,
                f"Bienvenido a {settings.APP_NAME} - Configura tu acceso",
                welcome_email(full_name, email, reset_url),
            )
        except EmailDeliveryError as e:
            log.error("Welcome email failed", user_id=user_id, error=str(e))
            return {
                "success": True,
                "message": "Account created but email failed to send",
                "email_sent": False,
                "purchase_id": payload.purchase_id,
            }

        return {
            "success": True,
            "message": "Account created and password setup email sent",
            "email_sent": True,
            "purchase_id": payload.purchase_id,
        }
    except HTTPException:
        raise
    except Exception as e:
        log.error("Error in purchase webhook", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
