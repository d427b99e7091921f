"""Webhook API routes for Supabase integrations."""

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from src.core.config import get_settings
from src.schemas.webhook import AuthUserWebhook, WebhookAck
from src.services.provisioning_service import ProfileProvisioningService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_webhook_secret(provided: str | None) -> None:
    """Check the shared secret sent by the database webhook.

    Raises:
        HTTPException: 503 if no secret is configured, 401 if it does not match.
    """
    expected = get_settings().auth_webhook_secret
    if not expected:
        logger.error("Auth webhook called but AUTH_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook not configured",
        )

    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


@router.post(
    "/auth/user-created",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Provision profile for a new identity",
    description="Receives auth.users INSERT events and creates the matching profile row.",
)
async def auth_user_created(
    event: AuthUserWebhook,
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> WebhookAck:
    """Handle auth.users INSERT database webhooks.

    Provisioning failures other than unexpected store errors are logged and
    acknowledged, so the sender never retries an identity forever.

    Args:
        event: The webhook payload.
        x_webhook_secret: Shared secret header.

    Returns:
        WebhookAck: Acknowledgment with the provisioning outcome.

    Raises:
        HTTPException: 401 if the secret is invalid.
    """
    verify_webhook_secret(x_webhook_secret)

    if event.type != "INSERT" or event.table != "users" or event.record is None:
        logger.debug("Ignoring webhook event %s on %s.%s", event.type, event.table_schema, event.table)
        return WebhookAck()

    identity = event.record.to_identity()
    logger.info("Processing user-created webhook for %s", identity.id)

    profile = await ProfileProvisioningService().provision(identity)
    return WebhookAck(profile_created=profile is not None)
