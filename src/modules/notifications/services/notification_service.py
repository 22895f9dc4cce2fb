# modules/notifications/services/notification_service.py
import logging
from typing import Any, Dict, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


class EmailTemplate:
    """Mensaje transaccional: id de plantilla en el proveedor más sus parámetros."""

    kind = "generic"

    def __init__(self, to: str, template_id: int, params: Dict[str, Any]):
        self.to = to
        self.template_id = template_id
        self.params = params

    def to_dict(self):
        return {
            'to': [{'email': self.to}],
            'templateId': self.template_id,
            'params': self.params,
        }


class WarningEmail(EmailTemplate):
    kind = "warning"

    def __init__(self, to: str, failed_attempts: int):
        super().__init__(to, settings.EMAIL_TEMPLATE_WARNING, {
            'email': to,
            'failed_attempts': failed_attempts,
            'message': (
                f"We detected {failed_attempts} failed login attempts on your account. "
                "If this was not you, consider changing your password."
            ),
        })


class BlockedEmail(EmailTemplate):
    kind = "blocked"

    def __init__(self, to: str):
        super().__init__(to, settings.EMAIL_TEMPLATE_BLOCKED, {
            'email': to,
            'message': (
                "Your account has been blocked after too many failed login attempts. "
                "Contact an administrator to restore access."
            ),
        })


class SignatureRequestEmail(EmailTemplate):
    kind = "signature"

    def __init__(self, to: str, document_title: str, sender_name: str, signing_url: str):
        super().__init__(to, settings.EMAIL_TEMPLATE_SIGNATURE, {
            'document_title': document_title,
            'sender_name': sender_name,
            'signing_url': signing_url,
            'message': f"{sender_name} has requested your signature on '{document_title}'.",
        })


class VerificationEmail(EmailTemplate):
    kind = "verification"

    def __init__(self, to: str, verification_url: str):
        super().__init__(to, settings.EMAIL_TEMPLATE_VERIFICATION, {
            'email': to,
            'verification_url': verification_url,
        })


class NotificationService:
    def __init__(self, client: Optional[httpx.Client] = None):
        self.client = client
        self.api_url = settings.EMAIL_API_URL
        self.api_key = settings.EMAIL_API_KEY
        self.sender = {'name': settings.EMAIL_FROM_NAME, 'email': settings.EMAIL_FROM_ADDRESS}

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, template: EmailTemplate) -> bool:
        """Envía el correo. Nunca lanza: devuelve False si no se pudo entregar."""
        if not self.is_configured:
            logger.info("Email API key not configured; skipping %s email to %s", template.kind, template.to)
            return False

        payload = {'sender': self.sender, **template.to_dict()}
        headers = {
            'api-key': self.api_key,
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        try:
            if self.client is not None:
                response = self.client.post(self.api_url, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=10.0) as client:
                    response = client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Email dispatch (%s) to %s failed: %s", template.kind, template.to, exc)
            return False

        if response.status_code not in (200, 201, 202):
            logger.warning("Email API rejected %s email to %s: %s %s",
                           template.kind, template.to, response.status_code, response.text[:200])
            return False

        logger.info("Email (%s) sent to %s", template.kind, template.to)
        return True

    def send_warning(self, to: str, failed_attempts: int) -> bool:
        return self.send(WarningEmail(to, failed_attempts))

    def send_blocked(self, to: str) -> bool:
        return self.send(BlockedEmail(to))

    def send_signature_request(self, to: str, document_title: str, sender_name: str, signing_url: str) -> bool:
        return self.send(SignatureRequestEmail(to, document_title, sender_name, signing_url))

    def send_verification(self, to: str, verification_url: str) -> bool:
        return self.send(VerificationEmail(to, verification_url))


def get_notification_service() -> NotificationService:
    return NotificationService()
