"""Client for the transactional email delivery provider (Resend-compatible API)."""

import logging
from typing import Optional

import httpx

from interview_dispatch.config import Settings, get_settings
from interview_dispatch.errors import DeliveryError

logger = logging.getLogger(__name__)


class DeliveryClient:
    """Client for a Resend-style HTTP email API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_address: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize delivery client.

        Args:
            api_url: Base URL of the provider (e.g., https://api.resend.com)
            api_key: Bearer API key
            from_address: Sender address used for every email
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def send_email(self, to: str, subject: str, html: str) -> str:
        """
        Send an HTML email.

        Args:
            to: Recipient address
            subject: Email subject
            html: Rendered HTML document

        Returns:
            Provider email ID

        Raises:
            DeliveryError: If the provider rejects the email or is unreachable
        """
        client = await self._get_client()

        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }

        logger.info(f"Sending email to {to}: {subject[:50]}")

        try:
            response = await client.post(f"{self.api_url}/emails", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP error {e.response.status_code}: {e.response.text}"
            logger.error(f"Failed to send email to {to}: {error_msg}")
            raise DeliveryError(error_msg) from e
        except httpx.HTTPError as e:
            logger.error(f"Delivery provider unreachable: {e}")
            raise DeliveryError(f"Delivery provider unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Delivery provider returned a non-JSON body: {response.text[:200]}")
            raise DeliveryError(f"Unexpected provider response: {response.text[:200]}") from e

        if not isinstance(data, dict):
            logger.error(f"Delivery provider returned an unexpected body: {data}")
            raise DeliveryError(f"Unexpected provider response: {data}")

        email_id = data.get("id")
        if not email_id:
            logger.error(f"Delivery provider returned no email id: {data}")
            raise DeliveryError(f"Unexpected provider response: {data}")

        logger.info(f"Email sent to {to}, id: {email_id}")
        return email_id


def get_delivery_client(settings: Optional[Settings] = None) -> DeliveryClient:
    """
    Get delivery client instance from settings.

    Returns:
        DeliveryClient instance
    """
    settings = settings or get_settings()
    return DeliveryClient(
        api_url=settings.resend_api_url,
        api_key=settings.resend_api_key,
        from_address=settings.email_from,
    )
