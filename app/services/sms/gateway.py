"""
SMS gateway client for the SendChamp HTTP API.
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from app.core.config import settings
from app.core.exceptions import SMSGatewayError, RetryableError, SMSAuthError
from app.schemas.delivery import SendResult

logger = logging.getLogger("edunotify.gateway")

SEND_PATH = "/sms/send"


class GatewayConfig(BaseModel):
    """Connection and sender settings for the SMS gateway."""
    base_url: str
    api_key: str = ""
    sender_name: str = "MAPOLY"
    route: str = "dnd"
    timeout: float = 30.0
    rate_limit_retries: int = 2
    rate_limit_backoff: float = 2.0
    mock: bool = False

    @classmethod
    def from_settings(cls, source=None) -> "GatewayConfig":
        """Build gateway configuration from application settings."""
        source = source or settings
        return cls(
            base_url=source.SMS_GATEWAY_URL,
            api_key=source.SMS_GATEWAY_API_KEY,
            sender_name=source.SMS_SENDER_NAME,
            route=source.SMS_ROUTE,
            timeout=source.SMS_GATEWAY_TIMEOUT,
            rate_limit_retries=source.SMS_RATE_LIMIT_RETRIES,
            rate_limit_backoff=source.SMS_RATE_LIMIT_BACKOFF,
            mock=source.SMS_GATEWAY_MOCK,
        )


class SMSGatewayClient:
    """
    Stateless client issuing send requests to the SMS gateway.

    ``send`` and ``send_batch`` never raise: every failure comes back as a
    ``SendResult`` with ``success=False``. HTTP 429 responses are retried
    after a fixed backoff; any other failure, including timeouts, is
    returned immediately.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize gateway client.

        Args:
            config: Gateway configuration
            transport: Optional httpx transport, used to stub the wire in tests
            sleep: Coroutine used for the rate-limit backoff
        """
        self.config = config
        self._transport = transport
        self._sleep = sleep

    async def send(self, phone_number: str, message: str) -> SendResult:
        """
        Send one SMS to one normalized phone number.

        Args:
            phone_number: Gateway-formatted number
            message: Message text

        Returns:
            SendResult: Gateway message ID on success, error text on failure
        """
        return await self._deliver([phone_number], message)

    async def send_batch(self, phone_numbers: List[str], message: str) -> SendResult:
        """
        Send the same SMS to many numbers in a single gateway request.

        No per-recipient outcome is available; use ``send`` when delivery
        tracking is needed.
        """
        if not phone_numbers:
            return SendResult.fail("No recipients supplied")
        return await self._deliver(list(phone_numbers), message)

    async def _deliver(self, phone_numbers: List[str], message: str) -> SendResult:
        if self.config.mock:
            logger.info(f"[MOCK] Sending SMS to {len(phone_numbers)} recipient(s): {message[:30]}...")
            return SendResult.ok(gateway_message_id=f"mock_{uuid.uuid4()}")

        payload = {
            "to": phone_numbers,
            "message": message,
            "sender_name": self.config.sender_name,
            "route": self.config.route,
        }

        try:
            body = await self._post_with_rate_limit_retry(payload)
        except SMSGatewayError as e:
            logger.error(f"SMS sending error for {', '.join(phone_numbers)}: {e.message}")
            return SendResult.fail(e.message)

        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        gateway_id = data.get("id") or body.get("id")
        status = data.get("status") or "sent"
        return SendResult.ok(
            gateway_message_id=str(gateway_id) if gateway_id is not None else None,
            status=str(status).lower(),
        )

    async def _post_with_rate_limit_retry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        max_attempts = self.config.rate_limit_retries + 1

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._post(payload)
            except RetryableError as e:
                if attempt >= max_attempts:
                    raise SMSGatewayError(
                        message=f"Rate limited by SMS gateway after {max_attempts} attempts",
                        details=e.details,
                    )
                logger.warning(
                    f"SMS gateway rate limit hit (attempt {attempt}/{max_attempts}), "
                    f"retrying in {self.config.rate_limit_backoff}s"
                )
                await self._sleep(self.config.rate_limit_backoff)

        # Unreachable: the loop either returns or raises
        raise SMSGatewayError(message="SMS gateway retries exhausted")

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.config.api_key:
            raise SMSAuthError(message="SMS gateway API key not configured")

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                start_time = time.monotonic()
                response = await client.post(SEND_PATH, json=payload, headers=headers)
                elapsed = time.monotonic() - start_time
        except httpx.TimeoutException:
            raise SMSGatewayError(message=f"SMS gateway request timed out after {self.config.timeout}s")
        except httpx.HTTPError as e:
            raise SMSGatewayError(message=f"SMS gateway request failed: {type(e).__name__}: {e}")

        if elapsed > 5.0:
            logger.warning(f"Slow gateway response: {elapsed:.2f}s")

        if response.status_code == 429:
            raise RetryableError(
                message="Gateway rate limiting (status=429)",
                retry_after=self.config.rate_limit_backoff,
            )

        body = self._parse_body(response)

        if response.status_code == 401:
            logger.error("Invalid SMS gateway credentials (401 Unauthorized)")
            raise SMSAuthError(message=body.get("message") or "Invalid SMS gateway credentials")

        if not response.is_success:
            raise SMSGatewayError(
                message=body.get("message") or f"HTTP {response.status_code}",
                details={"status_code": response.status_code, "response": body},
            )

        return body

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text} if response.text else {}
        return body if isinstance(body, dict) else {"data": body}


def get_gateway_client() -> SMSGatewayClient:
    """Get an SMS gateway client configured from settings."""
    return SMSGatewayClient(GatewayConfig.from_settings())
