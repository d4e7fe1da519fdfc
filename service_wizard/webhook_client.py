"""
Webhook dispatcher for Service Wizard Bot

Posts completed wizard records to the automation webhook with bounded
retry and linear backoff.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from service_wizard.models import WebhookPayload

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """
    Thin async wrapper around the automation webhook.

    ``send`` never raises: every failure is logged and reported as False.
    Each call has its own retry budget; nothing is shared between calls
    except the HTTP connection pool and the counters behind get_stats().
    """

    def __init__(
        self,
        base_url: Optional[str],
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self.base_url = base_url.rstrip("/") if base_url else None
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.timeout = httpx.Timeout(timeout_seconds)
        self._sleep = sleep

        if client is None:
            limits = httpx.Limits(max_connections=20, max_keepalive_connections=10)
            client = httpx.AsyncClient(timeout=self.timeout, limits=limits)
        self._client = client

        self._stats = {
            "total_deliveries": 0,
            "total_failures": 0,
            "total_skipped": 0,
            "last_status": "idle",
            "last_error": None,
        }

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def aclose(self):
        await self._client.aclose()

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)

    def backoff_for(self, attempt: int) -> float:
        """Delay before the retry that follows a failed ``attempt`` (1-based)"""
        return self.retry_delay * attempt

    async def send(self, route: str, payload: WebhookPayload) -> bool:
        """
        Deliver a completed record to ``{base_url}{route}``.

        Args:
            route: Wizard-specific webhook route (e.g. /webhook/add-service/dns)
            payload: Record to POST as JSON

        Returns:
            True on the first successful attempt, False when delivery is not
            configured or every attempt failed
        """
        if not self.configured:
            self._stats["total_skipped"] += 1
            self._stats["last_status"] = "skipped"
            logger.warning("No INCOMING_WEBHOOK_URL configured, skipping webhook call")
            return False

        url = f"{self.base_url}{route}"
        body = payload.model_dump(exclude_none=True)
        logger.info(f"Triggering webhook route: {route} for service type: {payload.service_type}")
        logger.debug(f"Webhook URL: {url}")
        logger.debug(f"Webhook payload: {json.dumps(body, default=str)}")

        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.debug(f"Sending webhook (attempt {attempt}/{self.max_attempts}) to {url}")
                response = await self._client.post(url, json=body, timeout=self.timeout)
                response.raise_for_status()

                self._stats["total_deliveries"] += 1
                self._stats["last_status"] = "success"
                self._stats["last_error"] = None
                logger.info(
                    f"Webhook route {route} triggered successfully for service type: {payload.service_type}"
                )
                return True

            except httpx.HTTPStatusError as http_err:
                self._stats["last_error"] = f"HTTP {http_err.response.status_code}"
                logger.error(
                    "Error sending webhook (attempt %s/%s) | status=%s | detail=%s",
                    attempt,
                    self.max_attempts,
                    http_err.response.status_code,
                    http_err.response.text[:200],
                )
            except httpx.HTTPError as exc:
                self._stats["last_error"] = str(exc) or type(exc).__name__
                logger.error(f"Error sending webhook (attempt {attempt}/{self.max_attempts}): {exc!r}")
            except Exception as exc:
                self._stats["last_error"] = str(exc)
                logger.exception(f"Unexpected webhook failure (attempt {attempt}/{self.max_attempts}): {exc}")

            if attempt < self.max_attempts:
                await self._sleep(self.backoff_for(attempt))

        self._stats["total_failures"] += 1
        self._stats["last_status"] = "error"
        logger.error(f"Failed to send webhook to {route} after {self.max_attempts} attempts")
        return False
