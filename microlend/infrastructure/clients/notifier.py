"""Event webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Any, Dict, List, Optional
from microlend.config import settings
from microlend.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class EventWebhookClient:
    """Client for forwarding dispatched notifications to an external notification service"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.event_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_events(self, notifications: List[Dict[str, Any]]) -> None:
        """
        Deliver a batch of notifications to the webhook with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx/4xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            notifications: Payloads returned by NotificationDispatcher.dispatch
        """
        if not self.enabled or not notifications:
            return

        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json={"notifications": notifications},
                        )
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
