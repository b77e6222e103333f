"""Resilient Telegram Client - Bot API wrapper with retry, backoff, and error mapping.

Invariants:
    - Rate limits (429): retry after the server-provided retry_after, else exponential backoff
    - Transient errors (5xx, connection, timeout): max `max_retries` retries with backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - Every failure surfaces as ExternalDeliveryError (core/errors.py), including
      unusable input (non-numeric topic id) and a result body without a message handle
    - Editing a message to identical content is a success, not an error

Design Decisions:
    - One client implements both AnnouncementPublisher and AdminNotifier protocols
    - httpx.AsyncClient with injectable transport: tests use httpx.MockTransport
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
    - Event cards carry an inline JOIN / +1 / LEAVE keyboard; callback data is
      "<ACTION>:<instance_id>"
"""

import asyncio
import logging
import random

import httpx

from rollcall.core.domain_types import ActorId, InstanceId, MessageHandle, ParticipationAction
from rollcall.core.errors import ErrorContext, ExternalDeliveryError

logger = logging.getLogger(__name__)

_NOT_MODIFIED = "message is not modified"


def vote_keyboard(instance_id: InstanceId) -> dict:
    """Inline keyboard attached to every event card."""
    return {
        "inline_keyboard": [[
            {"text": "✅ JOIN", "callback_data": f"{ParticipationAction.JOIN.value}:{instance_id}"},
            {"text": "➕ +1", "callback_data": f"{ParticipationAction.PLUS_ONE.value}:{instance_id}"},
            {"text": "❌ LEAVE", "callback_data": f"{ParticipationAction.LEAVE.value}:{instance_id}"},
        ]],
    }


class TelegramClient:
    """Posts event cards, edits them, and direct-messages admins."""

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = httpx.AsyncClient(
            base_url=f"{api_base.rstrip('/')}/bot{bot_token}/",
            timeout=timeout_seconds,
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def aclose(self) -> None:
        await self.client.aclose()

    # ─── Protocol surface ──────────────────────────────────────

    async def publish(
        self, chat_id: str, topic_id: str | None, text: str, instance_id: InstanceId,
    ) -> MessageHandle:
        """sendMessage to the group; returns the handle for later edits."""
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "reply_markup": vote_keyboard(instance_id),
        }
        context = ErrorContext(instance_id=str(instance_id))
        if topic_id:
            try:
                payload["message_thread_id"] = int(topic_id)
            except ValueError as e:
                raise ExternalDeliveryError(
                    f"topic id {topic_id!r} is not numeric", "sendMessage", context=context,
                ) from e
        result = await self._call("sendMessage", payload, context)
        try:
            return MessageHandle(str(result["chat"]["id"]), int(result["message_id"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalDeliveryError(
                f"unexpected sendMessage result: {result!r}", "sendMessage", context=context,
            ) from e

    async def edit(
        self, handle: MessageHandle, text: str, instance_id: InstanceId,
    ) -> None:
        """editMessageText on an existing card."""
        await self._call(
            "editMessageText",
            {
                "chat_id": handle.chat_id,
                "message_id": handle.message_id,
                "text": text,
                "parse_mode": "Markdown",
                "reply_markup": vote_keyboard(instance_id),
            },
            ErrorContext(instance_id=str(instance_id)),
        )

    async def notify(self, recipient_id: ActorId, text: str) -> None:
        """Direct message to one admin."""
        await self._call(
            "sendMessage",
            {"chat_id": recipient_id, "text": text, "parse_mode": "Markdown"},
            ErrorContext(actor_id=str(recipient_id)),
        )

    # ─── Transport with retry ──────────────────────────────────

    async def _call(self, method: str, payload: dict, context: ErrorContext) -> dict:
        """POST a Bot API method, retrying transient failures."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post(method, json=payload)
            except httpx.TimeoutException as e:
                await self._handle_transient_error(method, e, attempt, context)
                continue
            except httpx.TransportError as e:
                await self._handle_transient_error(method, e, attempt, context)
                continue

            body = _json_or_empty(response)
            if response.status_code == 429:
                await self._handle_rate_limit(method, body, attempt, context)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    method, f"HTTP {response.status_code}", attempt, context,
                )
                continue
            if body.get("ok"):
                logger.debug(f"Telegram {method} ok", extra={"attempt": attempt + 1, "method": method})
                return body.get("result") or {}

            description = body.get("description") or f"HTTP {response.status_code}"
            if _NOT_MODIFIED in description:
                return {}
            raise ExternalDeliveryError(description, method, context=context)

        raise ExternalDeliveryError("retries exhausted", method, context=context)

    async def _handle_rate_limit(
        self, method: str, body: dict, attempt: int, context: ErrorContext,
    ) -> None:
        """Handle 429 with retry or raise."""
        retry_after = (body.get("parameters") or {}).get("retry_after")
        retry_after_ms = int(retry_after) * 1000 if retry_after is not None else None
        if attempt >= self.max_retries:
            raise ExternalDeliveryError(
                "Rate limit exceeded after retries", method,
                retry_after_ms=retry_after_ms, context=context,
            )
        delay = retry_after_ms if retry_after_ms is not None else self._backoff(attempt)
        logger.warning(
            f"Telegram rate limit on {method}, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, method: str, error: object, attempt: int, context: ErrorContext,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise ExternalDeliveryError(
                f"Transient failure after {self.max_retries} retries: {error}",
                method, context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Transient Telegram error on {method}, retry after {delay}ms: {error}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
