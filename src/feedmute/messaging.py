"""Trigger messages between the settings surface and the feed watcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from tenacity import (  # type: ignore[import-untyped]
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .errors import DeliveryError, UnknownActionError
from .logging import get_logger
from .watcher import FeedWatcher

logger = get_logger(__name__)

Message = Dict[str, Any]
Deliver = Callable[[Message], Awaitable[Optional[Message]]]
StatusReporter = Callable[[str], None]


class MessageRouter:
    """Apply trigger messages to a watcher."""

    def __init__(self, watcher: FeedWatcher) -> None:
        self._watcher = watcher

    async def dispatch(self, message: Message) -> Message:
        """
        Handle one message.

        Supported actions: ``rescan``, ``updateMutedImages`` (with
        ``images``) and ``toggleMuting`` (with ``enabled``).

        Raises:
            UnknownActionError: If the action is not one of the above
        """
        action = message.get("action")
        if action == "rescan":
            logger.info("Received rescan message")
            self._watcher.rescan()
        elif action == "updateMutedImages":
            await self._watcher.update_reference_images(message.get("images") or [])
        elif action == "toggleMuting":
            await self._watcher.set_enabled(bool(message.get("enabled")))
        else:
            raise UnknownActionError(f"Unsupported action: {action!r}")
        return {"status": "success", "message": f"{action} handled"}


@dataclass(frozen=True)
class RelayResult:
    ok: bool
    message: str
    attempts: int


class TriggerRelay:
    """
    Deliver a trigger with bounded retries and user-visible status.

    Delivery raising :class:`DeliveryError` is retried after a fixed wait.
    A delivered message the receiver answers with ``status == "error"`` is
    reported as-is without retrying.
    """

    def __init__(
        self,
        deliver: Deliver,
        report_status: StatusReporter,
        attempts: int = 3,
        wait: float = 0.5,
    ) -> None:
        self._deliver = deliver
        self._report = report_status
        self._attempts = attempts
        self._wait = wait

    async def send(self, message: Message) -> RelayResult:
        action = message.get("action")
        attempt = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._attempts),
            wait=wait_fixed(self._wait),
            retry=retry_if_exception_type(DeliveryError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt_state in retrying:
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    if attempt > 1:
                        self._report(f"Retrying {action} (attempt {attempt}/{self._attempts})...")
                    response = await self._deliver(message)
        except RetryError as exc:
            logger.error(f"Could not deliver {action} after {attempt} attempts: {exc}")
            text = f"Error triggering {action} after multiple attempts. Please reload the extension."
            self._report(text)
            return RelayResult(False, text, attempt)

        if response and response.get("status") == "error":
            text = f"Error: {response.get('message', 'unknown error')}"
            self._report(text)
            return RelayResult(False, text, attempt)

        text = f"{action} triggered. Check the feed."
        self._report(text)
        return RelayResult(True, text, attempt)


def local_delivery(router: MessageRouter) -> Deliver:
    """Deliver straight to an in-process router."""

    async def deliver(message: Message) -> Optional[Message]:
        try:
            return await router.dispatch(message)
        except UnknownActionError as exc:
            return {"status": "error", "message": str(exc)}

    return deliver
