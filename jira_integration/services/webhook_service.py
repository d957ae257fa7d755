"""Webhook ingestion and background processing for Jira events."""

import asyncio
import hashlib
import hmac
import json
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple
import logging

from jira_integration.integrations.errors import (
    InvalidPayloadError,
    NotFoundError,
    WebhookVerificationError,
)
from jira_integration.models import (
    IssueCreated,
    IssueDeleted,
    IssueUpdated,
    SyncOutcome,
    WebhookEvent,
    parse_event,
)
from jira_integration.models.base import utcnow
from jira_integration.models.webhook import event_name, issue_ref
from jira_integration.repositories import WebhookEventRepository
from jira_integration.services.integration_service import IntegrationService
from jira_integration.services.link_service import LinkService
from jira_integration.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """``sha256=<hex>`` HMAC of a request body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check an ``X-Hub-Signature`` header against the raw body."""
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip())


class WebhookProcessor:
    """Processes stored webhook events on a fixed pool of worker tasks.

    Events wait in a bounded queue. What is being processed right now is
    visible in ``in_flight``, recent failures in ``failures``. Events that
    could not be queued stay unprocessed in storage and are picked up by
    ``recover`` or ``replay``.
    """

    def __init__(
        self,
        events: WebhookEventRepository,
        link_service: LinkService,
        workers: int = 4,
        queue_size: int = 1000,
        failure_history: int = 100,
        recovery_batch: int = 500,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.events = events
        self.link_service = link_service
        self.worker_count = workers
        self.recovery_batch = recovery_batch
        self.rate_limiter = rate_limiter

        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.in_flight: Dict[str, Dict[str, Any]] = {}
        self.failures: Deque[Dict[str, Any]] = deque(maxlen=failure_history)
        self.stats: Dict[str, int] = {
            "queued": 0,
            "dropped": 0,
            "processed": 0,
            "failed": 0,
            "ignored": 0,
            "throttled": 0,
            "recovered": 0,
        }

        self._pending: set = set()
        self._workers: List[asyncio.Task] = []
        self._shutdown = False

    @property
    def running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    async def start(self) -> None:
        """Start the workers and re-queue events left unprocessed."""
        if self.running:
            return
        logger.info(f"Starting webhook processor with {self.worker_count} workers")
        self._shutdown = False
        for i in range(self.worker_count):
            self._workers.append(asyncio.create_task(self._worker(f"worker_{i}")))

        await self.recover()

    async def stop(self) -> None:
        """Stop the workers. Queued events stay unprocessed in storage."""
        logger.info("Stopping webhook processor...")
        self._shutdown = True

        for worker in self._workers:
            if not worker.done():
                worker.cancel()

        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    def submit(self, event: WebhookEvent) -> bool:
        """Queue an event without waiting. False when it was not queued."""
        if event.id in self._pending:
            return True
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.stats["dropped"] += 1
            logger.warning(
                f"Webhook queue full, event {event.id} left for replay",
                extra={"integration_id": event.integration_id, "issue_key": event.issue_key},
            )
            return False

        self._pending.add(event.id)
        self.stats["queued"] += 1
        return True

    async def recover(self) -> int:
        """Queue events that were stored but never processed."""
        events = await self.events.list_unprocessed(limit=self.recovery_batch)
        count = sum(1 for event in events if self.submit(event))
        if count:
            self.stats["recovered"] += count
            logger.info(f"Recovered {count} unprocessed webhook event(s)")
        return count

    async def replay(self, integration_id: str) -> int:
        """Queue the unprocessed events of one integration again."""
        events = await self.events.list_unprocessed(integration_id, limit=self.recovery_batch)
        count = sum(1 for event in events if self.submit(event))
        logger.info(f"Replaying {count} webhook event(s) for integration {integration_id}")
        return count

    async def _worker(self, worker_name: str) -> None:
        logger.debug(f"Webhook {worker_name} started")

        while not self._shutdown:
            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                if await self._throttled(event):
                    continue
                await self.process_event(event, worker_name)
            except asyncio.CancelledError:
                break
            finally:
                self.queue.task_done()

        logger.debug(f"Webhook {worker_name} stopped")

    async def _throttled(self, event: WebhookEvent) -> bool:
        """Requeue the event when its integration is over the rate limit."""
        if self.rate_limiter is None:
            return False

        try:
            allowed = await self.rate_limiter.check_rate_limit(f"jira_webhooks:{event.integration_id}")
        except Exception as e:
            logger.warning(f"Rate limiter unavailable, processing without it: {e}")
            return False
        if allowed:
            return False

        self.stats["throttled"] += 1
        self._pending.discard(event.id)
        await asyncio.sleep(1)
        self.submit(event)
        return True

    async def process_event(self, event: WebhookEvent, worker_name: str = "inline") -> Optional[str]:
        """Dispatch one event and record the outcome. Never raises.

        Returns the error text, or None on success.
        """
        parsed = parse_event(event.payload)
        self.in_flight[event.id] = {
            "event_id": event.id,
            "integration_id": event.integration_id,
            "event_type": event.event_type,
            "issue_key": event.issue_key,
            "worker": worker_name,
            "started_at": utcnow(),
        }

        error: Optional[str] = None
        try:
            if isinstance(parsed, (IssueCreated, IssueUpdated)):
                if parsed.issue.key:
                    outcome = await self.link_service.sync_from_external(parsed.issue.key)
                    if outcome != SyncOutcome.SYNCED:
                        logger.debug(f"Webhook for {parsed.issue.key}: {outcome.value}")
            elif isinstance(parsed, IssueDeleted):
                if parsed.issue.key:
                    await self.link_service.remove_issue_links(event.integration_id, parsed.issue.key)
            else:
                self.stats["ignored"] += 1
                logger.debug(f"Ignoring Jira webhook event {parsed.event_type!r}")
        except Exception as e:
            error = str(e) or e.__class__.__name__
            self._record_failure(event, error)
        finally:
            self.in_flight.pop(event.id, None)
            self._pending.discard(event.id)

        try:
            await self.events.mark_processed(event, utcnow(), error)
        except Exception as e:
            # The row stays unprocessed and is recovered on the next start
            logger.error(f"Could not mark webhook event {event.id} processed: {e}")
            self._record_failure(event, f"mark_processed: {e}")
            return error or str(e)

        if error is None:
            self.stats["processed"] += 1
        return error

    def _record_failure(self, event: WebhookEvent, error: str) -> None:
        self.stats["failed"] += 1
        self.failures.append({
            "event_id": event.id,
            "integration_id": event.integration_id,
            "event_type": event.event_type,
            "issue_key": event.issue_key,
            "error": error,
            "failed_at": utcnow(),
        })
        logger.error(
            f"Failed to process webhook {event.id}: {error}",
            extra={"integration_id": event.integration_id, "issue_key": event.issue_key},
        )

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "workers": len([w for w in self._workers if not w.done()]),
            "queue_size": self.queue.qsize(),
            "in_flight": list(self.in_flight.values()),
            "stats": dict(self.stats),
            "recent_failures": list(self.failures),
        }


class WebhookService:
    """Accepts Jira deliveries: verify, persist, hand off to the processor."""

    def __init__(
        self,
        integration_service: IntegrationService,
        events: WebhookEventRepository,
        processor: WebhookProcessor,
    ):
        self.integration_service = integration_service
        self.events = events
        self.processor = processor

    async def ingest(
        self,
        project_id: str,
        body: bytes,
        signature: Optional[str] = None,
    ) -> Tuple[WebhookEvent, bool]:
        """Store a delivery and queue it. Returns the event and whether it was queued."""
        integration = await self.integration_service.get_integration(project_id)
        if not integration:
            raise NotFoundError("Jira integration not found")

        secret = self.integration_service.resolve_webhook_secret(integration)
        if secret and not verify_signature(secret, body, signature):
            logger.warning(f"Invalid webhook signature for project {project_id}")
            raise WebhookVerificationError("Invalid webhook signature")

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise InvalidPayloadError("Invalid JSON payload") from e
        if not isinstance(payload, dict):
            raise InvalidPayloadError("Webhook payload must be a JSON object")

        issue = issue_ref(payload)
        event = WebhookEvent(
            integration_id=integration.id,
            event_type=event_name(payload) or "unknown",
            issue_key=issue.key,
            issue_id=issue.id,
            payload=payload,
        )
        await self.events.create(event)

        queued = self.processor.submit(event)
        logger.info(
            f"Received Jira webhook {event.event_type} for {event.issue_key or 'no issue'}",
            extra={"integration_id": integration.id, "event_id": event.id},
        )
        return event, queued

    async def list_events(
        self,
        integration_id: Optional[str] = None,
        processed: Optional[bool] = None,
        limit: int = 50,
    ) -> List[WebhookEvent]:
        return await self.events.list(integration_id, processed, limit)

    async def get_event(self, event_id: str) -> WebhookEvent:
        event = await self.events.get(event_id)
        if not event:
            raise NotFoundError("Webhook event not found")
        return event
