"""
Best-effort discovery telemetry.
Recording failures are logged and counted, never propagated to the ranking call.
"""
import logging
from typing import Optional

from discovery.core.circuit_breaker import CircuitBreaker
from discovery.core.telemetry import TELEMETRY_DROPPED
from discovery.models.interfaces import TelemetrySink
from discovery.models.schemas import DiscoveryEvent

logger = logging.getLogger(__name__)


class DiscoveryEventRecorder:
    """Writes ``DiscoveryEvent`` rows to a sink through a circuit breaker."""

    def __init__(
        self,
        sink: TelemetrySink,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._sink = sink
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="discovery_events",
            failure_threshold=5,
            recovery_timeout_sec=30,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def record(self, event: DiscoveryEvent) -> bool:
        """
        Record one event.

        Returns:
            True if the sink accepted the event
        """
        try:
            return await self._circuit_breaker.call(
                func=lambda: self._write(event),
                fallback=lambda: self._dropped(event),
            )
        except Exception as e:
            logger.error(
                f"Discovery event recording failed: {e}",
                extra={"user_id": event.user_id, "content_id": event.content_id},
            )
            TELEMETRY_DROPPED.inc()
            return False

    async def _write(self, event: DiscoveryEvent) -> bool:
        await self._sink.record_discovery_event(event)
        return True

    def _dropped(self, event: DiscoveryEvent) -> bool:
        logger.warning(
            "Discovery event dropped",
            extra={"user_id": event.user_id, "content_id": event.content_id},
        )
        TELEMETRY_DROPPED.inc()
        return False
