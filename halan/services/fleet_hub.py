"""
In-memory live map of courier positions with scoped fan-out.

The hub keeps only the latest ping per courier. Whether a courier is online is
decided when reading (``now - ping.timestamp < staleness``); stale positions
stay on the map until an explicit unavailable / offline event or the courier's
last connection closing evicts them.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set
from halan.config import settings
from halan.schemas.live import CourierPosition, CourierRemoved, LiveSnapshot, LocationPingEvent
from halan.services.scope_service import ActorContext
from halan.utils.validation import valid_coordinates

logger = logging.getLogger(__name__)

QUEUE_SIZE = 256


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class LivePosition:
    courier_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    heading: Optional[float] = None
    speed: Optional[float] = None


@dataclass(eq=False)
class Subscription:
    actor: ActorContext
    # None = unrestricted (owner)
    scope: Optional[Set[str]]
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=QUEUE_SIZE))

    def can_see(self, courier_id: str) -> bool:
        return self.scope is None or courier_id in self.scope


class FleetLocationHub:
    def __init__(self, stale_after: Optional[timedelta] = None, clock: Callable[[], datetime] = utcnow,
                 max_skew: Optional[timedelta] = None, queue_size: int = QUEUE_SIZE):
        self.stale_after = stale_after or timedelta(minutes=settings.LOCATION_STALE_MINUTES)
        self.max_skew = max_skew if max_skew is not None else timedelta(
            seconds=settings.LOCATION_MAX_CLOCK_SKEW_SECONDS
        )
        self.clock = clock
        self.queue_size = queue_size
        self._lock = asyncio.Lock()
        self._positions: Dict[str, LivePosition] = {}
        self._available: Dict[str, bool] = {}
        self._connections: Dict[str, int] = {}
        self._subscriptions: List[Subscription] = []

    # ================== READS ==================

    def is_online(self, position: LivePosition, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return now - position.timestamp < self.stale_after

    def _to_event(self, position: LivePosition, now: datetime) -> CourierPosition:
        return CourierPosition(
            courier_id=position.courier_id,
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=position.timestamp,
            heading=position.heading,
            speed=position.speed,
            is_online=self.is_online(position, now),
        )

    async def snapshot(self, scope: Optional[Set[str]] = None) -> LiveSnapshot:
        """Every position ``scope`` may see, stale ones included and marked offline"""
        now = self.clock()
        async with self._lock:
            couriers = [
                self._to_event(p, now)
                for courier_id, p in sorted(self._positions.items())
                if scope is None or courier_id in scope
            ]
        return LiveSnapshot(couriers=couriers)

    def position_of(self, courier_id: str) -> Optional[LivePosition]:
        return self._positions.get(courier_id)

    # ================== SUBSCRIBERS ==================

    async def subscribe(self, actor: ActorContext, scope: Optional[Set[str]]) -> Subscription:
        subscription = Subscription(
            actor=actor,
            scope=set(scope) if scope is not None else None,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        async with self._lock:
            self._subscriptions.append(subscription)
        logger.debug(f"{actor.role.value} {actor.id} subscribed to the live map")
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        async with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    async def refresh_scopes(self, resolver: Callable[[ActorContext], Optional[Set[str]]]) -> None:
        """
        Recompute every subscriber's scope after assignments or availability
        changed. Couriers that fell out of a scope are removed from that
        subscriber's view.
        """
        async with self._lock:
            for subscription in self._subscriptions:
                previous = subscription.scope
                subscription.scope = resolver(subscription.actor)
                if previous is None or subscription.scope is None:
                    continue
                for courier_id in sorted(previous - subscription.scope):
                    if courier_id in self._positions:
                        self._push(subscription, CourierRemoved(courier_id=courier_id, reason="out_of_scope"))

    def _push(self, subscription: Subscription, event) -> None:
        queue = subscription.queue
        payload = event.model_dump(mode="json")
        if not queue.full():
            queue.put_nowait(payload)
            return
        if not isinstance(event, CourierRemoved):
            logger.debug(f"Live queue full for {subscription.actor.id}, dropping {event.type}")
            return

        # A removal must reach the viewer; discard the oldest queued position instead
        pending = []
        while not queue.empty():
            pending.append(queue.get_nowait())
        for index, queued in enumerate(pending):
            if queued["type"] == "courier_position":
                del pending[index]
                break
        else:
            pending.pop(0)
        for queued in pending:
            queue.put_nowait(queued)
        queue.put_nowait(payload)
        logger.debug(f"Live queue full for {subscription.actor.id}, made room for {event.type}")

    def _fan_out(self, courier_id: str, event) -> int:
        delivered = 0
        for subscription in self._subscriptions:
            if subscription.can_see(courier_id):
                self._push(subscription, event)
                delivered += 1
        return delivered

    # ================== COURIER EVENTS ==================

    async def prime_availability(self, availability: Dict[str, bool]) -> None:
        async with self._lock:
            self._available.update(availability)

    async def ingest_ping(self, ping: LocationPingEvent) -> bool:
        """
        Store and fan out one ping. Returns False when the ping was dropped:
        bad coordinates, dated in the future, courier not available, or older
        than what we hold.
        """
        courier_id = ping.courier_id
        if not courier_id or not valid_coordinates(ping.latitude, ping.longitude):
            logger.debug(f"Dropping ping without valid coordinates from {courier_id}")
            return False

        timestamp = as_utc(ping.timestamp)
        if timestamp - self.clock() > self.max_skew:
            logger.debug(f"Dropping future-dated ping from {courier_id}")
            return False
        async with self._lock:
            if not self._available.get(courier_id, False):
                logger.debug(f"Dropping ping from unavailable courier {courier_id}")
                return False
            current = self._positions.get(courier_id)
            # The ping's own timestamp decides which position is latest
            if current is not None and timestamp <= current.timestamp:
                logger.debug(f"Dropping out-of-order ping from {courier_id}")
                return False
            position = LivePosition(
                courier_id=courier_id,
                latitude=float(ping.latitude),
                longitude=float(ping.longitude),
                timestamp=timestamp,
                heading=ping.heading,
                speed=ping.speed,
            )
            self._positions[courier_id] = position
            self._fan_out(courier_id, self._to_event(position, self.clock()))
        return True

    def _evict(self, courier_id: str, reason: str) -> bool:
        removed = self._positions.pop(courier_id, None) is not None
        self._fan_out(courier_id, CourierRemoved(courier_id=courier_id, reason=reason))
        return removed

    async def availability_changed(self, courier_id: str, is_available: bool) -> None:
        async with self._lock:
            self._available[courier_id] = is_available
            if not is_available:
                self._evict(courier_id, "unavailable")
        logger.info(f"Live map: courier {courier_id} availability -> {is_available}")

    async def courier_went_offline(self, courier_id: str) -> None:
        """Evict at once, regardless of how fresh the last ping is"""
        async with self._lock:
            self._evict(courier_id, "offline")
        logger.info(f"Live map: courier {courier_id} went offline")

    async def courier_connected(self, courier_id: str, is_available: Optional[bool] = None) -> int:
        async with self._lock:
            if is_available is not None:
                self._available[courier_id] = is_available
            self._connections[courier_id] = self._connections.get(courier_id, 0) + 1
            return self._connections[courier_id]

    async def courier_disconnected(self, courier_id: str) -> int:
        """Evict only once the courier's last open connection is gone"""
        async with self._lock:
            remaining = max(self._connections.get(courier_id, 0) - 1, 0)
            if remaining:
                self._connections[courier_id] = remaining
            else:
                self._connections.pop(courier_id, None)
                self._evict(courier_id, "disconnected")
        return remaining


fleet_hub = FleetLocationHub()


def get_fleet_hub() -> FleetLocationHub:
    return fleet_hub
