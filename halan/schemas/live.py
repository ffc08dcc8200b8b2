"""
Live channel events. Every event carries its ``type`` and a schema ``version``
and is validated here before it reaches the location hub.
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter

LIVE_SCHEMA_VERSION = 1


class LiveEvent(BaseModel):
    version: Literal[1] = LIVE_SCHEMA_VERSION


# ================== INBOUND ==================

class LocationPingEvent(LiveEvent):
    type: Literal["location_ping"] = "location_ping"
    # Filled from the connection for couriers; a courier cannot ping for someone else
    courier_id: Optional[str] = None
    # Bad coordinates are dropped by the hub, not rejected here
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: datetime
    heading: Optional[float] = None
    speed: Optional[float] = None


class AvailabilityChangedEvent(LiveEvent):
    type: Literal["availability_changed"] = "availability_changed"
    courier_id: Optional[str] = None
    is_available: bool


class CourierWentOfflineEvent(LiveEvent):
    type: Literal["courier_went_offline"] = "courier_went_offline"
    courier_id: Optional[str] = None


class SubscribeAsManagerEvent(LiveEvent):
    type: Literal["subscribe_as_manager"] = "subscribe_as_manager"


InboundEvent = Annotated[
    Union[LocationPingEvent, AvailabilityChangedEvent, CourierWentOfflineEvent, SubscribeAsManagerEvent],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundEvent)


def parse_inbound(data) -> Union[LocationPingEvent, AvailabilityChangedEvent,
                                  CourierWentOfflineEvent, SubscribeAsManagerEvent]:
    """Raises ``pydantic.ValidationError`` for unknown or malformed events"""
    return _inbound.validate_python(data)


# ================== OUTBOUND ==================

class CourierPosition(LiveEvent):
    type: Literal["courier_position"] = "courier_position"
    courier_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    heading: Optional[float] = None
    speed: Optional[float] = None
    is_online: bool


class CourierRemoved(LiveEvent):
    type: Literal["courier_removed"] = "courier_removed"
    courier_id: str
    reason: Literal["unavailable", "offline", "disconnected", "out_of_scope"]


class LiveSnapshot(LiveEvent):
    type: Literal["snapshot"] = "snapshot"
    couriers: List[CourierPosition]


class LiveError(LiveEvent):
    type: Literal["error"] = "error"
    message: str
