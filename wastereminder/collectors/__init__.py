"""External event sources for the waste reminder."""

from .calendar_client import (
    CalendarFeedClient,
    CalendarFeedError,
    parse_events,
    parse_start_date,
)
from .mqtt_client import BrokerAddress, MqttError, MqttStateSubscriber, parse_broker_uri

__all__ = [
    "BrokerAddress",
    "CalendarFeedClient",
    "CalendarFeedError",
    "MqttError",
    "MqttStateSubscriber",
    "parse_broker_uri",
    "parse_events",
    "parse_start_date",
]
