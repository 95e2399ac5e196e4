"""MQTT subscription feeding raw waste states into the reminder."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from wastereminder.config import MqttConfig

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {
    "mqtt": 1883,
    "tcp": 1883,
    "mqtts": 8883,
    "ssl": 8883,
    "ws": 80,
    "wss": 443,
}
_TLS_SCHEMES = frozenset({"mqtts", "ssl", "wss"})
_WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})


class MqttError(RuntimeError):
    """Raised when the broker settings cannot be used to build a client."""


@dataclass(slots=True, frozen=True)
class BrokerAddress:
    """Connection target derived from a broker URI."""

    host: str
    port: int
    transport: str = "tcp"
    use_tls: bool = False
    path: str = ""


def parse_broker_uri(uri: str) -> BrokerAddress:
    """Split ``mqtt://host:port`` style URIs into a :class:`BrokerAddress`.

    A bare ``host`` or ``host:port`` is treated as plain ``mqtt``.
    """

    if "://" not in uri:
        uri = f"mqtt://{uri}"
    parts = urlsplit(uri)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise MqttError(f"unsupported broker scheme: {parts.scheme!r}")
    if not parts.hostname:
        raise MqttError(f"broker URI has no host: {uri!r}")
    try:
        port = parts.port or _DEFAULT_PORTS[scheme]
    except ValueError as exc:
        raise MqttError(f"invalid broker port in {uri!r}") from exc
    return BrokerAddress(
        host=parts.hostname,
        port=port,
        transport="websockets" if scheme in _WEBSOCKET_SCHEMES else "tcp",
        use_tls=scheme in _TLS_SCHEMES,
        path=(parts.path or "/mqtt") if scheme in _WEBSOCKET_SCHEMES else "",
    )


def _default_client_factory(client_id: str, transport: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
        transport=transport,
    )


class MqttStateSubscriber:
    """Subscribe to the state topic and forward its events.

    paho runs its network loop on a background thread, so the callbacks given
    here are invoked from that thread.  Reconnects are left to paho; this class
    only reports what happened.
    """

    def __init__(
        self,
        config: MqttConfig,
        on_connected: Callable[[], None],
        on_message: Callable[[str, str], None],
        on_error: Callable[[str], None],
        client_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self._config = config
        self._on_connected = on_connected
        self._on_message = on_message
        self._on_error = on_error
        self._client_factory = client_factory or _default_client_factory
        self._client: Optional[Any] = None

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Start connecting in the background, replacing any existing client."""

        if self._client is not None:
            self.close()

        try:
            address = parse_broker_uri(self._config.broker)
        except MqttError as exc:
            logger.error("MQTT Connection failed: %s", exc)
            self._on_error(str(exc))
            return

        client = self._client_factory(self._config.client_id or "MMM-WasteReminder", address.transport)
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password or None)
        if address.use_tls:
            client.tls_set()
        if address.transport == "websockets":
            client.ws_set_options(path=address.path)
        client.reconnect_delay_set(min_delay=1, max_delay=120)

        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_subscribe = self._handle_subscribe
        client.on_message = self._handle_message
        client.on_disconnect = self._handle_disconnect

        logger.info("Connecting to MQTT broker: %s", self._config.broker)
        try:
            client.connect_async(address.host, address.port, keepalive=self._config.keepalive)
            client.loop_start()
        except (OSError, ValueError) as exc:
            logger.error("MQTT Connection failed: %s", exc)
            self._on_error(str(exc))
            return
        self._client = client

    def close(self) -> None:
        """Stop the network loop and disconnect from the broker."""

        client, self._client = self._client, None
        if client is None:
            return
        client.disconnect()
        client.loop_stop()

    # ------------------------------------------------------------------
    # paho callbacks
    def _handle_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connection refused: %s", reason_code)
            self._on_error(f"connection refused: {reason_code}")
            return
        logger.info("MQTT Connected")
        self._on_connected()
        result, _mid = client.subscribe(self._config.topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            message = mqtt.error_string(result)
            logger.error("MQTT Subscribe error: %s", message)
            self._on_error(message)

    def _handle_connect_fail(self, client, userdata) -> None:
        logger.error("MQTT Connection failed, retrying")
        self._on_error("connection to broker failed")

    def _handle_subscribe(self, client, userdata, mid, reason_code_list, properties) -> None:
        failures = [code for code in reason_code_list if code.is_failure]
        if failures:
            logger.error("MQTT Subscribe error: %s", failures[0])
            self._on_error(f"subscribe failed: {failures[0]}")
            return
        logger.info("Subscribed to: %s", self._config.topic)

    def _handle_message(self, client, userdata, message) -> None:
        payload = message.payload.decode("utf-8", errors="replace").strip()
        logger.debug("MQTT message received: %s = %s", message.topic, payload)
        self._on_message(message.topic, payload)

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.warning("MQTT connection lost (%s), reconnecting...", reason_code)
        else:
            logger.info("MQTT Connection closed")
