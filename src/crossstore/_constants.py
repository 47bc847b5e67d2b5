"""Internal constants shared across the library."""

#: Allow-list marker granting every operation (or, as an origin, every origin).
WILDCARD = "*"

#: Seconds between client polls while waiting for the hub's ready message.
DEFAULT_POLL_INTERVAL = 1.0

DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_TOPIC_PREFIX = "crossstore"

DEFAULT_PORTS: dict[str, int] = {
    "http": 80,
    "ws": 80,
    "https": 443,
    "wss": 443,
}
