"""RabbitMQ queue client lifecycle states."""
from enum import Enum


class ClientState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
