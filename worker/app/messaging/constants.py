"""Consumer loop lifecycle states."""
from enum import Enum


class LoopState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
