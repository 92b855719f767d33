"""Project/task rotation and time tracking."""

from .engine import RotatorEngine
from .overlay import OverlayChannel
from .store import Store, WriteResult

__all__ = ["RotatorEngine", "OverlayChannel", "Store", "WriteResult"]
