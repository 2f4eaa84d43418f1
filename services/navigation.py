"""
Navigation surface abstraction used by the deep link router.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.deep_link import Screen, Stack

logger = logging.getLogger(__name__)


class NavigationSurface(ABC):
    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    def navigate(self, stack: Stack, screen: Screen, params: Optional[Dict[str, Any]] = None) -> None:
        ...

    @abstractmethod
    def reset(self, stack: Stack, screen: Screen, params: Optional[Dict[str, Any]] = None) -> None:
        """Replace the whole navigation history with a single route"""
        ...


class RecordingNavigationSurface(NavigationSurface):
    """
    Headless navigation surface. Records every navigate/reset so the HTTP
    layer (and tests) can inspect what a client would have shown.
    """

    def __init__(self, ready: bool = False):
        self._ready = ready
        self.entries: List[Dict[str, Any]] = []

    def is_ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self._ready = True

    def _record(self, kind: str, stack: Stack, screen: Screen, params: Optional[Dict[str, Any]]) -> None:
        self.entries.append({
            "kind": kind,
            "stack": stack.value,
            "screen": screen.value,
            "params": dict(params or {}),
            "at": datetime.utcnow().isoformat(),
        })
        logger.info(f"Navigation {kind}: {stack.value}/{screen.value}")

    def navigate(self, stack: Stack, screen: Screen, params: Optional[Dict[str, Any]] = None) -> None:
        self._record("navigate", stack, screen, params)

    def reset(self, stack: Stack, screen: Screen, params: Optional[Dict[str, Any]] = None) -> None:
        self._record("reset", stack, screen, params)

    @property
    def current(self) -> Optional[Dict[str, Any]]:
        return self.entries[-1] if self.entries else None

    def reset_count(self) -> int:
        return sum(1 for entry in self.entries if entry["kind"] == "reset")
