"""
Screener registry.

Maps screener identifiers to screener classes. A registry is an explicit
object passed to whatever needs it; there is no module-level instance.
"""

from typing import Any

from screener_engine.errors import ConfigurationError, UnknownScreenerError
from screener_engine.screeners.base import BaseScreener
from screener_engine.screeners.builtin import BUILTIN_SCREENERS


class ScreenerRegistry:
    """Factory for screener instances by identifier."""

    def __init__(self) -> None:
        self._screeners: dict[str, type[BaseScreener]] = {}

    @classmethod
    def with_builtins(cls) -> "ScreenerRegistry":
        """Create a registry holding every built-in screener."""
        registry = cls()
        for screener_cls in BUILTIN_SCREENERS.values():
            registry.register(screener_cls)
        return registry

    def register(self, screener_cls: type[BaseScreener], replace: bool = False) -> None:
        """
        Register a screener class under its screener_id.

        Raises:
            ConfigurationError: If the id is taken and replace is False
        """
        screener_id = screener_cls.screener_id
        if screener_id in self._screeners and not replace:
            raise ConfigurationError(
                f"Screener '{screener_id}' is already registered",
                {"screener_id": screener_id},
            )
        self._screeners[screener_id] = screener_cls

    def create(self, screener_id: str, parameters: dict[str, Any] | None = None) -> BaseScreener:
        """
        Create a screener instance by id.

        Args:
            screener_id: Registered identifier (e.g. "dollar_volume")
            parameters: Overrides for the screener's default parameters

        Returns:
            Screener instance

        Raises:
            UnknownScreenerError: If screener_id is not registered
            ConfigurationError: If parameters are invalid
        """
        screener_cls = self.get(screener_id)
        if screener_cls is None:
            available = ", ".join(self.all_ids())
            raise UnknownScreenerError(
                f"Unknown screener '{screener_id}'. Available: {available}",
                {"screener_id": screener_id},
            )
        return screener_cls(parameters)

    def get(self, screener_id: str) -> type[BaseScreener] | None:
        return self._screeners.get(screener_id)

    def is_registered(self, screener_id: str) -> bool:
        return screener_id in self._screeners

    def all_ids(self) -> list[str]:
        """Registered ids in registration order."""
        return list(self._screeners.keys())

    def info(self, screener_id: str) -> dict[str, Any]:
        """Display name, description, default minimum bars and default parameters."""
        screener_cls = self.get(screener_id)
        if screener_cls is None:
            raise UnknownScreenerError(
                f"Unknown screener '{screener_id}'",
                {"screener_id": screener_id},
            )
        return screener_cls.info()

    def all_info(self) -> list[dict[str, Any]]:
        return [self.info(screener_id) for screener_id in self._screeners]

    def __len__(self) -> int:
        return len(self._screeners)
