"""
Base class for MediDispatch background agents.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from medidispatch.core.entity_store import EntityStore

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
    """
    Abstract base class for long-lived workers that act on the entity store.

    Provides:
    - Lifecycle management (start/stop with hooks)
    - Store access
    - Logging infrastructure
    """

    def __init__(self, store: EntityStore, name: Optional[str] = None):
        """
        Initialize the base agent.

        Args:
            store: Entity store the agent reads from
            name: Optional custom name
        """
        self.store = store
        self.name = name or self.__class__.__name__
        self._is_running = False

        logger.info(f"Agent initialized: {self.name}")

    @abstractmethod
    async def process(self, input_data: Any = None) -> Any:
        """
        Run one unit of work.
        Must be implemented by subclasses.
        """
        pass

    async def start(self) -> None:
        """Start the agent."""
        if self._is_running:
            logger.warning(f"Agent {self.name} is already running")
            return

        self._is_running = True
        await self.on_start()
        logger.info(f"Agent started: {self.name}")

    async def stop(self) -> None:
        """Stop the agent."""
        if not self._is_running:
            return

        self._is_running = False
        await self.on_stop()
        logger.info(f"Agent stopped: {self.name}")

    async def on_start(self) -> None:
        """Hook called when agent starts. Override in subclass."""
        pass

    async def on_stop(self) -> None:
        """Hook called when agent stops. Override in subclass."""
        pass

    @property
    def is_running(self) -> bool:
        """Check if agent is currently running."""
        return self._is_running

    def __repr__(self) -> str:
        status = "running" if self._is_running else "stopped"
        return f"<{self.__class__.__name__} name={self.name} status={status}>"
