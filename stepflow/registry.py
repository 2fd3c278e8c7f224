"""
Workflow registry.

Maps workflow names to validated WorkflowDefinitions. Definitions are
immutable, so readers may use a definition after the lock is released; a
single RLock serializes loads and overwrites.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from stepflow.exceptions import WorkflowNotFoundError

if TYPE_CHECKING:
    from stepflow.dsl.models import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Thread-safe name -> WorkflowDefinition map.

    Usage:
        >>> registry = WorkflowRegistry.get_instance()
        >>> registry.register(definition)
        >>> definition = registry.require("daily_report")
    """

    _instance: WorkflowRegistry | None = None
    _instance_lock = threading.Lock()

    def __init__(self):
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._lock: threading.RLock = threading.RLock()

    @classmethod
    def get_instance(cls) -> WorkflowRegistry:
        """Get the process-wide instance."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def register(self, definition: WorkflowDefinition) -> None:
        """Register a definition under its name. Last load wins."""
        with self._lock:
            if definition.name in self._workflows:
                logger.info(f"Replacing registered workflow: {definition.name}")
            self._workflows[definition.name] = definition

    def get(self, name: str) -> WorkflowDefinition | None:
        with self._lock:
            return self._workflows.get(name)

    def require(self, name: str) -> WorkflowDefinition:
        """Get a definition by name.

        Raises:
            WorkflowNotFoundError: If nothing is registered under ``name``.
        """
        definition = self.get(name)
        if definition is None:
            raise WorkflowNotFoundError(name)
        return definition

    def unregister(self, name: str) -> bool:
        """Remove a definition. Returns False if it was not registered."""
        with self._lock:
            return self._workflows.pop(name, None) is not None

    def list_names(self) -> list[str]:
        """Registered names, sorted."""
        with self._lock:
            return sorted(self._workflows)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._workflows

    def __len__(self) -> int:
        with self._lock:
            return len(self._workflows)

    def clear(self) -> None:
        """Remove every definition (for testing)."""
        with self._lock:
            self._workflows.clear()


def get_workflow_registry() -> WorkflowRegistry:
    """Get the process-wide WorkflowRegistry."""
    return WorkflowRegistry.get_instance()
