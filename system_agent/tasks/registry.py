"""Task handler registry built from provider callables."""

import logging
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional

from system_agent.services.action_queue import ActionQueue
from system_agent.services.jobs import Jobs
from system_agent.tasks.base import SystemTask
from system_agent.tasks.image_generation import ImageGenerationTask

logger = logging.getLogger(__name__)

# Builds a handler for one dispatch; task classes qualify directly
TaskFactory = Callable[[Jobs, Optional[ActionQueue]], SystemTask]

# Receives the mapping collected so far and returns it extended
TaskProvider = Callable[[Dict[str, TaskFactory]], Dict[str, TaskFactory]]


def builtin_tasks(tasks: Dict[str, TaskFactory]) -> Dict[str, TaskFactory]:
    """Register the task types shipped with the package."""
    tasks[ImageGenerationTask.task_type] = ImageGenerationTask
    return tasks


def build_task_registry(providers: Iterable[TaskProvider]) -> Mapping[str, TaskFactory]:
    """
    Fold providers into a read-only task_type -> factory mapping.

    Providers run in order; each may add to or override what earlier
    providers registered.

    Args:
        providers: Provider callables

    Returns:
        Read-only mapping, fixed for the orchestrator's lifetime
    """
    tasks: Dict[str, TaskFactory] = {}
    for provider in providers:
        result = provider(dict(tasks))
        if not isinstance(result, dict):
            raise TypeError(f"Task provider {provider!r} returned {type(result).__name__}, expected dict")
        tasks = result

    for task_type, factory in tasks.items():
        if not callable(factory):
            raise TypeError(f"Task factory for '{task_type}' is not callable")

    logger.debug(f"Task registry built with {len(tasks)} handlers: {sorted(tasks)}")
    return MappingProxyType(tasks)
