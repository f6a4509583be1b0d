"""Wire the jobs repository, action queue, agent and runner together."""

from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from system_agent.agent import SystemAgent
from system_agent.database import SessionLocal
from system_agent.hooks import HANDLE_TASK_HOOK
from system_agent.services.action_queue import DatabaseActionQueue
from system_agent.services.jobs import Jobs
from system_agent.tasks.registry import TaskProvider, build_task_registry, builtin_tasks
from system_agent.worker import ActionRunner


@dataclass
class Container:
    """Services shared by the HTTP app and the worker."""

    jobs: Jobs
    action_queue: DatabaseActionQueue
    system_agent: SystemAgent
    runner: ActionRunner


def build_container(
    session_factory: Optional[sessionmaker] = None,
    providers: Optional[Iterable[TaskProvider]] = None,
    **runner_options,
) -> Container:
    """
    Build the service graph.

    Args:
        session_factory: Session factory (defaults to SessionLocal)
        providers: Task providers; built-in tasks only when omitted
        **runner_options: Overrides for ActionRunner tuning

    Returns:
        Container with the runner's handle-task hook registered
    """
    session_factory = session_factory or SessionLocal
    providers = list(providers) if providers is not None else [builtin_tasks]

    jobs = Jobs(session_factory)
    action_queue = DatabaseActionQueue(session_factory)
    system_agent = SystemAgent(jobs, action_queue, build_task_registry(providers))

    runner = ActionRunner(action_queue, **runner_options)
    runner.register_hook(HANDLE_TASK_HOOK, system_agent.handle_task)

    return Container(
        jobs=jobs,
        action_queue=action_queue,
        system_agent=system_agent,
        runner=runner,
    )


def get_container(request: Request) -> Container:
    """FastAPI dependency: the container attached at startup."""
    return request.app.state.container
