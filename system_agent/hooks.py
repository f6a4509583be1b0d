"""Deferred action hook names shared by the orchestrator and its tasks."""

# Callback the action runner invokes with {"job_id": ...}
HANDLE_TASK_HOOK = "system_agent_handle_task"

# Group tag for every action the system agent enqueues
ACTION_GROUP = "system-agent"
