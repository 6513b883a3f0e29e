from .dsl import task, declare, group, TaskBuilder, build
from .dag import TaskGraph
from .runner import Orchestrator, load_pipeline, run_tasks
from .model import Task, ExecutionRecord, BuildConfig, Pipeline

__all__ = [
    "task", "declare", "group", "TaskBuilder", "build",
    "TaskGraph", "Orchestrator", "load_pipeline", "run_tasks",
    "Task", "ExecutionRecord", "BuildConfig", "Pipeline",
]
