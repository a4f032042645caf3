"""Task resolution, graph construction and execution."""

from .execute import ExecutableTask, RunOutput
from .graph import NodeId, TaskGraph, TaskNode
from .resolve import FoundTask, SearchEnvironments, TaskInvocation

__all__ = [
    "ExecutableTask",
    "FoundTask",
    "NodeId",
    "RunOutput",
    "SearchEnvironments",
    "TaskGraph",
    "TaskInvocation",
    "TaskNode",
]
