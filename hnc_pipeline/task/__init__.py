"""Task graph module for hnc-pipeline.

This module provides the dependency ordered, memoized task graph that the
build and release stages are registered in.
"""

from .context import TaskContext
from .graph import Action, RunResult, Task, TaskGraph

__all__ = ["Action", "RunResult", "Task", "TaskContext", "TaskGraph"]
