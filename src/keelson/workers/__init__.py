"""Background workers."""

from keelson.workers.apiserver import APIServerAccess, APIServerWorker, Task

__all__ = ["APIServerAccess", "APIServerWorker", "Task"]
