"""notasync - Local-first multi-device sync for notes, tasks and folders."""

__version__ = "0.1.0"
