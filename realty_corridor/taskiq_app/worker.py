"""Worker entrypoint; importing tasks registers them on the broker."""

from realty_corridor.taskiq_app.broker import broker
from realty_corridor.taskiq_app import tasks as _tasks  # noqa: F401

__all__ = ["broker"]
