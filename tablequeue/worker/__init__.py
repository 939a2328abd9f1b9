"""
Worker module.
Contains the handler registry and the polling consumer.
"""

from tablequeue.worker.handlers import HandlerRegistry, MessageHandler, execute
from tablequeue.worker.main import Worker, run_async

__all__ = [
    "HandlerRegistry",
    "MessageHandler",
    "execute",
    "Worker",
    "run_async",
]
