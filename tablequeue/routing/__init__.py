"""
Routing module.
Maps message types to queue transports.
"""

from tablequeue.routing.senders import SendersLocator

__all__ = ["SendersLocator"]
