"""
Append-only audit log of coordination actions.
"""

from classdesk.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
