"""Event log persistence and registry recovery."""

from nftmarket.persistence.event_log import EventKind, EventLog, EventRecord
from nftmarket.persistence.replay import ReplayResult, rebuild_registry

__all__ = ["EventKind", "EventLog", "EventRecord", "ReplayResult", "rebuild_registry"]
