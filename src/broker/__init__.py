"""
Paper brokerage: orders -> trades -> positions, restart-safe (SQLite).
No live capital.
"""

from broker.paper_broker import PaperBroker, PendingWork
from broker.sync_job import SyncJob, SyncResult, SyncState

__all__ = ["PaperBroker", "PendingWork", "SyncJob", "SyncResult", "SyncState"]
