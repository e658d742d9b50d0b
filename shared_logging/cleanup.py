"""
Log retention - deletes records older than the configured thresholds
"""

from datetime import timedelta
from typing import NamedTuple, Optional

from .config import get_logger
from .engine import MODULE_NAME, Level, LogEngine

diagnostics = get_logger()


class PurgeResult(NamedTuple):
    logs_deleted: Optional[int]
    protection_logs_deleted: Optional[int]


class PurgeJob:
    """
    Purge job body.

    The log table and the connection protection table are purged
    independently, each with its own retention threshold and count.
    """

    def __init__(self, engine: LogEngine, log_retention_days: int = 5,
                 protection_retention_days: int = 30):
        self.engine = engine
        self.log_retention_days = log_retention_days
        self.protection_retention_days = protection_retention_days

    def purge_logs(self) -> Optional[int]:
        """Delete log records strictly older than now minus the retention period"""
        method_id = f"{MODULE_NAME} purge task"

        try:
            cutoff = self.engine.now() - timedelta(days=self.log_retention_days)
            logs_deleted = self.engine.storage.delete_logs_before(cutoff)

            self.engine.write(Level.INFO, {
                'context': method_id,
                'message': f"Purged {logs_deleted} records from {self.engine.storage.table_name}"
            })
            return logs_deleted
        except Exception as err:
            self.engine.write(Level.ERROR, {
                'context': method_id,
                'message': str(err) or type(err).__name__
            })
            return None

    def purge_connection_protection_logs(self) -> Optional[int]:
        """
        Delete connection protection records past their retention period.

        Not every schema has this table, so failures are ignored.
        """
        method_id = f"{MODULE_NAME} purge task"

        try:
            cutoff = self.engine.now() - timedelta(days=self.protection_retention_days)
            protection_logs_deleted = self.engine.storage.delete_connection_protection_logs_before(cutoff)
        except Exception as err:
            diagnostics.debug(f"{method_id}: skipped connection_protection_logs: {err}")
            return None

        self.engine.write(Level.INFO, {
            'context': method_id,
            'message': f"Purged {protection_logs_deleted} records from connection_protection_logs"
        })
        return protection_logs_deleted

    def run(self) -> PurgeResult:
        return PurgeResult(self.purge_logs(), self.purge_connection_protection_logs())
