"""
Health check alerting: email recent ERROR records
"""

from datetime import timedelta
from typing import List, Optional

from .engine import MODULE_NAME, Level, LogEngine
from .mailer import EmailSender, MessageRejected, send_health_check_email


class AlertDispatcher:
    """
    Monitor job body.

    The lookback window defaults to the monitor interval so consecutive runs
    cover time without gaps or overlaps.
    """

    def __init__(self, engine: LogEngine, email_sender: Optional[EmailSender],
                 recipients: List[str], lookback_minutes: int = 15,
                 environment: str = "development"):
        self.engine = engine
        self.email_sender = email_sender
        self.recipients = recipients
        self.lookback_minutes = lookback_minutes
        self.environment = environment

    def run(self) -> int:
        """
        Check for recent ERROR records and send one alert email listing them

        Returns:
            Number of records reported, 0 when nothing was sent
        """
        method_id = f"{MODULE_NAME} monitor task"

        try:
            end = self.engine.now()
            start = end - timedelta(minutes=self.lookback_minutes)
            rows = self.engine.storage.find_recent_errors(start, end)

            if not rows:
                self.engine.write(Level.DEBUG, {
                    'context': method_id,
                    'message': f"Found no recent {Level.ERROR.value} records to report"
                })
                return 0

            self.engine.write(Level.DEBUG, {
                'context': method_id,
                'message': f"Found {len(rows)} recent {Level.ERROR.value} records to report"
            })

            if self.email_sender is None:
                raise RuntimeError('no email sender configured for health check alerts')

            send_health_check_email(self.email_sender, rows, self.recipients, self.environment)
            return len(rows)

        except MessageRejected as err:
            self.engine.write(Level.ERROR, {
                'context': method_id,
                'message': f"Health check email rejected: {err.message}"
            })
        except Exception as err:
            self.engine.write(Level.ERROR, {
                'context': method_id,
                'message': str(err) or type(err).__name__
            })
        return 0
