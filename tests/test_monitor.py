"""Tests for the health check monitor job."""

from datetime import timedelta

from shared_logging.mailer import MessageRejected
from tests.helpers import NOW, all_logs, insert_log


class TestMonitor:

    def test_no_recent_errors_sends_nothing(self, logger, storage, email_sender):
        insert_log(storage, level="ERROR", message="old", timestamp=NOW - timedelta(minutes=20))
        insert_log(storage, level="INFO", message="fine", timestamp=NOW - timedelta(minutes=1))

        assert logger.monitor() == 0

        email_sender.send.assert_not_called()

    def test_recent_errors_send_one_email(self, logger, storage, email_sender):
        # Arrange
        insert_log(storage, level="ERROR", context="billing", message="db down",
                   timestamp=NOW - timedelta(minutes=5))
        insert_log(storage, level="ERROR", context="auth", message="token expired",
                   timestamp=NOW - timedelta(minutes=14))
        insert_log(storage, level="ERROR", message=None, sql="SELECT 1",
                   timestamp=NOW - timedelta(minutes=2))
        insert_log(storage, level="ERROR", message="too old", timestamp=NOW - timedelta(minutes=16))

        # Act
        reported = logger.monitor()

        # Assert
        assert reported == 2
        email_sender.send.assert_called_once()
        recipients, subject, html_body = email_sender.send.call_args.args[:3]
        assert recipients == ["ops@example.com"]
        assert subject == "Logging Module Health Check - test"
        assert html_body.count("<li>") == 2
        assert '"message": "db down"' in html_body
        assert '"message": "token expired"' in html_body
        assert '"context": "billing"' in html_body
        assert '"component": "test-component"' in html_body
        assert '"id"' not in html_body
        assert '"timestamp"' not in html_body
        assert "too old" not in html_body

    def test_send_failure_is_logged(self, logger, storage, email_sender):
        insert_log(storage, level="ERROR", message="db down", timestamp=NOW - timedelta(minutes=1))
        email_sender.send.side_effect = MessageRejected("address not verified")

        assert logger.monitor() == 0

        messages = [row["message"] for row in all_logs(storage)]
        assert "Health check email rejected: address not verified" in messages

    def test_query_failure_is_logged(self, logger, storage, email_sender):
        storage.logs.drop(storage.engine)

        assert logger.monitor() == 0

        email_sender.send.assert_not_called()
