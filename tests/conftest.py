import os

os.environ.setdefault("DASHBOARD_SESSION_SECRET", "test-secret")
os.environ.setdefault("DASHBOARD_AUTH_ENABLED", "true")

import pytest

from inbox_stats.recipients import RankedEntry, RecipientsResponse


def make_raw_message(message_id: str, to: str, sender: str = "me@example.com") -> dict:
    return {
        "id": message_id,
        "threadId": f"thread_{message_id}",
        "labelIds": ["SENT"],
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "From", "value": sender},
                {"name": "To", "value": to},
                {"name": "Subject", "value": "Hello"},
                {"name": "Date", "value": "Tue, 14 Nov 2023 12:00:00 +0000"},
            ],
        },
    }


@pytest.fixture
def sample_raw_message():
    return make_raw_message("msg_123", "recipient@example.com", sender="sender@example.com")


class FakeRecipientSource:
    def __init__(self, response: RecipientsResponse | None = None, error: Exception | None = None):
        self.response = response or RecipientsResponse(
            most_active_recipient_emails=[RankedEntry(name="x@y.com", value=5)],
            most_active_recipient_domains=[RankedEntry(name="y.com", value=5)],
        )
        self.error = error
        self.calls = []

    async def get_recipients(self, owner_email, query):
        self.calls.append((owner_email, query))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def fake_source():
    return FakeRecipientSource()
