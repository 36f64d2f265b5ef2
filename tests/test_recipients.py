import asyncio
from collections import Counter
from unittest.mock import MagicMock

import pytest

from conftest import make_raw_message
from inbox_stats.exceptions import AnalyticsError, AuthenticationError, GmailAPIError, QueryValidationError
from inbox_stats.recipients import (
    GmailRecipientSource,
    RecipientStatsQuery,
    TinybirdRecipientSource,
    build_recipient_source,
    parse_recipient_stats_query,
    rank_counts,
    tally_recipients,
)
from inbox_stats.tinybird import Period, SentToRow


# --- Query validation ---

@pytest.mark.parametrize("period", ["day", "week", "month", "year"])
def test_valid_periods_pass_unchanged(period):
    query = parse_recipient_stats_query(period)
    assert query.period == period
    assert query.from_date is None
    assert query.to_date is None


def test_unknown_period_rejected():
    with pytest.raises(QueryValidationError):
        parse_recipient_stats_query("bogus")


def test_missing_period_rejected():
    # the "week" default belongs to the caller
    with pytest.raises(QueryValidationError):
        parse_recipient_stats_query(None)


def test_dates_coerced_to_int():
    query = parse_recipient_stats_query("week", "1700000000", "1700100000")
    assert query.from_date == 1700000000
    assert query.to_date == 1700100000


def test_blank_dates_are_none():
    query = parse_recipient_stats_query("month", "", None)
    assert query.from_date is None
    assert query.to_date is None


def test_non_numeric_date_rejected():
    with pytest.raises(QueryValidationError):
        parse_recipient_stats_query("week", "yesterday")


# --- Ranking ---

def test_rank_counts_descending_with_stable_ties():
    ranked = rank_counts(Counter(["b", "a", "c", "a", "c", "d"]))
    assert [(e.name, e.value) for e in ranked] == [("a", 2), ("c", 2), ("b", 1), ("d", 1)]


def test_tally_recipients_counts_addresses_and_domains():
    messages = [
        {"recipients": {"to": "a@x.com"}},
        {"recipients": {"to": "a@x.com"}},
        {"recipients": {"to": "b@x.com"}},
    ]
    result = tally_recipients(messages)
    dumped = result.model_dump(by_alias=True)
    assert dumped["mostActiveRecipientEmails"] == [
        {"name": "a@x.com", "value": 2},
        {"name": "b@x.com", "value": 1},
    ]
    assert dumped["mostActiveRecipientDomains"] == [{"name": "x.com", "value": 3}]


def test_tally_recipients_skips_empty_to_header():
    result = tally_recipients([{"recipients": {"to": ""}}, {"recipients": {"to": "a@x.com"}}])
    assert [e.name for e in result.most_active_recipient_emails] == ["a@x.com"]


# --- Tinybird source ---

class FakeTinybird:
    def __init__(self, emails=None, domains=None, domains_error=None):
        self.emails = emails or []
        self.domains = domains or []
        self.domains_error = domains_error
        self.calls = []

    async def get_most_sent_to(self, **params):
        self.calls.append(("most_sent_to", params))
        return self.emails

    async def get_domains_most_sent_to(self, **params):
        self.calls.append(("domains_most_sent_to", params))
        if self.domains_error:
            raise self.domains_error
        return self.domains


def test_tinybird_source_keeps_store_order():
    tinybird = FakeTinybird(
        emails=[SentToRow(to="x@y.com", count=5), SentToRow(to="z@y.com", count=2)],
        domains=[SentToRow(to="y.com", count=7)],
    )
    query = RecipientStatsQuery(period=Period.WEEK)
    result = asyncio.run(TinybirdRecipientSource(tinybird).get_recipients("a@b.com", query))

    assert result.model_dump(by_alias=True) == {
        "mostActiveRecipientEmails": [{"name": "x@y.com", "value": 5}, {"name": "z@y.com", "value": 2}],
        "mostActiveRecipientDomains": [{"name": "y.com", "value": 7}],
    }


def test_tinybird_source_does_not_resort():
    tinybird = FakeTinybird(emails=[SentToRow(to="low@y.com", count=1), SentToRow(to="high@y.com", count=9)])
    query = RecipientStatsQuery(period=Period.DAY)
    result = asyncio.run(TinybirdRecipientSource(tinybird).get_recipients("a@b.com", query))
    assert [e.name for e in result.most_active_recipient_emails] == ["low@y.com", "high@y.com"]


def test_tinybird_source_passes_same_scope_to_both_queries():
    tinybird = FakeTinybird()
    query = parse_recipient_stats_query("month", "1700000000", "1700100000")
    asyncio.run(TinybirdRecipientSource(tinybird).get_recipients("a@b.com", query))

    expected = {"owner_email": "a@b.com", "period": Period.MONTH, "from_date": 1700000000, "to_date": 1700100000}
    assert sorted(name for name, _ in tinybird.calls) == ["domains_most_sent_to", "most_sent_to"]
    assert all(params == expected for _, params in tinybird.calls)


def test_tinybird_source_fails_when_one_query_fails():
    tinybird = FakeTinybird(
        emails=[SentToRow(to="x@y.com", count=5)],
        domains_error=AnalyticsError("boom"),
    )
    query = RecipientStatsQuery(period=Period.WEEK)
    with pytest.raises(AnalyticsError):
        asyncio.run(TinybirdRecipientSource(tinybird).get_recipients("a@b.com", query))


def test_tinybird_source_runs_queries_concurrently():
    started = []

    class SlowTinybird:
        async def _wait(self, name):
            started.append(name)
            # both calls must be in flight before either returns
            while len(started) < 2:
                await asyncio.sleep(0)
            return []

        async def get_most_sent_to(self, **params):
            return await self._wait("emails")

        async def get_domains_most_sent_to(self, **params):
            return await self._wait("domains")

    query = RecipientStatsQuery(period=Period.WEEK)

    async def run():
        return await asyncio.wait_for(TinybirdRecipientSource(SlowTinybird()).get_recipients("a@b.com", query), 1)

    result = asyncio.run(run())
    assert result.most_active_recipient_emails == []
    assert set(started) == {"emails", "domains"}


# --- Gmail source ---

def _gmail_client(raw_messages, failed=None, mailbox="me@example.com"):
    client = MagicMock()
    client.get_profile_email.return_value = mailbox
    client.list_sent_messages.return_value = [m["id"] for m in raw_messages]
    client.batch_get_messages.return_value = (raw_messages, failed or [])
    return client


def test_gmail_source_ranks_sent_recipients():
    raw = [
        make_raw_message("1", "a@x.com"),
        make_raw_message("2", "a@x.com"),
        make_raw_message("3", "b@x.com"),
    ]
    client = _gmail_client(raw)
    source = GmailRecipientSource(lambda: client, limit=50)
    result = asyncio.run(source.get_recipients("me@example.com", RecipientStatsQuery(period=Period.WEEK)))

    client.list_sent_messages.assert_called_once_with(max_results=50)
    client.batch_get_messages.assert_called_once_with(["1", "2", "3"])
    assert result.model_dump(by_alias=True)["mostActiveRecipientEmails"] == [
        {"name": "a@x.com", "value": 2},
        {"name": "b@x.com", "value": 1},
    ]


def test_gmail_source_fails_on_any_failed_message():
    raw = [make_raw_message("1", "a@x.com")]
    source = GmailRecipientSource(lambda: _gmail_client(raw, failed=["2"]), limit=50)
    with pytest.raises(GmailAPIError):
        source.fetch_recipients("me@example.com")


def test_gmail_source_builds_client_per_call():
    clients = []

    def factory():
        clients.append(_gmail_client([make_raw_message("1", "a@x.com")]))
        return clients[-1]

    source = GmailRecipientSource(factory, limit=50)
    source.fetch_recipients("me@example.com")
    source.fetch_recipients("me@example.com")

    assert len(clients) == 2
    assert clients[0] is not clients[1]


def test_gmail_source_rejects_other_mailbox():
    client = _gmail_client([make_raw_message("1", "a@x.com")], mailbox="intruder@example.com")
    source = GmailRecipientSource(lambda: client, limit=50)

    with pytest.raises(AuthenticationError):
        source.fetch_recipients("me@example.com")
    client.list_sent_messages.assert_not_called()


def test_gmail_source_owner_match_ignores_case():
    client = _gmail_client([make_raw_message("1", "a@x.com")], mailbox="Me@Example.com")
    source = GmailRecipientSource(lambda: client, limit=50)
    assert source.fetch_recipients("me@example.com").most_active_recipient_emails[0].name == "a@x.com"


# --- Selection ---

def test_build_recipient_source():
    assert isinstance(build_recipient_source("tinybird"), TinybirdRecipientSource)
    assert isinstance(build_recipient_source("gmail"), GmailRecipientSource)
    with pytest.raises(ValueError):
        build_recipient_source("imap")
