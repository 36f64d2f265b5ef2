"""Most-contacted recipients and recipient domains of a mailbox owner.

Two interchangeable sources produce the same :class:`RecipientsResponse`:

- :class:`TinybirdRecipientSource` asks the analytics store, which already
  ranks the rows, for both lists at once.
- :class:`GmailRecipientSource` lists recent sent mail through the Gmail API
  and counts recipients locally.
"""
import asyncio
import logging
from collections import Counter
from typing import Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from inbox_stats.auth import GmailAuth
from inbox_stats.client import GmailClient
from inbox_stats.config import settings
from inbox_stats.domains import parse_domain
from inbox_stats.exceptions import AuthenticationError, GmailAPIError, QueryValidationError
from inbox_stats.tinybird import Period, SentToRow, TinybirdClient

logger = logging.getLogger(__name__)


class RecipientStatsQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: Period
    from_date: int | None = Field(default=None, alias="fromDate")
    to_date: int | None = Field(default=None, alias="toDate")

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class RankedEntry(BaseModel):
    name: str
    value: int = Field(ge=0)


class RecipientsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    most_active_recipient_emails: list[RankedEntry] = Field(alias="mostActiveRecipientEmails")
    most_active_recipient_domains: list[RankedEntry] = Field(alias="mostActiveRecipientDomains")


def parse_recipient_stats_query(
    period: str | None,
    from_date: str | None = None,
    to_date: str | None = None,
) -> RecipientStatsQuery:
    try:
        return RecipientStatsQuery.model_validate(
            {"period": period, "fromDate": from_date, "toDate": to_date}
        )
    except ValidationError as e:
        raise QueryValidationError(str(e)) from e


def rank_counts(counts: Counter) -> list[RankedEntry]:
    # sorted() is stable, so equal counts keep first-seen order
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [RankedEntry(name=name, value=count) for name, count in ranked]


def rows_to_entries(rows: list[SentToRow]) -> list[RankedEntry]:
    return [RankedEntry(name=row.to, value=row.count) for row in rows]


def tally_recipients(messages: list[dict]) -> RecipientsResponse:
    """Count parsed messages by exact "To" header and by recipient domain."""
    to_headers = [m["recipients"]["to"] for m in messages if m["recipients"]["to"]]
    by_recipient = Counter(to_headers)
    by_domain = Counter(d for d in map(parse_domain, to_headers) if d)
    return RecipientsResponse(
        most_active_recipient_emails=rank_counts(by_recipient),
        most_active_recipient_domains=rank_counts(by_domain),
    )


class RecipientSource(Protocol):
    async def get_recipients(self, owner_email: str, query: RecipientStatsQuery) -> RecipientsResponse:
        ...


class TinybirdRecipientSource:
    def __init__(self, client: TinybirdClient | None = None):
        self._client = client or TinybirdClient()

    async def get_recipients(self, owner_email: str, query: RecipientStatsQuery) -> RecipientsResponse:
        params = {
            "owner_email": owner_email,
            "period": query.period,
            "from_date": query.from_date,
            "to_date": query.to_date,
        }
        emails, domains = await asyncio.gather(
            self._client.get_most_sent_to(**params),
            self._client.get_domains_most_sent_to(**params),
        )
        logger.info(
            "[TinybirdRecipientSource] %s period=%s: %d recipients, %d domains",
            owner_email, query.period.value, len(emails), len(domains),
        )
        return RecipientsResponse(
            most_active_recipient_emails=rows_to_entries(emails),
            most_active_recipient_domains=rows_to_entries(domains),
        )


def _request_client() -> GmailClient:
    return GmailClient(GmailAuth(interactive=False))


class GmailRecipientSource:
    """Counts recipients of the most recent sent messages.

    A new client is built for every call, so each request reads the current
    token and gets its own HTTP connection. The token's mailbox must belong to
    ``owner_email``. Period bounds are not applied.
    """

    def __init__(self, client_factory: Callable[[], GmailClient] | None = None, limit: int | None = None):
        self._client_factory = client_factory or _request_client
        self._limit = limit or settings.sent_messages_limit

    async def get_recipients(self, owner_email: str, query: RecipientStatsQuery) -> RecipientsResponse:
        logger.info("[GmailRecipientSource] counting last %d sent messages for %s", self._limit, owner_email)
        return await asyncio.to_thread(self.fetch_recipients, owner_email)

    def fetch_recipients(self, owner_email: str) -> RecipientsResponse:
        client = self._client_factory()
        mailbox = client.get_profile_email()
        if mailbox.lower() != owner_email.lower():
            raise AuthenticationError(f"Stored Gmail token belongs to {mailbox or 'an unknown account'}, not {owner_email}")

        message_ids = client.list_sent_messages(max_results=self._limit)
        raw_messages, failed_ids = client.batch_get_messages(message_ids)
        if failed_ids:
            raise GmailAPIError(f"Failed to fetch {len(failed_ids)}/{len(message_ids)} sent messages")
        return tally_recipients([GmailClient.parse_message(m) for m in raw_messages])


def build_recipient_source(source: str | None = None) -> RecipientSource:
    source = source or settings.recipient_source
    if source == "tinybird":
        return TinybirdRecipientSource()
    if source == "gmail":
        return GmailRecipientSource()
    raise ValueError(f"Unknown recipient source: {source}")
