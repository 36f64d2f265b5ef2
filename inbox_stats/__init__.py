from inbox_stats.auth import GmailAuth
from inbox_stats.client import GmailClient
from inbox_stats.config import InboxStatsSettings, settings
from inbox_stats.domains import parse_domain
from inbox_stats.exceptions import (
    AnalyticsError,
    AuthenticationError,
    GmailAPIError,
    InboxStatsError,
    QueryValidationError,
)
from inbox_stats.recipients import (
    GmailRecipientSource,
    RankedEntry,
    RecipientSource,
    RecipientStatsQuery,
    RecipientsResponse,
    TinybirdRecipientSource,
    build_recipient_source,
    parse_recipient_stats_query,
)
from inbox_stats.tinybird import Period, TinybirdClient

__all__ = [
    "GmailAuth",
    "GmailClient",
    "InboxStatsSettings",
    "settings",
    "parse_domain",
    "Period",
    "TinybirdClient",
    "RecipientSource",
    "TinybirdRecipientSource",
    "GmailRecipientSource",
    "build_recipient_source",
    "RecipientStatsQuery",
    "RankedEntry",
    "RecipientsResponse",
    "parse_recipient_stats_query",
    "InboxStatsError",
    "AuthenticationError",
    "GmailAPIError",
    "AnalyticsError",
    "QueryValidationError",
]
