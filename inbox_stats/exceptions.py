class InboxStatsError(Exception):
    pass


class AuthenticationError(InboxStatsError):
    pass


class GmailAPIError(InboxStatsError):
    pass


class AnalyticsError(InboxStatsError):
    pass


class QueryValidationError(InboxStatsError):
    pass
