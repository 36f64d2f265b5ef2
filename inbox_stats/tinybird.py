import logging
from enum import StrEnum

import httpx
from pydantic import BaseModel, Field, ValidationError

from inbox_stats.config import settings
from inbox_stats.exceptions import AnalyticsError

logger = logging.getLogger(__name__)


class Period(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class SentToRow(BaseModel):
    to: str
    count: int = Field(ge=0)


class TinybirdClient:
    """Reads precomputed aggregates from Tinybird pipe endpoints.

    Each pipe is queried with ``GET /v0/pipes/<name>.json`` and answers with a
    JSON document whose ``data`` array holds the result rows, already ranked.
    """

    MOST_SENT_TO = "most_sent_to"
    DOMAINS_MOST_SENT_TO = "domains_most_sent_to"

    def __init__(
        self,
        host: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._host = (host or settings.tinybird_host).rstrip("/")
        self._token = token if token is not None else settings.tinybird_token
        self._timeout = timeout or settings.tinybird_timeout
        self._transport = transport

    async def query_pipe(self, pipe: str, params: dict) -> list[dict]:
        params = {k: v for k, v in params.items() if v is not None}
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.get(f"{self._host}/v0/pipes/{pipe}.json", params=params, headers=headers)
                r.raise_for_status()
                payload = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AnalyticsError(f"Pipe {pipe} failed: {e}") from e
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise AnalyticsError(f"Pipe {pipe} returned no data array")
        logger.debug("[TinybirdClient] %s returned %d rows", pipe, len(payload["data"]))
        return payload["data"]

    async def get_most_sent_to(
        self,
        owner_email: str,
        period: Period,
        from_date: int | None = None,
        to_date: int | None = None,
    ) -> list[SentToRow]:
        return await self._sent_to_rows(self.MOST_SENT_TO, owner_email, period, from_date, to_date)

    async def get_domains_most_sent_to(
        self,
        owner_email: str,
        period: Period,
        from_date: int | None = None,
        to_date: int | None = None,
    ) -> list[SentToRow]:
        return await self._sent_to_rows(self.DOMAINS_MOST_SENT_TO, owner_email, period, from_date, to_date)

    async def _sent_to_rows(self, pipe, owner_email, period, from_date, to_date) -> list[SentToRow]:
        rows = await self.query_pipe(pipe, {
            "ownerEmail": owner_email,
            "period": Period(period).value,
            "fromDate": from_date,
            "toDate": to_date,
        })
        try:
            return [SentToRow.model_validate(row) for row in rows]
        except ValidationError as e:
            raise AnalyticsError(f"Pipe {pipe} returned malformed rows: {e}") from e
