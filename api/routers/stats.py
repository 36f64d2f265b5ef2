import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import Session, get_auth_session, get_recipient_source
from inbox_stats.exceptions import InboxStatsError, QueryValidationError
from inbox_stats.recipients import RecipientSource, parse_recipient_stats_query

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/recipients")
async def get_recipients(
    period: str | None = None,
    from_date: str | None = Query(None, alias="fromDate"),
    to_date: str | None = Query(None, alias="toDate"),
    session: Session | None = Depends(get_auth_session),
    source: RecipientSource = Depends(get_recipient_source),
):
    """Most frequent recipient addresses and domains of the signed-in user."""
    # Existing clients expect a 200 here, not a 401
    if not session:
        return {"error": "Not authenticated"}

    try:
        query = parse_recipient_stats_query(period or "week", from_date, to_date)
    except QueryValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = await source.get_recipients(session.user.email, query)
    except InboxStatsError as e:
        logger.warning("[stats] recipients failed for %s: %s", session.user.email, e)
        raise HTTPException(status_code=502, detail=str(e))

    return result.model_dump(by_alias=True)
