import logging
import random
import time

from googleapiclient.errors import HttpError

from inbox_stats.auth import GmailAuth
from inbox_stats.exceptions import GmailAPIError, InboxStatsError

logger = logging.getLogger(__name__)

# Gmail answers 429 (rateLimitExceeded) or 403 (userRateLimitExceeded) when throttling
_RATE_LIMIT_STATUSES = (429, 403)


class GmailClient:
    def __init__(
        self,
        auth: GmailAuth | None = None,
        batch_size: int = 10,
        inter_batch_delay: float = 2.0,
        max_retries: int = 7,
    ):
        self._auth = auth or GmailAuth()
        self._service = None
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.max_retries = max_retries

    @property
    def service(self):
        if not self._service:
            self._service = self._auth.get_service()
        return self._service

    # --- Messages ---

    def get_profile_email(self) -> str:
        """Address of the mailbox the stored token belongs to."""
        try:
            profile = self.service.users().getProfile(userId="me").execute()
        except InboxStatsError:
            raise
        except Exception as e:
            raise GmailAPIError(f"Failed to read mailbox profile: {e}") from e
        return profile.get("emailAddress", "")

    def list_messages(self, query: str = "", max_results: int = 50) -> list[dict]:
        """Single page of message stubs (``{"id", "threadId"}``) matching ``query``."""
        try:
            response = self.service.users().messages().list(
                userId="me", q=query, maxResults=max_results,
            ).execute()
        except InboxStatsError:
            raise
        except Exception as e:
            raise GmailAPIError(f"Failed to list messages for '{query}': {e}") from e
        return response.get("messages", [])[:max_results]

    def list_sent_messages(self, max_results: int = 50) -> list[str]:
        return [m["id"] for m in self.list_messages(query="in:sent", max_results=max_results)]

    def batch_get_messages(self, message_ids: list[str], format: str = "metadata") -> tuple[list[dict], list[str]]:
        """Fetch messages in HTTP batches of ``batch_size``.

        Rate-limited requests are retried with exponential backoff and jitter.
        Returns (results in request order, permanently failed ids).
        """
        results = {}
        failed = set()
        pending_ids = list(message_ids)

        for attempt in range(self.max_retries + 1):
            if not pending_ids:
                break

            rate_limited_ids = []
            for i in range(0, len(pending_ids), self.batch_size):
                chunk = pending_ids[i : i + self.batch_size]
                batch = self.service.new_batch_http_request()

                def _callback(request_id, response, exception, mid=None):
                    if exception is None:
                        results[mid] = response
                        return
                    status = getattr(getattr(exception, "resp", None), "status", None)
                    if isinstance(exception, HttpError) and status in _RATE_LIMIT_STATUSES:
                        rate_limited_ids.append(mid)
                    else:
                        failed.add(mid)
                        logger.warning("[GmailClient] permanent error for %s (status=%s): %s", mid, status, exception)

                for mid in chunk:
                    batch.add(
                        self.service.users().messages().get(userId="me", id=mid, format=format),
                        callback=lambda req_id, resp, exc, m=mid: _callback(req_id, resp, exc, m),
                    )
                try:
                    batch.execute()
                except Exception as e:
                    raise GmailAPIError(f"Batch fetch of {len(chunk)} messages failed: {e}") from e

                if i + self.batch_size < len(pending_ids):
                    time.sleep(self.inter_batch_delay)

            if not rate_limited_ids:
                break

            pending_ids = rate_limited_ids
            if attempt == self.max_retries:
                logger.warning("[GmailClient] %d messages still rate-limited after %d retries", len(pending_ids), self.max_retries)
                failed.update(pending_ids)
                break
            backoff = min(2 ** (attempt + 1), 64) + random.uniform(0, 2)
            logger.info(
                "[GmailClient] %d messages rate-limited, retrying in %.1fs (attempt %d/%d)",
                len(rate_limited_ids), backoff, attempt + 1, self.max_retries,
            )
            time.sleep(backoff)

        return [results[mid] for mid in message_ids if mid in results], [mid for mid in message_ids if mid in failed]

    # --- Parsing ---

    @staticmethod
    def parse_headers(headers: list[dict]) -> dict:
        return {h["name"]: h["value"] for h in headers}

    @staticmethod
    def parse_message(raw_message: dict) -> dict:
        headers = GmailClient.parse_headers(raw_message.get("payload", {}).get("headers", []))
        return {
            "gmail_id": raw_message["id"],
            "recipients": {"to": headers.get("To", "")},
        }
