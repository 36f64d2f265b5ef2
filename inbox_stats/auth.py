import json
import logging
import os
from datetime import datetime

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from inbox_stats.config import settings
from inbox_stats.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
]


class GmailAuth:
    def __init__(
        self,
        credentials_path: str | None = None,
        token_path: str | None = None,
        scopes: list[str] | None = None,
        interactive: bool = True,
    ):
        self._credentials_path = credentials_path or settings.google_credentials_path
        self._token_path = token_path or settings.google_token_path
        self._scopes = scopes or SCOPES
        # Request handlers must never block on the local browser flow
        self._interactive = interactive
        self._creds: Credentials | None = None

    def authenticate(self) -> Credentials:
        if os.path.exists(self._token_path):
            self._creds = self._load_token()

        if self._creds and self._creds.valid:
            return self._creds

        if self._creds and self._creds.expired and self._creds.refresh_token:
            logger.info("[GmailAuth] refreshing expired token")
            try:
                self._creds.refresh(Request())
            except RefreshError as e:
                raise AuthenticationError(f"Failed to refresh Gmail token: {e}") from e
        elif not self._interactive:
            raise AuthenticationError(f"No usable Gmail token at {self._token_path}, sign in again")
        else:
            if not os.path.exists(self._credentials_path):
                raise AuthenticationError(f"Credentials file not found: {self._credentials_path}")
            logger.info("[GmailAuth] starting OAuth2 flow")
            flow = InstalledAppFlow.from_client_secrets_file(self._credentials_path, self._scopes)
            self._creds = flow.run_local_server(port=0)

        with open(self._token_path, "w") as f:
            f.write(self._creds.to_json())
        logger.info("[GmailAuth] token saved to %s", self._token_path)
        return self._creds

    def _load_token(self) -> Credentials:
        try:
            return Credentials.from_authorized_user_file(self._token_path, self._scopes)
        except ValueError:
            # Web sign-in without offline access stores no refresh_token
            with open(self._token_path) as f:
                data = json.load(f)
            expiry = None
            if expiry_str := data.get("expiry"):
                try:
                    expiry = datetime.fromisoformat(expiry_str.replace("Z", "+00:00")).replace(tzinfo=None)
                except ValueError:
                    pass
            logger.warning("[GmailAuth] token has no refresh_token, using access token until expiry")
            return Credentials(
                token=data.get("token"),
                token_uri=data.get("token_uri"),
                client_id=data.get("client_id"),
                client_secret=data.get("client_secret"),
                scopes=data.get("scopes"),
                expiry=expiry,
            )

    def get_service(self):
        if not self._creds or not self._creds.valid:
            self.authenticate()
        return build("gmail", "v1", credentials=self._creds, cache_discovery=False)
