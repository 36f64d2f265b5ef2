from typing import Literal

from pydantic_settings import BaseSettings


class InboxStatsSettings(BaseSettings):
    model_config = {"env_prefix": "INBOX_STATS_"}

    google_credentials_path: str = "credentials.json"
    google_token_path: str = "token.json"
    tinybird_host: str = "https://api.tinybird.co"
    tinybird_token: str = ""
    tinybird_timeout: float = 30.0
    recipient_source: Literal["tinybird", "gmail"] = "tinybird"
    sent_messages_limit: int = 50


def get_settings() -> InboxStatsSettings:
    return InboxStatsSettings()


class _LazySettings:
    _instance: InboxStatsSettings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _LazySettings()
