import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class DashboardSettings(BaseSettings):
    model_config = {"env_prefix": "DASHBOARD_"}

    auth_enabled: bool = True
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    allowed_email: str = ""
    session_secret: str = ""
    session_secret_path: str = "./.dashboard_session_secret"
    session_ttl_seconds: int = 86400
    https_only: bool = False
    cors_origins: str = "http://localhost:3000"
    host: str = "127.0.0.1"
    port: int = 8000

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_session_secret(self) -> str:
        if self.session_secret:
            return self.session_secret
        secret_file = Path(self.session_secret_path)
        if secret_file.exists():
            self.session_secret = secret_file.read_text().strip()
            return self.session_secret
        secret_file.parent.mkdir(parents=True, exist_ok=True)
        self.session_secret = secrets.token_urlsafe(48)
        secret_file.write_text(self.session_secret)
        return self.session_secret


settings = DashboardSettings()
