import base64
import hashlib
import hmac
import json
import logging
import os
import secrets
import time
from pathlib import Path
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from google_auth_oauthlib.flow import Flow
from starlette.responses import RedirectResponse

from api.deps import Session, require_auth
from api.settings import settings
from inbox_stats.config import settings as stats_settings

router = APIRouter()
logger = logging.getLogger(__name__)

_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/gmail.readonly",
]


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()[:24]


def make_state(redirect_uri: str, next_path: str, secret: str) -> str:
    """Signed, URL-safe OAuth state carrying the redirect URI and post-login path."""
    payload = base64.urlsafe_b64encode(
        json.dumps({"s": secrets.token_urlsafe(32), "r": redirect_uri, "n": next_path}).encode()
    ).decode()
    return f"{payload}.{_sign(payload, secret)}"


def parse_state(token: str, secret: str) -> dict | None:
    payload, _, sig = token.rpartition(".")
    if not payload or not hmac.compare_digest(sig, _sign(payload, secret)):
        return None
    try:
        return json.loads(base64.urlsafe_b64decode(payload.encode()))
    except ValueError:
        return None


def safe_next(path: str | None) -> str:
    if not path:
        return "/"
    parsed = urlparse(path)
    if parsed.scheme or parsed.netloc:
        if f"{parsed.scheme}://{parsed.netloc}" in settings.cors_origin_list():
            return path
        return "/"
    return parsed.path or "/"


def _client_config() -> dict:
    if settings.google_client_id and settings.google_client_secret:
        return {
            "web": {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [settings.google_redirect_uri],
            }
        }

    cred_path = Path(stats_settings.google_credentials_path)
    if not cred_path.exists():
        raise HTTPException(status_code=500, detail="Missing OAuth credentials")
    data = json.loads(cred_path.read_text())
    if "web" in data:
        return data
    if "installed" in data:
        return {"web": data["installed"]}
    raise HTTPException(status_code=500, detail="Invalid credentials.json format")


def _redirect_uri(config: dict) -> str:
    if settings.google_redirect_uri:
        return settings.google_redirect_uri
    redirect_uris = config.get("web", {}).get("redirect_uris", [])
    if not redirect_uris:
        raise HTTPException(status_code=500, detail="No redirect URI configured")
    return redirect_uris[0]


def _allow_local_oauth(request: Request):
    if request.url.hostname in {"localhost", "127.0.0.1"}:
        os.environ["OAUTHLIB_INSECURE_TRANSPORT"] = "1"
    os.environ["OAUTHLIB_RELAX_TOKEN_SCOPE"] = "1"


@router.get("/login")
def login(request: Request, next: str | None = None):
    if not settings.auth_enabled:
        return {"message": "auth disabled"}
    _allow_local_oauth(request)

    config = _client_config()
    redirect_uri = _redirect_uri(config)
    state = make_state(redirect_uri, safe_next(next), settings.ensure_session_secret())

    flow = Flow.from_client_config(config, scopes=_SCOPES)
    flow.redirect_uri = redirect_uri
    authorization_url, _ = flow.authorization_url(state=state, access_type="offline", prompt="consent")
    return RedirectResponse(authorization_url)


@router.get("/callback")
def callback(request: Request):
    if not settings.auth_enabled:
        return {"message": "auth disabled"}
    _allow_local_oauth(request)

    state = request.query_params.get("state", "")
    parsed = parse_state(state, settings.ensure_session_secret())
    if not parsed:
        raise HTTPException(status_code=400, detail="Missing OAuth state")

    config = _client_config()
    flow = Flow.from_client_config(config, scopes=_SCOPES, state=state)
    flow.redirect_uri = parsed["r"]

    authorization_response = str(request.url)
    if authorization_response.startswith("http://") and parsed["r"].startswith("https://"):
        authorization_response = "https://" + authorization_response[len("http://"):]
    flow.fetch_token(authorization_response=authorization_response)
    credentials = flow.credentials

    if not credentials.id_token:
        raise HTTPException(status_code=400, detail="Missing id_token")
    info = id_token.verify_oauth2_token(
        credentials.id_token,
        google_requests.Request(),
        config.get("web", {}).get("client_id"),
    )
    email = (info.get("email") or "").lower()
    if settings.allowed_email and email != settings.allowed_email.lower():
        request.session.clear()
        raise HTTPException(status_code=403, detail="Email not authorized")

    # GmailAuth reads this token when the mailbox source is selected
    token_path = Path(stats_settings.google_token_path)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(credentials.to_json())
    logger.info("[auth] Gmail token saved to %s", token_path)

    request.session["user"] = {
        "email": email,
        "name": info.get("name", ""),
        "picture": info.get("picture", ""),
    }
    request.session["expires_at"] = time.time() + settings.session_ttl_seconds
    logger.info("[auth] signed in %s", email)
    return RedirectResponse(parsed["n"] or "/")


@router.get("/me")
def me(session: Session = Depends(require_auth)):
    return session.user.model_dump()


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"ok": True}
