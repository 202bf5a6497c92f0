import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from wrapped_auth.config import (
    AuthConfig,
    configured_providers,
    ensure_valid_config,
    get_config,
    secure_cookies,
)
from wrapped_auth.connectors.oauth.base import Provider
from wrapped_auth.connectors.oauth.registry import parse_provider
from wrapped_auth.services_credentials import get_credential
from wrapped_auth.services_oauth_flow import (
    RefreshRejected,
    complete_callback,
    logout,
    refresh_credentials,
    start_flow,
)
from wrapped_auth.utils.cookies import CookieJar

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "; ".join(
        [
            "default-src 'self'",
            "script-src 'self' 'unsafe-inline'",
            "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
            "font-src 'self' https://fonts.gstatic.com",
            "img-src 'self' data: https://avatars.githubusercontent.com https://secure.gravatar.com https://gitlab.com",
            "connect-src 'self' https://api.github.com https://gitlab.com",
            "frame-ancestors 'none'",
        ]
    ),
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    result = ensure_valid_config(get_config())
    if result.valid:
        logger.info("Configuration OK (%d warnings)", len(result.warnings))
    yield


app = FastAPI(title="Wrapped Auth API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_config().public_app_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


# ==================== Pydantic Models ====================

class RefreshRequest(BaseModel):
    provider: Optional[str] = None


def _jar(request: Request, config: AuthConfig) -> CookieJar:
    return CookieJar.from_request(request, secure=secure_cookies(config))


def _redirect(jar: CookieJar, location: str) -> RedirectResponse:
    return jar.apply(RedirectResponse(url=location, status_code=302))


# ==================== Health / Status ====================

@app.get("/api/health")
def health(config: AuthConfig = Depends(get_config)):
    return {"status": "ok", "providers": configured_providers(config)}


@app.get("/api/auth/status")
def auth_status(request: Request, config: AuthConfig = Depends(get_config)):
    jar = _jar(request, config)
    connected = [p.value for p in Provider if get_credential(jar, config=config, provider=p) is not None]
    return {"connected": connected, "configured": configured_providers(config)}


# ==================== OAuth Routes ====================

@app.get("/auth/logout")
@app.post("/auth/logout")
def logout_route(request: Request, config: AuthConfig = Depends(get_config)):
    jar = _jar(request, config)
    return _redirect(jar, logout(jar))


@app.post("/auth/refresh")
def refresh_route(
    request: Request,
    body: RefreshRequest = Body(...),
    config: AuthConfig = Depends(get_config),
):
    try:
        provider = parse_provider(body.provider)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid provider")

    jar = _jar(request, config)
    try:
        outcome = refresh_credentials(jar, config=config, provider=provider)
    except RefreshRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Token refresh for %s failed unexpectedly", provider.value)
        return jar.apply(JSONResponse(status_code=500, content={"detail": "Token refresh failed"}))

    if not outcome.success:
        detail = "Token refresh failed"
        if outcome.error and outcome.error.detail:
            detail = outcome.error.detail.get("error_description") or outcome.error.detail.get("error") or detail
        return jar.apply(JSONResponse(status_code=401, content={"detail": detail}))

    payload = {"success": True, "expiresIn": outcome.expires_in}
    if outcome.message:
        payload["message"] = outcome.message
    return jar.apply(JSONResponse(content=payload))


@app.get("/auth/{provider}")
def start_oauth(provider: Provider, request: Request, config: AuthConfig = Depends(get_config)):
    jar = _jar(request, config)
    outcome = start_flow(jar, config=config, provider=provider)
    return _redirect(jar, outcome.location)


@app.get("/auth/{provider}/callback")
def oauth_callback(
    provider: Provider,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    config: AuthConfig = Depends(get_config),
):
    jar = _jar(request, config)
    outcome = complete_callback(
        jar,
        config=config,
        provider=provider,
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )
    return _redirect(jar, outcome.location)
