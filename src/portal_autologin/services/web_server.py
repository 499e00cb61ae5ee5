"""Local control API: the thin presentation layer over the login engine."""

import asyncio
import logging

from fastapi import FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from portal_autologin import __version__
from portal_autologin.core.config import Settings
from portal_autologin.core.credentials import CredentialStore
from portal_autologin.core.engine import LoginEngine
from portal_autologin.core.errors import CredentialStoreError
from portal_autologin.paths import get_templates_dir

logger = logging.getLogger(__name__)


class CredentialsRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., max_length=256)


class LogoutRequest(BaseModel):
    url: str | None = Field(None, pattern=r"^https?://")


class StatusResponse(BaseModel):
    state: str
    generation: int
    attempts_left: int | None = None
    ssid: str | None = None
    bssid: str | None = None
    last_result: str | None = None
    error: str | None = None
    conflict_warning: str | None = None
    username: str | None = None


class WebServer:
    def __init__(
        self, settings: Settings, engine: LoginEngine, credential_store: CredentialStore
    ):
        self.settings = settings
        self.engine = engine
        self.credential_store = credential_store
        self._background_tasks: set[asyncio.Task] = set()

        self.app = FastAPI(
            title="Portal AutoLogin",
            version=__version__,
            docs_url="/api/docs" if settings.debug else None,
            redoc_url="/api/redoc" if settings.debug else None,
        )
        self.templates = Jinja2Templates(directory=str(get_templates_dir()))
        self._setup_routes()

    def _status(self) -> StatusResponse:
        state = self.engine.get_status()
        username, _ = self.credential_store.load()
        return StatusResponse(
            state=state.state.value,
            generation=state.generation,
            attempts_left=state.attempts_left,
            ssid=state.network.ssid if state.network else None,
            bssid=state.network.bssid if state.network else None,
            last_result=state.last_result.describe() if state.last_result else None,
            error=state.last_error,
            conflict_warning=state.conflict_warning,
            username=username or None,
        )

    def _fire_and_forget(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _save_credentials(self, username: str, password: str) -> JSONResponse | None:
        try:
            self.credential_store.save(username, password)
        except CredentialStoreError as e:
            logger.error(f"{e}: {e.cause}")
            return JSONResponse(
                content={"status": "error", "message": e.message},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return None

    def _setup_routes(self):
        @self.app.get("/", response_class=HTMLResponse)
        async def index(request: Request):
            return self.templates.TemplateResponse(
                request,
                "index.html",
                {"status": self._status(), "version": __version__},
            )

        @self.app.get("/api/status")
        async def get_status() -> StatusResponse:
            return self._status()

        @self.app.post("/api/login")
        async def manual_login() -> JSONResponse:
            self.engine.trigger_manual_login()
            return JSONResponse(
                content={"status": "probing", "generation": self.engine.generation},
                status_code=status.HTTP_202_ACCEPTED,
            )

        @self.app.post("/api/logout")
        async def logout(logout_req: LogoutRequest | None = None) -> JSONResponse:
            url = logout_req.url if logout_req else None
            self._fire_and_forget(self.engine.logout(url))
            return JSONResponse(
                content={"status": "logging_out"}, status_code=status.HTTP_202_ACCEPTED
            )

        @self.app.post("/api/credentials")
        async def save_credentials(creds: CredentialsRequest) -> JSONResponse:
            error = self._save_credentials(creds.username, creds.password)
            if error:
                return error
            return JSONResponse(content={"status": "saved", "username": creds.username})

        @self.app.post("/api/conflict/acknowledge")
        async def acknowledge_conflict() -> JSONResponse:
            acknowledged = self.engine.acknowledge_conflict()
            return JSONResponse(
                content={
                    "acknowledged": acknowledged,
                    "state": self.engine.get_status().state.value,
                }
            )

        @self.app.get("/health")
        async def health_check() -> JSONResponse:
            """Basic health check endpoint."""
            return JSONResponse(
                content={"status": "healthy", "service": "portal-autologin"}, status_code=200
            )

        # HTML form equivalents of the JSON endpoints above
        @self.app.post("/credentials")
        async def credentials_form(username: str = Form(...), password: str = Form("")):
            error = self._save_credentials(username, password)
            if error:
                return error
            return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

        @self.app.post("/login")
        async def login_form():
            self.engine.trigger_manual_login()
            return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

        @self.app.post("/logout")
        async def logout_form():
            self._fire_and_forget(self.engine.logout())
            return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

        @self.app.post("/acknowledge")
        async def acknowledge_form():
            self.engine.acknowledge_conflict()
            return RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)

    def get_app(self) -> FastAPI:
        """Get the FastAPI application instance."""
        return self.app
