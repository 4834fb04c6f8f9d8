"""Smart Home Dashboard - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles

from smarthome.config import settings
from smarthome.services.client_registry import ClientRegistry

WEB_DIR = Path(__file__).parent / "web"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared HTTP session to the hosted backend on startup."""
    configure_logging()
    registry = getattr(app.state, "registry", None)
    if registry is None:
        websession = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=settings.request_timeout)
        )
        registry = ClientRegistry(websession)
        app.state.registry = registry
    logger.info("Backend: %s", settings.supabase_url)

    yield

    await registry.close()
    del app.state.registry


app = FastAPI(
    title=settings.app_name,
    description="Manage and connect your smart home devices",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Register API routers ---
from smarthome.api.auth import router as auth_router  # noqa: E402
from smarthome.api.deps import find_client  # noqa: E402
from smarthome.api.devices import router as devices_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(devices_router, prefix=API_PREFIX)


@app.get("/api/v1/health")
def health():
    return {"status": "ok", "version": "0.1.0"}


# --- Web Frontend ---
app.mount("/static", StaticFiles(directory=str(WEB_DIR)), name="static")


async def _page(request: Request, page: str) -> Response:
    """Serve a page, or redirect the caller elsewhere based on sign-in state."""
    client = find_client(request)
    authenticated = client is not None and client.sessions.is_authenticated

    if page == "index" and authenticated:
        return RedirectResponse("/dashboard")
    if page == "auth" and authenticated:
        return RedirectResponse("/")
    if page == "dashboard" and not authenticated:
        return RedirectResponse("/auth")
    return FileResponse(str(WEB_DIR / f"{page}.html"))


@app.get("/")
async def landing(request: Request):
    """Landing page; signed-in users go straight to the dashboard."""
    return await _page(request, "index")


@app.get("/auth")
async def auth_page(request: Request):
    """Login / sign-up page; signed-in users are sent away."""
    return await _page(request, "auth")


@app.get("/dashboard")
async def dashboard_page(request: Request):
    """Device dashboard; requires a signed-in user."""
    return await _page(request, "dashboard")


def run() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run("smarthome.main:app", host=settings.host, port=settings.port)
