"""PanelSnap — FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from config import settings
from database import init_db, record_outcome
from routers import captures, jobs
from services.browser import Browser
from services.config_loader import find_config_path, load_screenshot_config
from services.file_store import FileStore
from services.scheduler import ScreenshotScheduler

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("panelsnap")


def build_scheduler() -> ScreenshotScheduler:
    """Wire browser, file store and history into a configured scheduler."""
    config_path = find_config_path(settings.screenshots_config)
    logger.info("Using configuration: %s", config_path)
    config = load_screenshot_config(config_path)

    browser = Browser(
        settings.hass_url,
        settings.hass_token,
        executable_path=settings.chromium_executable,
        is_addon=settings.is_addon,
    )
    file_store = FileStore(settings.output_dir, settings.url_prefix, settings.keep_history)
    logger.info("Screenshots will be saved to: %s", settings.output_dir)

    scheduler = ScreenshotScheduler(
        browser,
        file_store,
        stagger_seconds=settings.stagger_seconds,
        outcome_recorder=record_outcome,
    )
    scheduler.configure(config["screenshots"], config.get("off_hours"))
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    Path(settings.output_dir).mkdir(parents=True, exist_ok=True)
    await init_db()
    if not settings.hass_enabled:
        logger.warning("HASS_URL / HASS_TOKEN not set; dashboard pages will not authenticate")
    scheduler = build_scheduler()
    app.state.scheduler = scheduler
    scheduler.start()
    yield
    # Shutdown
    await scheduler.stop()


app = FastAPI(
    title="PanelSnap",
    description="Scheduled Home Assistant dashboard screenshots for e-ink displays",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(jobs.router, prefix="/api")
app.include_router(captures.router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# Serve the latest screenshots at the same URLs the file store hands out
Path(settings.output_dir).mkdir(parents=True, exist_ok=True)
app.mount(
    settings.url_prefix.rstrip("/"),
    StaticFiles(directory=settings.output_dir),
    name="screenshots",
)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
