import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from packager.api.upgrades import router as upgrades_router
from packager.core.config import PackagerConfig
from packager.core.dependencies import get_config, set_config
from packager.services.release.feed import FeedReleaseSource
from packager.services.runner import PackagerRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(config: PackagerConfig) -> None:
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)


def create_app(config: Optional[PackagerConfig] = None, schedule: bool = False) -> FastAPI:
    """
    Build the read-only upgrade API.

    With schedule=True the app also runs the check-and-package cycle in the
    background every `schedule_interval_seconds`.
    """
    if config is not None:
        set_config(config)

    app = FastAPI(
        title="Update Packager",
        version="0.1.0",
        description="Incremental upgrade packages between released versions.",
    )

    @app.on_event("startup")
    async def startup_event() -> None:
        """
        Create data directories and, if enabled, start the scheduled packager loop.
        """
        cfg = get_config()
        cfg.ensure_directories()
        if schedule:
            runner = PackagerRunner(cfg, FeedReleaseSource(cfg))
            app.state.packager_task = asyncio.create_task(runner.run_forever())
            logger.info(f"Scheduled packager loop every {cfg.schedule_interval_seconds}s")

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok"}

    app.include_router(upgrades_router, tags=["upgrades"])
    return app


if __name__ == "__main__":
    """
    Allow running `python -m packager.main` to start the Uvicorn development server.
    """
    import uvicorn

    cfg = get_config()
    configure_logging(cfg)
    uvicorn.run(create_app(cfg), host="0.0.0.0", port=8000)
