import os

from fastapi import FastAPI

from listing_intake import __version__
from listing_intake.config import require_configured, settings
from listing_intake.logging_config import get_logger, setup_logging
from listing_intake.routers import health, webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Listing Intake API",
    description="WhatsApp conversational intake for marketplace listings",
    version=__version__,
)

app.include_router(webhook.router)
app.include_router(health.router)


@app.on_event("startup")
async def check_configuration() -> None:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return
    require_configured(settings)
    logger.info("Listing intake service started", extra={"context": {"version": __version__}})
