from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from mangum import Mangum

from newswire import __version__
from newswire.config import get_settings
from newswire.http_client import shutdown_http_client
from newswire.log import configure_logging, get_logger
from newswire.models import NewsBatch
from newswire.services import AggregationService

configure_logging("newswire-api", level=get_settings().log_level)
logger = get_logger(__name__)

app = FastAPI(
    title="Newswire Feed Aggregator",
    version=__version__,
    description=(
        "Aggregated Israeli news feeds with normalized UTC publication timestamps."
    ),
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


def get_aggregation_service() -> AggregationService:
    return AggregationService()


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/fetch-rss", tags=["news"], response_model=NewsBatch)
@app.post("/functions/v1/fetch-rss", tags=["news"], response_model=NewsBatch)
async def fetch_rss(
    service: AggregationService = Depends(get_aggregation_service),
):
    try:
        items = await service.run()
    except Exception as exc:
        logger.exception("aggregation_failed")
        message = str(exc) or "Unknown error occurred"
        return ORJSONResponse({"error": message}, status_code=500)
    return NewsBatch(items=items)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await shutdown_http_client()


handler = Mangum(app)
