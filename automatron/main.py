"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from automatron import __version__
from automatron.api.endpoints import router
from automatron.config import load_config
from automatron.errors import ConfigurationError
from automatron.services.factory import build_agent_driver
from automatron.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    config = load_config()
    app.state.agent_config = config
    try:
        app.state.agent_driver = build_agent_driver(config)
    except ConfigurationError as e:
        # Health stays up; agent endpoints answer 503 until configured
        logger.error(f"Agent not configured: {e}")
        app.state.agent_driver = None
    else:
        logger.info(f"Agent ready with model {config.model}")
    yield


app = FastAPI(
    title="Automatron",
    description="Personal automation assistant running an agentic tool-use loop.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Agent",
            "description": "Start or continue a conversation and run the agent until it finishes.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("automatron.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
