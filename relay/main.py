"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay import __version__
from relay.api.endpoints import router
from relay.config import RelayConfig
from relay.utils.logging import LogConfig, setup_logging

setup_logging(LogConfig(level=RelayConfig.from_env().log_level))

# Create FastAPI application
app = FastAPI(
    title="Relay",
    description="JSON-RPC 2.0 bridge exposing local coding tools (read, write, bash, glob) to external clients.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {
            "name": "Tools",
            "description": "JSON-RPC 2.0 endpoint answering tools/list and tools/call.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("relay.main:app", host="127.0.0.1", port=8000, log_level="info")
