"""
Report Normalizer - FastAPI Application

Pipeline:
- Scanned text → Segmenter/Extractors → ParseResult → CreditReport
- Scrape captured lists → Alias canonicalizer → CreditReport
- CreditReport → idempotent storage → completeness → outbound event
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .config import IngestionConfig
from .database import init_db
from .routers import ingest_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield


def create_app(config: Optional[IngestionConfig] = None) -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title="Report Normalizer",
        description="""
        Credit report normalization and parsing engine.

        ## Inputs
        1. **Scanned documents**: text extracted from bureau PDFs
        2. **Scrape payloads**: captured lists from the scrape robot

        ## Guarantees
        - One canonical report per (runId, userId); re-ingestion replaces it
        - Raw payloads are stored verbatim before normalization
        - Every run ends completed, partial or failed
        """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.config = config or IngestionConfig.from_env()
    app.include_router(ingest_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": "1.0.0"}

    return app


app = create_app()


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
