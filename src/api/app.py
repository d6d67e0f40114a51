# src/api/app.py
"""
HTTP surface of the feedback pipeline.

    POST /process    enrich one record (feedbackId) or a batch of unprocessed records
    POST /seed       write synthetic raw feedback
    POST /ai-advice  recommendations from aggregated feedback counts

Run with: uvicorn src.api.app:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
import uvicorn
from fastapi.responses import JSONResponse

from src.config.settings import Settings
from src.agents.llm_agent import ChatAgent
from src.data_access.repository import FeedbackRepository
from src.pipelines.enrichment import FeedbackEnricher
from src.pipelines.process import FeedbackProcessor
from src.pipelines.seed import FeedbackSeeder
from src.pipelines.advice import AdviceGenerator
from src.models.errors import NotFoundError
from src.api.schemas import (
    ProcessRequest,
    SeedRequest,
    AdviceRequest,
    enriched_payload,
    batch_item_payload,
    advice_payload,
    error_payload,
)


logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    processor: Optional[FeedbackProcessor] = None,
    seeder: Optional[FeedbackSeeder] = None,
    advisor: Optional[AdviceGenerator] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators not passed in are built from ``config`` (loaded from the
    environment when omitted).
    """
    repository = None
    if processor is None or seeder is None or advisor is None:
        config = config or Settings()
        logging.basicConfig(
            level=getattr(logging, config.log_level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

        provider = ChatAgent(config)
        repository = FeedbackRepository(config)
        if processor is None:
            enricher = FeedbackEnricher(config, provider=provider, repository=repository)
            processor = FeedbackProcessor(config, enricher=enricher, repository=repository)
        if seeder is None:
            seeder = FeedbackSeeder(config, sql_client=repository.sql_client)
        if advisor is None:
            advisor = AdviceGenerator(provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if repository is not None:
            repository.close()

    app = FastAPI(
        title="Feedback Insights Pipeline",
        description="Enriches raw user feedback with theme, sentiment, urgency and value classifications",
        version="v1",
        lifespan=lifespan
    )

    @app.post("/process")
    def process_feedback(request: ProcessRequest):
        """
        Enrich a single feedback record, or a batch of records that have no
        enrichment yet. Provider failures never fail the request: enrichment
        falls back to rule-based classification.
        """
        try:
            if request.feedback_id:
                enriched = processor.process_one(request.feedback_id)
                return {"ok": True, "feedback": enriched_payload(enriched)}

            batch = processor.process_batch(request.batch_size)
            return {
                "ok": True,
                "processed": batch.processed_count,
                "results": [batch_item_payload(item) for item in batch.results],
            }
        except NotFoundError:
            return JSONResponse(status_code=404, content=error_payload("Feedback not found"))
        except Exception as e:
            logger.error(f"Error processing feedback: {e}", exc_info=True)
            return JSONResponse(status_code=500, content=error_payload(str(e)))

    @app.post("/seed")
    def seed_feedback(request: SeedRequest):
        """Write synthetic raw feedback records."""
        try:
            inserted = seeder.run(request.count, seed=request.seed)
            return {"ok": True, "inserted": inserted}
        except Exception as e:
            logger.error(f"Error seeding feedback: {e}", exc_info=True)
            return JSONResponse(status_code=500, content=error_payload(str(e)))

    @app.post("/ai-advice")
    def ai_advice(request: AdviceRequest):
        """Recommendations for the product team; falls back to rule-based advice."""
        result = advisor.generate(request.filters, request.chart_data)
        return advice_payload(result)

    return app


def main():
    """Serve the API with uvicorn."""
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
