# src/pipelines/process.py
"""
Processing pipeline that enriches raw feedback which has no enrichment yet.
Runs a single record by id, or a batch of unprocessed records.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
import logging
import argparse
import json
import sys

from src.config.settings import Settings
from src.data_access.repository import FeedbackRepository
from src.pipelines.enrichment import FeedbackEnricher
from src.models.errors import NotFoundError
from src.models.schemas import RawFeedback, EnrichedFeedback, BatchItemResult, BatchResult


logger = logging.getLogger(__name__)


class FeedbackProcessor:
    """Select unprocessed feedback and enrich it record by record."""

    def __init__(
        self,
        config: Settings,
        enricher: Optional[FeedbackEnricher] = None,
        repository: Optional[FeedbackRepository] = None,
        max_workers: Optional[int] = None
    ):
        """
        Initialize the processor.

        Args:
            config: Application settings
            enricher: Enrichment orchestrator. Defaults to one sharing this repository.
            repository: Source of unprocessed records. Defaults to FeedbackRepository.
            max_workers: Records enriched in parallel (default from config; 1 = sequential)
        """
        self.config = config
        self.repository = repository if repository is not None else FeedbackRepository(config)
        self.enricher = enricher if enricher is not None else FeedbackEnricher(config, repository=self.repository)
        self.max_workers = max_workers or config.max_workers

    def process_one(self, feedback_id: str) -> EnrichedFeedback:
        """
        Enrich a single record by id.

        Raises:
            NotFoundError: no raw feedback exists with that id
            PersistenceError: the enrichment row could not be written
        """
        record = self.repository.find_by_id(feedback_id)
        if record is None:
            raise NotFoundError(feedback_id)

        logger.info(f"Processing feedback {feedback_id}")
        return self.enricher.enrich(record)

    def process_batch(self, limit: Optional[int] = None) -> BatchResult:
        """
        Enrich up to ``limit`` records that have no enrichment row yet.

        One record failing does not stop the batch; its error is reported in
        the per-item results, which keep the selection order.

        Args:
            limit: Maximum number of records to select (default from config)

        Returns:
            BatchResult with the attempted count and per-item outcomes
        """
        if limit is None:
            limit = self.config.batch_size
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"Batch limit must be a positive integer, got {limit!r}")

        records = self.repository.find_unprocessed(limit)
        logger.info(f"Found {len(records)} unprocessed feedback records (limit {limit})")

        if not records:
            return BatchResult(processed_count=0, results=[])

        if self.max_workers > 1 and len(records) > 1:
            results = self._process_parallel(records)
        else:
            results = [self._process_record(record) for record in records]

        batch = BatchResult(processed_count=len(results), results=results)
        logger.info(f"Batch complete: {batch.succeeded} succeeded, {batch.failed} failed")
        return batch

    def _process_parallel(self, records: List[RawFeedback]) -> List[BatchItemResult]:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._process_record, record) for record in records]
            return [future.result() for future in futures]

    def _process_record(self, record: RawFeedback) -> BatchItemResult:
        try:
            enriched = self.enricher.enrich(record)
            return BatchItemResult(id=record.id, success=True, enriched=enriched)
        except Exception as e:
            logger.error(f"Error processing feedback {record.id}: {str(e)}")
            return BatchItemResult(id=record.id, success=False, error=str(e))


def main():
    """Main entry point for running the processing pipeline."""
    parser = argparse.ArgumentParser(
        description='Enrich raw feedback with theme, sentiment, urgency and value classifications.'
    )
    parser.add_argument(
        '--feedback-id',
        type=str,
        help='Process a single feedback record by id'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        help='Maximum number of unprocessed records to process'
    )
    parser.add_argument(
        '--max-workers',
        type=int,
        help='Number of records to enrich in parallel'
    )
    parser.add_argument(
        '--init-schema',
        action='store_true',
        help='Create the feedback and archive tables before processing'
    )

    args = parser.parse_args()

    if args.batch_size is not None and args.batch_size < 1:
        parser.error("--batch-size must be a positive integer")

    # Load configuration
    config = Settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    repository = FeedbackRepository(config)
    processor = FeedbackProcessor(config, repository=repository, max_workers=args.max_workers)

    try:
        repository.connect()
        if args.init_schema:
            repository.initialize_schema()

        if args.feedback_id:
            try:
                enriched = processor.process_one(args.feedback_id)
            except NotFoundError as e:
                print(str(e), file=sys.stderr)
                sys.exit(1)
            print(json.dumps(enriched.model_dump(mode="json"), indent=2))
            return

        stats = processor.process_batch(args.batch_size)
    finally:
        repository.close()

    # Print results
    print("\n" + "="*50)
    print("FEEDBACK PROCESSING RESULTS")
    print("="*50)
    print(f"Records processed: {stats.processed_count}")
    print(f"Succeeded: {stats.succeeded}")
    print(f"Failed: {stats.failed}")
    for item in stats.results:
        if not item.success:
            print(f"  {item.id}: {item.error}")
    print("="*50)


if __name__ == "__main__":
    main()
