# src/pipelines/seed.py
"""
Generate synthetic raw feedback for development and demos.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging
import argparse
import math
import random

from src.config.settings import Settings
from src.data_access.sql_client import SQLClient
from src.models.schemas import RawFeedback


logger = logging.getLogger(__name__)

SOURCES = ["support_ticket", "github_issue", "community_discord", "email_feedback", "twitter"]
USER_TYPES = ["developer", "indie_developer", "startup_customer", "enterprise_customer", "engineering_manager"]
COUNTRIES = ["UK", "US", "DE", "JP", "TW", "IN"]
PRODUCTS = ["Workers", "Pages", "D1", "R2", "Workers AI", "WAF"]

TEMPLATES = [
    "The documentation for {p} is confusing, especially around setup.",
    "Deployment failed with an unclear error message in {p}.",
    "After enabling {p}, we noticed increased latency during peak hours.",
    "Pricing for {p} is hard to estimate. Better usage forecasting would help.",
    "Migration to {p} was painful and lacked a clear checklist.",
]

MAX_DAYS_AGO = 365
# < 1 skews the age distribution towards recent dates
RECENCY_EXPONENT = 0.7


def feedback_id(index: int) -> str:
    return f"fb_{index:05d}"


def generate_feedback(count: int, seed: Optional[int] = None, now: Optional[datetime] = None) -> List[RawFeedback]:
    """
    Build ``count`` synthetic feedback records with ids fb_00001, fb_00002, ...

    Args:
        count: Number of records to generate
        seed: Optional random seed for reproducible output
        now: Reference time for created_at (default: current UTC time)
    """
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)

    records = []
    for i in range(1, count + 1):
        product_area = rng.choice(PRODUCTS)
        days_ago = math.floor(math.pow(rng.random(), RECENCY_EXPONENT) * MAX_DAYS_AGO)
        records.append(RawFeedback(
            id=feedback_id(i),
            source=rng.choice(SOURCES),
            user_type=rng.choice(USER_TYPES),
            country=rng.choice(COUNTRIES),
            product_area=product_area,
            content=rng.choice(TEMPLATES).replace("{p}", product_area),
            created_at=now - timedelta(days=days_ago)
        ))
    return records


class FeedbackSeeder:
    """Write synthetic feedback into the raw feedback table."""

    def __init__(self, config: Settings, sql_client: Optional[SQLClient] = None):
        self.config = config
        self.sql_client = sql_client or SQLClient(config)

    def run(self, count: Optional[int] = None, seed: Optional[int] = None) -> int:
        """Generate and upsert records. Returns the number written."""
        if count is None:
            count = self.config.seed_count

        records = generate_feedback(count, seed=seed)
        logger.info(f"Seeding {len(records)} raw feedback records")
        self.sql_client.upsert_raw_feedback(records)
        return len(records)


def main():
    """Main entry point for seeding synthetic feedback."""
    parser = argparse.ArgumentParser(description='Seed the raw feedback table with synthetic records.')
    parser.add_argument('--count', type=int, help='Number of records to generate')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible data')
    parser.add_argument('--init-schema', action='store_true', help='Create the feedback tables first')
    args = parser.parse_args()

    config = Settings()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    sql_client = SQLClient(config)
    try:
        sql_client.connect()
        if args.init_schema:
            sql_client.initialize_schema()
        inserted = FeedbackSeeder(config, sql_client=sql_client).run(args.count, seed=args.seed)
    finally:
        sql_client.close()

    print(f"Inserted {inserted} feedback records")


if __name__ == "__main__":
    main()
