from pydantic_settings import BaseSettings
from pathlib import Path

# Get project root (2 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

class Settings(BaseSettings):
    # OpenAI
    openai_api_key: str
    openai_llm_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 300
    openai_max_retries: int = 2
    provider_timeout_seconds: float = 30.0

    # SQL Server (raw + enriched feedback)
    sql_server_host: str
    sql_server_port: int = 1433
    sql_server_database: str
    sql_server_username: str
    sql_server_password: str
    sql_server_schema: str = "feedback_insights"
    sql_timeout_seconds: int = 30

    # PostgreSQL (raw feedback archive)
    postgres_host: str
    postgres_port: int = 5432
    postgres_database: str
    postgres_username: str
    postgres_password: str
    postgres_sslmode: str = "require"
    postgres_connect_timeout: int = 10

    # Pipeline config
    batch_size: int = 10
    max_workers: int = 1
    seed_count: int = 2000
    log_level: str = "INFO"

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        case_sensitive = False
