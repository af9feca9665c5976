"""Application-wide configuration and settings.

Uses ``pydantic-settings`` so values can be overridden via environment
variables prefixed with ``COGRAPH_``.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global settings for the Cograph analysis engine.

    Attributes:
        app_name: Display name of the application.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        database_url: SQLAlchemy URL of the relational store.
        neo4j_uri: Neo4j ``neo4j://`` or ``neo4j+s://`` connection string.
        neo4j_user: Neo4j database username.
        neo4j_password: Neo4j database password.
        neo4j_database: Neo4j target database name.
        analysis_tool_url: Base URL of the external analysis tool endpoint.
        analysis_tool_timeout_seconds: Per-call timeout for tool invocations.
        analysis_batch_size: Number of files requested per tool invocation.
        analysis_cooldown_seconds: Minimum gap between two completed analyses
            of the same repository.
        analysis_max_consecutive_failures: Give up on a run after this many
            failed windows in a row while the total file count is unknown.
        graph_default_limit: Page size used when a caller passes no limit.
        graph_max_cycles: Maximum number of cycles reported per repository.
    """

    app_name: str = "Cograph"
    log_level: str = "INFO"

    # Relational store
    database_url: str = "sqlite:///./cograph.db"
    database_echo: bool = False

    # Graph store
    neo4j_uri: str = ""
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"

    # External analysis tool
    analysis_tool_url: str = "http://localhost:3100"
    analysis_tool_timeout_seconds: float = 120.0
    analysis_batch_size: int = 5
    analysis_cooldown_seconds: int = 300
    analysis_max_consecutive_failures: int = 3

    # Graph queries
    graph_default_limit: int = 500
    graph_max_cycles: int = 100

    # File summaries
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    azure_endpoint: str = ""
    summary_max_content_chars: int = 12000

    model_config = {"env_prefix": "COGRAPH_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
