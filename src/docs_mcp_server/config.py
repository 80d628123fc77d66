from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    sitemap_url: str = "https://sdk.vercel.ai/sitemap.xml"
    site_base_url: str = "https://sdk.vercel.ai"

    # Persisted layout
    data_root_path: str = "./files"
    docs_dir: Optional[str] = None
    index_dir: Optional[str] = None
    sessions_dir: Optional[str] = None
    cache_filename: str = "lastmod_cache.json"

    openai_api_key: SecretStr = SecretStr("")

    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = "https://api.openai.com/v1/embeddings"
    embedding_batch_size: int = 20

    chat_model: str = "gpt-4o-mini"
    chat_base_url: str = "https://api.openai.com/v1/chat/completions"

    # Fetching
    fetch_concurrency: int = 5
    fetch_timeout: float = 30.0
    user_agent: str = "docs-mcp-server/1.0"
    change_detection: Literal["lastmod", "content_hash", "auto"] = "auto"

    # Index
    chunk_size: int = 4000
    chunk_overlap: int = 400

    # Query
    direct_query_limit_default: int = 5
    agent_query_limit_default: int = 5
    agent_max_steps: int = 8
    session_max_messages: int = 200

    log_level: str = "INFO"

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    def resolved_docs_dir(self) -> Path:
        return Path(self.docs_dir) if self.docs_dir else Path(self.data_root_path) / "docs"

    def resolved_index_dir(self) -> Path:
        return Path(self.index_dir) if self.index_dir else Path(self.data_root_path) / "faiss_index"

    def resolved_sessions_dir(self) -> Path:
        return Path(self.sessions_dir) if self.sessions_dir else Path(self.data_root_path) / "sessions"

    def resolved_cache_path(self) -> Path:
        return self.resolved_docs_dir() / self.cache_filename

settings = Settings()
