"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    openai_api_key: str = ""
    google_api_key: str = ""

    # Embedding
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 100

    # LLM / Gemini
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.3
    gemini_top_p: float = 0.9
    gemini_max_tokens: int = 2000

    # Search index
    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_index: str = "knowledge_base"
    elasticsearch_api_key: str = ""
    elasticsearch_timeout_s: float = 30.0

    # Query rewriting
    rewrite_enabled: bool = True
    rewrite_variants: int = 3
    rewrite_prompt: str = ""

    # HyDE
    hyde_enabled: bool = False
    hyde_max_tokens: int = 256
    hyde_prompt: str = ""

    # Fusion
    fusion_enabled: bool = True
    rrf_k: int = 60
    fusion_max_queries: int = 4

    # Reranking
    rerank_enabled: bool = True
    rerank_max_candidates: int = 8
    rerank_snippet_length: int = 200
    rerank_prompt: str = ""

    # Metadata routing
    routing_enabled: bool = True
    routing_use_llm: bool = False
    routing_max_tags: int = 4
    routing_prompt: str = ""

    # CRAG quality gate
    crag_enabled: bool = True
    crag_use_llm: bool = True
    crag_min_score: float = 0.2
    crag_review_top_k: int = 3
    crag_fallback_multiplier: int = 2
    crag_prompt: str = ""
    crag_clarify_prompt: str = ""

    # Feedback loop
    feedback_enabled: bool = True
    feedback_max_boost: float = 0.15

    # Answer prompt
    answer_rules: str = ""
    reference_start: str = "<<参考资料开始>>"
    reference_end: str = "<<参考资料结束>>"
    no_result_text: str = "暂无相关信息"
    generation_timeout_s: float = 120.0

    # Storage paths
    sqlite_db_path: str = "data/campus_rag.db"
    eval_dataset_path: str = "data/eval/benchmarks.json"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Auth / JWT
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 60
    api_keys: str = ""  # comma-separated list of valid API keys

    # Rate limiting
    rate_limit_requests_per_minute: int = 60

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "env_prefix": "RAG_"}
