# src/search/models.py - v1
"""Search domain types: documents, classifications, optimizer value objects,
search parameters and responses.

Documents are built once by the hybrid search engine and not mutated
afterwards; a lighter projection is produced by copying.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DocumentSource = Literal["github", "web", "local"]
DocumentLanguage = Literal[
    "typescript", "javascript", "markdown", "json", "yaml", "text", "python", "other"
]
QueryType = Literal["technical", "business", "operational"]
QueryComplexity = Literal["simple", "moderate", "complex", "ambiguous"]
RoutingStrategy = Literal["cached", "lightweight", "full", "fallback"]

DOCUMENT_SOURCES: tuple[str, ...] = ("github", "web", "local")
DOCUMENT_LANGUAGES: tuple[str, ...] = (
    "typescript", "javascript", "markdown", "json", "yaml", "text", "python", "other",
)
QUERY_TYPES: tuple[str, ...] = ("technical", "business", "operational")

SourceWeights = dict[str, float]


# === Documents ===


class DocumentMetadata(BaseModel):
    """Derived facts about a document's content."""

    model_config = ConfigDict(extra="allow")

    size: int = 0
    word_count: int = 0
    lines: int = 0
    checksum: str = ""
    last_modified: datetime | None = None
    url: str | None = None


class Document(BaseModel):
    """Scored retrieval unit."""

    id: str
    content: str = ""
    filepath: str = ""
    source: DocumentSource = "local"
    language: DocumentLanguage = "other"
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    priority: float = 1.0
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    embedding: list[float] | None = None


# === Search configuration ===


class HybridWeights(BaseModel):
    vector: float = 0.75
    keyword: float = 0.25


class SearchConfig(BaseModel):
    """Per-request search tuning."""

    hybrid_weights: HybridWeights = Field(default_factory=HybridWeights)
    min_score: float = 0.1
    max_results: int = 10
    timeout_ms: int = 5000
    rerank_enabled: bool = True
    cache_enabled: bool = True
    cache_ttl_seconds: int = 300


class SearchFilters(BaseModel):
    """Post-scoring filters. Empty lists mean no restriction."""

    sources: list[DocumentSource] = Field(default_factory=list)
    languages: list[DocumentLanguage] = Field(default_factory=list)
    min_score: float | None = None


# === Classification ===


class ClassificationResponse(BaseModel):
    """Shape the completion provider must return."""

    type: QueryType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str


class QueryClassification(BaseModel):
    query: str
    type: QueryType
    confidence: float = Field(ge=0.0, le=1.0)
    weights: SourceWeights
    reasoning: str
    cached: bool = False


class ClassificationMetrics(BaseModel):
    response_time_ms: int
    cache_hit: bool
    confidence: float
    source: Literal["openai", "cache", "fallback"]


# === Optimizer ===


class ComplexityAnalysis(BaseModel):
    complexity: QueryComplexity
    word_count: int
    concept_count: int
    technical_depth: float
    estimated_tokens: int
    required_context: int
    reasoning: str


class ConfidenceScore(BaseModel):
    overall: float
    query_clarity: float
    source_coverage: float
    historical_success: float
    reasoning: str


class TokenOptimizationConfig(BaseModel):
    max_tokens: int
    optimal_sources: int
    context_strategy: Literal["minimal", "balanced", "comprehensive"]
    prompt_template: Literal["concise", "standard", "detailed"]
    estimated_savings: int


class RoutingDecision(BaseModel):
    strategy: RoutingStrategy
    source_weights: SourceWeights
    min_sources: int
    max_sources: int
    skip_memory: bool
    use_reranking: bool
    reasoning: str


class HistoricalPerformance(BaseModel):
    similar_query_count: int = 0
    avg_success_rate: float = 0.7
    avg_confidence: float = 0.75
    avg_tokens: int = 1200
    user_satisfaction: float = 0.8


class QueryOptimizationResult(BaseModel):
    query: str
    classification: QueryClassification
    complexity: ComplexityAnalysis
    confidence: ConfidenceScore
    token_optimization: TokenOptimizationConfig
    routing: RoutingDecision
    historical: HistoricalPerformance | None = None
    optimization_time_ms: int = 0
    cached: bool = False


class OptimizationMetrics(BaseModel):
    total_optimizations: int
    cache_hit_rate: float
    avg_token_savings: int
    avg_confidence: float
    strategy_distribution: dict[str, int]


# === Search request / response ===


class SearchParams(BaseModel):
    """Everything a caller may pass to ``SearchOrchestrator.search``."""

    query: str
    limit: int = 10
    offset: int = 0
    source_weights: SourceWeights | None = None
    include_content: bool = True
    include_embedding: bool = False
    timeout_ms: int = 5000
    filters: SearchFilters | None = None
    config: SearchConfig | None = None
    session_id: str | None = None
    user_id: str | None = None
    context: str | None = None
    force_fresh: bool = False


class HybridSearchResult(BaseModel):
    documents: list[Document]
    total_results: int
    search_time_ms: int


class SearchMetadata(BaseModel):
    query_id: str
    total_results: int
    max_score: float
    min_score: float
    search_time_ms: int
    cache_hit: bool
    source_counts: dict[str, int]
    language_counts: dict[str, int]
    filters: SearchFilters | None = None
    config: SearchConfig
    reranked: bool = False


class ProcessedQuery(BaseModel):
    original: str
    processed: str
    tokens: list[str]
    query_type: QueryType
    filters: SearchFilters | None = None


class SearchResponse(BaseModel):
    success: bool = True
    results: list[dict[str, Any]]
    metadata: SearchMetadata
    query: ProcessedQuery
    suggestions: list[str]
    routing: RoutingDecision | None = None
    token_optimization: TokenOptimizationConfig | None = None


class WarmQuery(BaseModel):
    query: str
    session_id: str | None = None
    user_id: str | None = None
    context: str | None = None
    priority: int = 0


class WarmResult(BaseModel):
    success: int = 0
    failed: int = 0
    already_cached: int = 0
