from pydantic import BaseModel, Field
from typing import TypeAlias, Literal, get_args

Category: TypeAlias = Literal[
    "general",
    "products",
    "offers",
    "brand",
    "audience",
    "competitors",
    "content",
]
EmbeddingStatus: TypeAlias = Literal["not_started", "processing", "completed"]

DOCUMENT_CATEGORIES: tuple[Category, ...] = get_args(Category)


def _all_categories() -> list[Category]:
    return list(DOCUMENT_CATEGORIES)


class SearchOptions(BaseModel):
    """Options for a semantic search over a user's documents"""

    categories: list[Category] = Field(
        default_factory=_all_categories,
        description="Document categories to search in",
    )
    threshold: float = Field(
        default=0.7, description="Minimum cosine similarity a chunk must reach"
    )
    limit: int = Field(default=10, ge=0, description="Maximum number of results")
    include_text: bool = Field(
        default=True, description="Whether chunk text is returned with each result"
    )


class HybridSearchOptions(SearchOptions):
    """Search options plus the weights used to blend semantic and keyword scores"""

    semantic_weight: float = Field(default=0.7, ge=0)
    keyword_weight: float = Field(default=0.3, ge=0)

    def semantic_options(self) -> SearchOptions:
        return SearchOptions(
            categories=self.categories,
            threshold=self.threshold,
            limit=self.limit,
            include_text=self.include_text,
        )


class RagContextOptions(BaseModel):
    """Options for assembling filtered, source-attributed RAG context"""

    categories: list[Category] | None = Field(
        default=None, description="Document categories to draw from (all when unset)"
    )
    threshold: float = Field(default=0.6, description="Minimum similarity score")
    max_chunks: int = Field(default=10, ge=1, description="Target number of chunks")
    max_tokens: int = Field(default=4000, ge=0, description="Token budget for the context")
    include_sources: bool = Field(default=True, description="Whether sources are returned")
    hybrid: bool = Field(default=False, description="Use hybrid instead of semantic search")
    semantic_weight: float = Field(default=0.7, ge=0)
    keyword_weight: float = Field(default=0.3, ge=0)

    def search_categories(self) -> list[Category]:
        if self.categories is None:
            return _all_categories()
        return list(self.categories)
