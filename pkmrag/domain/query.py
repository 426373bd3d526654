"""Query parameters and result models for the query modes."""

from pydantic import BaseModel


class SourceInfo(BaseModel):
    """A note cited as context for an answer."""

    title: str
    description: str = ""
    location: str = ""


class SimilarNote(BaseModel):
    title: str
    description: str = ""
    similarity: float
    location: str = ""


class ModeResult(BaseModel):
    answer: str
    sources: list[SourceInfo] = []


class QueryConfig(BaseModel):
    """Retrieval parameters shared by the query modes."""

    top_k: int = 5
    similar_top_k: int = 10
    gap_analysis_top_k: int = 15
    similarity_threshold: float = 0.5
    redundancy_threshold: float = 0.7
    enable_query_rewrite: bool = False
    filter_linked_by_default: bool = True
