"""Request and response schemas for the matching API."""

from typing import Literal

from pydantic import BaseModel, Field

from app.core.schemas_matching import (
    DiscriminativeQuestion,
    EnsembleMatch,
    EnsembleWeights,
    JurorPersonaMapping,
)


class MatchRequest(BaseModel):
    """Request body for matching a juror."""

    persona_ids: list[str] | None = Field(
        None, description="Candidate personas (defaults to the active catalog)"
    )
    organization_id: str | None = Field(
        None, description="Organization whose personas join the system catalog"
    )
    top_n: int | None = Field(None, ge=1, description="Return only the top N matches")
    persist: bool = Field(True, description="Store the top match as the primary mapping")


class MatchOut(BaseModel):
    """A ranked match with persona display fields."""

    persona_name: str | None = None
    persona_description: str | None = None
    match: EnsembleMatch


class MatchResponse(BaseModel):
    juror_id: str
    weights: EnsembleWeights
    matches: list[MatchOut]
    count: int
    persisted_mapping_id: str | None = None


class MappingListResponse(BaseModel):
    mappings: list[JurorPersonaMapping]
    total: int


class ConfirmMappingRequest(BaseModel):
    """Confirm the suggested persona, or override it with another one."""

    action: Literal["confirm", "override"]
    override_persona_id: str | None = Field(
        None, description="Required when action is override"
    )
    rationale: str | None = None
    user_id: str | None = Field(None, description="User confirming or overriding")


class BreakdownResponse(BaseModel):
    """Per-method audit of one juror-persona match."""

    juror_id: str
    persona_id: str
    persona_name: str
    weights: EnsembleWeights
    match: EnsembleMatch


class QuestionsRequest(BaseModel):
    persona_ids: list[str] | None = None
    organization_id: str | None = None


class PanelQuestionsRequest(BaseModel):
    juror_ids: list[str] | None = Field(
        None, description="Panel jurors (defaults to every juror on the case)"
    )
    persona_ids: list[str] | None = None
    organization_id: str | None = None


class QuestionsResponse(BaseModel):
    questions: list[DiscriminativeQuestion]
    total: int


class CacheStatsResponse(BaseModel):
    persona_embeddings_cached: int
    juror_narratives_cached: int
