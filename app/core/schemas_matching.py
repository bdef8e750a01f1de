"""Pydantic schemas for the juror-persona matching engine.

Three groups live here:
- catalog records read from the store (signals, weights, personas, jurors, mappings)
- per-method scoring results and the combined ensemble match
- discriminative voir dire questions
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Signal values
# =============================================================================


class BooleanSignalValue(BaseModel):
    """Observed yes/no signal."""

    kind: Literal["boolean"] = "boolean"
    value: bool


class NumericSignalValue(BaseModel):
    """Observed numeric signal (count, score, level)."""

    kind: Literal["numeric"] = "numeric"
    value: float


class TextSignalValue(BaseModel):
    """Observed categorical or free-text signal."""

    kind: Literal["text"] = "text"
    value: str


class EmptySignalValue(BaseModel):
    """Signal recorded without a value."""

    kind: Literal["empty"] = "empty"


SignalValue = Annotated[
    Union[BooleanSignalValue, NumericSignalValue, TextSignalValue, EmptySignalValue],
    Field(discriminator="kind"),
]

_SIGNAL_VALUE_KINDS = {"boolean", "numeric", "text", "empty"}


def signal_value_from_raw(raw: Any) -> BooleanSignalValue | NumericSignalValue | TextSignalValue | EmptySignalValue:
    """
    Classify a raw stored value into a SignalValue variant.

    bool -> boolean; int/float -> numeric; the strings "true"/"false"
    (any case) -> boolean; numeric strings -> numeric; other strings -> text;
    None -> empty. Anything else (lists, objects) collapses to a boolean
    using ordinary truthiness.
    """
    if isinstance(raw, (BooleanSignalValue, NumericSignalValue, TextSignalValue, EmptySignalValue)):
        return raw
    if raw is None:
        return EmptySignalValue()
    if isinstance(raw, bool):
        return BooleanSignalValue(value=raw)
    if isinstance(raw, (int, float)):
        return NumericSignalValue(value=float(raw))
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in ("true", "false"):
            return BooleanSignalValue(value=lowered == "true")
        try:
            return NumericSignalValue(value=float(lowered))
        except ValueError:
            return TextSignalValue(value=raw)
    return BooleanSignalValue(value=bool(raw))


def is_signal_present(value: Any) -> bool:
    """
    Truthiness rule shared by every scorer.

    Boolean passes through, numeric is present when > 0, text is present
    when it equals "true" or is non-empty, empty is never present.

    Raw strings are classified first (see ``signal_value_from_raw``), so
    "false" and numeric strings such as "0" follow the boolean and numeric
    rules and are not present. This is the signal scorer's reading; the
    looser "any non-empty string" reading applies only to free text.
    """
    value = signal_value_from_raw(value)
    if isinstance(value, BooleanSignalValue):
        return value.value
    if isinstance(value, NumericSignalValue):
        return value.value > 0
    if isinstance(value, TextSignalValue):
        return value.value.lower() == "true" or len(value.value) > 0
    return False


def _coerce_signal_value(raw: Any) -> Any:
    # Already-tagged payloads (API round trips) are left for the discriminator
    if isinstance(raw, dict) and raw.get("kind") in _SIGNAL_VALUE_KINDS:
        return raw
    return signal_value_from_raw(raw)


# =============================================================================
# Catalog records
# =============================================================================


class WeightDirection(str, Enum):
    """Polarity of a persona-signal correlation."""

    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"

    def flipped(self) -> "WeightDirection":
        return WeightDirection.NEGATIVE if self is WeightDirection.POSITIVE else WeightDirection.POSITIVE


class SignalCategory(str, Enum):
    """Signal families in the catalog."""

    DEMOGRAPHIC = "DEMOGRAPHIC"
    BEHAVIORAL = "BEHAVIORAL"
    ATTITUDINAL = "ATTITUDINAL"
    LINGUISTIC = "LINGUISTIC"
    SOCIAL = "SOCIAL"


class Signal(BaseModel):
    """A named discrete observation that can be made about a juror."""

    signal_id: str = Field(..., description="Stable key, e.g. OCCUPATION_HEALTHCARE")
    name: str
    category: str = SignalCategory.ATTITUDINAL.value
    value_type: Literal["BOOLEAN", "CATEGORICAL", "NUMERIC", "TEXT"] = "BOOLEAN"
    description: str | None = None


class PersonaSignalWeight(BaseModel):
    """How strongly a signal correlates with a persona."""

    persona_id: str
    signal_id: str
    signal_name: str
    signal_category: str = SignalCategory.ATTITUDINAL.value
    weight: float = Field(..., ge=0.0, le=1.0)
    direction: WeightDirection


class JurorSignal(BaseModel):
    """A signal observed for a specific juror."""

    id: str | None = None
    juror_id: str
    signal_id: str
    signal_name: str
    signal_category: str = SignalCategory.ATTITUDINAL.value
    value: SignalValue
    extracted_at: datetime | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, raw: Any) -> Any:
        return _coerce_signal_value(raw)

    @property
    def present(self) -> bool:
        return is_signal_present(self.value)


class Persona(BaseModel):
    """Behavioral archetype used as the semantic-similarity source text."""

    id: str
    name: str
    description: str | None = None
    instant_read: str | None = None
    phrases_youll_hear: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)
    archetype: str | None = None
    organization_id: str | None = None
    is_active: bool = True

    @field_validator("phrases_youll_hear", mode="before")
    @classmethod
    def null_phrases(cls, raw: Any) -> Any:
        return [] if raw is None else raw

    @field_validator("attributes", mode="before")
    @classmethod
    def null_attributes(cls, raw: Any) -> Any:
        return {} if raw is None else raw


class ResearchArtifact(BaseModel):
    """A piece of background research attached to a juror."""

    id: str | None = None
    source_type: str = "research"
    summary: str | None = None
    raw_content: str | None = None
    user_action: str | None = None
    retrieved_at: datetime | None = None


class VoirDireResponse(BaseModel):
    """A question asked of the juror during voir dire and their answer."""

    id: str | None = None
    question_text: str
    response_summary: str | None = None
    yes_no_answer: bool | None = None
    response_timestamp: datetime | None = None

    @property
    def answered(self) -> bool:
        return bool(self.response_summary) or self.yes_no_answer is not None


class Juror(BaseModel):
    """Juror record with the evidence the narrative builder draws on."""

    id: str
    first_name: str | None = None
    last_name: str | None = None
    age: int | None = None
    occupation: str | None = None
    employer: str | None = None
    city: str | None = None
    questionnaire_data: dict[str, Any] = Field(default_factory=dict)
    research_artifacts: list[ResearchArtifact] = Field(default_factory=list)
    voir_dire_responses: list[VoirDireResponse] = Field(default_factory=list)
    panel_id: str | None = None
    case_id: str | None = None
    case_type: str | None = None
    jurisdiction: str | None = None

    @field_validator("questionnaire_data", mode="before")
    @classmethod
    def null_questionnaire(cls, raw: Any) -> Any:
        return {} if raw is None else raw

    @field_validator("research_artifacts", "voir_dire_responses", mode="before")
    @classmethod
    def null_evidence_lists(cls, raw: Any) -> Any:
        return [] if raw is None else raw

    @property
    def has_rich_narrative(self) -> bool:
        """Research artifacts or voir dire answers are on file."""
        return bool(self.research_artifacts) or bool(self.voir_dire_responses)


class JurorPersonaMapping(BaseModel):
    """Persisted outcome of a match attempt."""

    id: str
    juror_id: str
    persona_id: str
    persona_name: str | None = None
    mapping_type: Literal["primary", "secondary"] = "primary"
    source: Literal["ai_suggested", "user_assigned"] = "ai_suggested"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    rationale: str | None = None
    counterfactual: str | None = None
    is_confirmed: bool = False
    confirmed_by: str | None = None
    confirmed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Method scores
# =============================================================================


class SignalEvidence(BaseModel):
    """One signal's contribution to a signal-based score."""

    signal_id: str
    signal_name: str
    weight: float
    value: SignalValue | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, raw: Any) -> Any:
        return None if raw is None else _coerce_signal_value(raw)


class SignalBasedScore(BaseModel):
    """Explainable weighted-evidence score for one persona."""

    score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    supporting_signals: list[SignalEvidence] = Field(default_factory=list)
    contradicting_signals: list[SignalEvidence] = Field(default_factory=list)
    missing_signals: list[SignalEvidence] = Field(default_factory=list)


class EmbeddingScore(BaseModel):
    """Semantic-similarity score between juror narrative and persona description."""

    score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    narrative_length: int = 0
    degraded: bool = Field(
        default=False, description="True when the embedding capability failed"
    )


class BayesianPosterior(BaseModel):
    """Posterior distribution over the candidate personas."""

    posteriors: dict[str, float]
    confidence: float = Field(..., ge=0.0, le=1.0)
    entropy: float = Field(..., ge=0.0)


class EnsembleWeights(BaseModel):
    """Per-method contribution shares."""

    signal_based: float
    embedding: float
    bayesian: float

    @property
    def total(self) -> float:
        return self.signal_based + self.embedding + self.bayesian

    def normalized(self) -> "EnsembleWeights":
        total = self.total
        if total <= 0:
            return EnsembleWeights(signal_based=1 / 3, embedding=1 / 3, bayesian=1 / 3)
        return EnsembleWeights(
            signal_based=self.signal_based / total,
            embedding=self.embedding / total,
            bayesian=self.bayesian / total,
        )


class MethodBreakdown(BaseModel):
    """A value per scoring method, for audit display."""

    signal_based: float
    embedding: float
    bayesian: float


# =============================================================================
# Ensemble matches
# =============================================================================


class _MatchBase(BaseModel):
    persona_id: str
    probability: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    method_scores: MethodBreakdown
    method_confidences: MethodBreakdown
    supporting_signals: list[SignalEvidence] = Field(default_factory=list)
    contradicting_signals: list[SignalEvidence] = Field(default_factory=list)


class ExplainedMatch(_MatchBase):
    """Top-ranked match with generated rationale and counterfactual."""

    kind: Literal["explained"] = "explained"
    rationale: str
    counterfactual: str


class ScoreOnlyMatch(_MatchBase):
    """Lower-ranked match carrying only a deterministic summary."""

    kind: Literal["score_only"] = "score_only"
    summary: str


EnsembleMatch = Annotated[Union[ExplainedMatch, ScoreOnlyMatch], Field(discriminator="kind")]


# =============================================================================
# Discriminative questions
# =============================================================================


class AmbiguousPair(BaseModel):
    """Two top-ranked personas whose probabilities are too close to call."""

    persona_a_id: str
    persona_a_name: str
    persona_a_probability: float
    persona_b_id: str
    persona_b_name: str
    persona_b_probability: float

    @property
    def key(self) -> tuple[str, str]:
        """Order-independent identity of the pair."""
        return tuple(sorted((self.persona_a_id, self.persona_b_id)))  # type: ignore[return-value]


class DiscriminatingSignal(BaseModel):
    """An unobserved signal that would separate two personas."""

    signal_id: str
    signal_name: str
    signal_category: str = SignalCategory.ATTITUDINAL.value
    weight: float
    direction: WeightDirection
    information_gain: float
    persona_a_id: str
    persona_a_name: str
    persona_b_id: str
    persona_b_name: str


class PersonaPairTarget(BaseModel):
    """A persona pair a question is designed to separate."""

    persona_a_id: str
    persona_a_name: str
    persona_b_id: str
    persona_b_name: str
    expected_information_gain: float


class ImplicationDirection(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"


class PersonaImplication(BaseModel):
    """How an answer pattern moves one persona's probability."""

    persona_id: str
    probability_delta: float
    direction: ImplicationDirection


class ResponseInterpretation(BaseModel):
    """Rule for reading a class of answers."""

    response_pattern: str
    signals_to_extract: list[str] = Field(default_factory=list)
    persona_implications: list[PersonaImplication] = Field(default_factory=list)


class FollowUpQuestion(BaseModel):
    question: str
    trigger: str


class DiscriminativeQuestion(BaseModel):
    """A ranked voir dire question targeting ambiguous persona pairs."""

    question_text: str
    question_category: str
    discriminates_between: list[PersonaPairTarget] = Field(default_factory=list)
    response_interpretations: list[ResponseInterpretation] = Field(default_factory=list)
    follow_up_questions: list[FollowUpQuestion] = Field(default_factory=list)
    priority_score: float = 0.0
    priority_rationale: str = ""
    source: Literal["generated", "template"] = "template"
