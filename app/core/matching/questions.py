"""Discriminative voir dire questions.

Finds persona pairs the ensemble cannot separate for a juror (or for
several jurors on a panel), picks the unobserved signals that would
separate them, and phrases questions that elicit those signals.

Question text comes from the text-generation capability with a fixed
template fallback. Which personas a question targets, its information
gain and its priority are always computed here, never taken from
generated text.
"""

import asyncio
import json
from dataclasses import dataclass, field

from pydantic import ValidationError

from app.core.config import get_settings
from app.core.llm import TextCompleter, complete_text, parse_llm_json_dict
from app.core.logging import get_logger
from app.core.matching.ensemble import EnsembleMatcher
from app.core.matching.information import binary_entropy, rank_discriminating_signals
from app.core.schemas_matching import (
    AmbiguousPair,
    DiscriminatingSignal,
    DiscriminativeQuestion,
    EnsembleMatch,
    FollowUpQuestion,
    ImplicationDirection,
    Juror,
    PersonaImplication,
    PersonaPairTarget,
    PersonaSignalWeight,
    ResponseInterpretation,
    SignalCategory,
    WeightDirection,
)
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

AMBIGUITY_TOP_RANKED = 3
AMBIGUITY_THRESHOLD = 0.2
MAX_JUROR_SIGNALS = 10
MAX_PAIR_SIGNALS = 5
MAX_TEMPLATE_QUESTIONS = 3
TEMPLATE_PROBABILITY_DELTA = 0.15

# Fixed heuristic: assume asking a question removes 30% of the pair's entropy
EXPECTED_ENTROPY_REDUCTION = 0.3
PRIORITY_SCALE = 2.0

PANEL_BOOST_PER_JUROR = 0.1
MAX_PANEL_QUESTIONS = 20

DEFAULT_CASE_TYPE = "civil"
DEFAULT_JURISDICTION = "general"

# (signal_id prefix, question text, question category)
TEMPLATE_QUESTIONS: list[tuple[str, str, str]] = [
    (
        "OCCUPATION_",
        "Tell me about your work. What do you do for a living?",
        SignalCategory.DEMOGRAPHIC.value,
    ),
    (
        "AUTHORITY_",
        "How do you feel about following rules that you personally disagree with?",
        SignalCategory.ATTITUDINAL.value,
    ),
    (
        "CORPORATE_",
        "Have you or anyone close to you had an experience with a large company "
        "that affected your view of corporations?",
        SignalCategory.ATTITUDINAL.value,
    ),
    (
        "EVIDENCE_",
        "When you make an important decision, do you tend to go with your gut "
        "or do you prefer to gather a lot of information first?",
        SignalCategory.ATTITUDINAL.value,
    ),
]


@dataclass
class SharedAmbiguity:
    """An ambiguous pair shared by several jurors on a panel."""

    pair: AmbiguousPair
    juror_ids: list[str] = field(default_factory=list)


# =============================================================================
# Pure helpers
# =============================================================================


def identify_ambiguous_pairs(
    matches: list[EnsembleMatch],
    persona_names: dict[str, str] | None = None,
) -> list[AmbiguousPair]:
    """Pairs among the top 3 ranked matches whose probabilities differ by < 0.20."""
    persona_names = persona_names or {}
    top = matches[:AMBIGUITY_TOP_RANKED]

    pairs: list[AmbiguousPair] = []
    for i, match_a in enumerate(top):
        for match_b in top[i + 1 :]:
            if abs(match_a.probability - match_b.probability) < AMBIGUITY_THRESHOLD:
                pairs.append(
                    AmbiguousPair(
                        persona_a_id=match_a.persona_id,
                        persona_a_name=persona_names.get(match_a.persona_id, match_a.persona_id),
                        persona_a_probability=match_a.probability,
                        persona_b_id=match_b.persona_id,
                        persona_b_name=persona_names.get(match_b.persona_id, match_b.persona_id),
                        persona_b_probability=match_b.probability,
                    )
                )
    return pairs


def find_shared_ambiguous_pairs(
    matches_by_juror: dict[str, list[EnsembleMatch]],
    persona_names: dict[str, str] | None = None,
) -> list[SharedAmbiguity]:
    """Ambiguous pairs that occur for more than one juror, in either order."""
    shared: dict[tuple[str, str], SharedAmbiguity] = {}
    for juror_id, matches in matches_by_juror.items():
        for pair in identify_ambiguous_pairs(matches, persona_names):
            entry = shared.setdefault(pair.key, SharedAmbiguity(pair=pair))
            entry.juror_ids.append(juror_id)
    return [entry for entry in shared.values() if len(entry.juror_ids) > 1]


def pair_targets(signals: list[DiscriminatingSignal]) -> list[PersonaPairTarget]:
    """One target per distinct pair, carrying the best information gain seen."""
    targets: dict[tuple[str, str], PersonaPairTarget] = {}
    for signal in signals:
        key = tuple(sorted((signal.persona_a_id, signal.persona_b_id)))
        existing = targets.get(key)
        if existing is None or signal.information_gain > existing.expected_information_gain:
            targets[key] = PersonaPairTarget(
                persona_a_id=signal.persona_a_id,
                persona_a_name=signal.persona_a_name,
                persona_b_id=signal.persona_b_id,
                persona_b_name=signal.persona_b_name,
                expected_information_gain=signal.information_gain,
            )
    return list(targets.values())


def default_interpretation(signal: DiscriminatingSignal) -> ResponseInterpretation:
    """A positive answer moves A and B apart by a fixed delta, per the signal's direction."""
    favors_a = signal.direction is WeightDirection.POSITIVE
    delta = TEMPLATE_PROBABILITY_DELTA
    return ResponseInterpretation(
        response_pattern="Positive response indicating signal presence",
        signals_to_extract=[signal.signal_id],
        persona_implications=[
            PersonaImplication(
                persona_id=signal.persona_a_id,
                probability_delta=delta if favors_a else -delta,
                direction=ImplicationDirection.INCREASE if favors_a else ImplicationDirection.DECREASE,
            ),
            PersonaImplication(
                persona_id=signal.persona_b_id,
                probability_delta=-delta if favors_a else delta,
                direction=ImplicationDirection.DECREASE if favors_a else ImplicationDirection.INCREASE,
            ),
        ],
    )


def template_question(signal: DiscriminatingSignal) -> DiscriminativeQuestion:
    for prefix, text, category in TEMPLATE_QUESTIONS:
        if signal.signal_id.startswith(prefix):
            question_text, question_category = text, category
            break
    else:
        question_text = f"Can you tell me more about your views on {signal.signal_name.lower()}?"
        question_category = SignalCategory.ATTITUDINAL.value

    return DiscriminativeQuestion(
        question_text=question_text,
        question_category=question_category,
        discriminates_between=pair_targets([signal]),
        response_interpretations=[default_interpretation(signal)],
        priority_score=signal.information_gain,
        priority_rationale=(
            f"This question discriminates between {signal.persona_a_name} and "
            f"{signal.persona_b_name} with {signal.information_gain * 100:.0f}% information gain."
        ),
        source="template",
    )


def template_questions(signals: list[DiscriminatingSignal]) -> list[DiscriminativeQuestion]:
    """Fallback questions keyed by signal-id prefix, for the first 3 signals."""
    return [template_question(signal) for signal in signals[:MAX_TEMPLATE_QUESTIONS]]


def build_question_prompt(
    category: str,
    signals: list[DiscriminatingSignal],
    case_type: str | None,
    jurisdiction: str | None,
) -> str:
    persona_lines = {}
    for signal in signals:
        persona_lines[signal.persona_a_id] = signal.persona_a_name
        persona_lines[signal.persona_b_id] = signal.persona_b_name

    parts = ["Generate voir dire questions designed to identify the following signals:", ""]
    for signal in signals:
        parts.append(
            f"- {signal.signal_name} [{signal.signal_id}] (discriminates between "
            f"{signal.persona_a_name} and {signal.persona_b_name})"
        )
    parts.append("")
    parts.append("Personas (use these ids in persona_implications):")
    for persona_id, name in persona_lines.items():
        parts.append(f"- {persona_id}: {name}")

    parts.append("")
    parts.append(f"Category: {category}")
    parts.append(f"Case Type: {case_type or DEFAULT_CASE_TYPE}")
    parts.append(f"Jurisdiction: {jurisdiction or DEFAULT_JURISDICTION}")
    parts.append("")
    parts.append(
        "Generate 2-3 natural, conversational voir dire questions that would help identify these signals."
    )
    parts.append("")
    parts.append("For each question, provide:")
    parts.append("1. The question text (open-ended when possible)")
    parts.append("2. What to listen for in responses")
    parts.append("3. How different responses would affect persona probabilities")
    parts.append("4. Follow-up questions if the response is ambiguous")
    parts.append("")
    parts.append("Return ONLY a JSON array:")
    parts.append(
        json.dumps(
            [
                {
                    "question_text": "...",
                    "response_interpretations": [
                        {
                            "response_pattern": "...",
                            "signals_to_extract": ["SIGNAL_ID"],
                            "persona_implications": [
                                {
                                    "persona_id": "...",
                                    "probability_delta": 0.15,
                                    "direction": "INCREASE",
                                }
                            ],
                        }
                    ],
                    "follow_up_questions": [{"question": "...", "trigger": "..."}],
                    "priority_rationale": "...",
                }
            ],
            indent=2,
        )
    )
    return "\n".join(parts)


def _parse_interpretations(
    raw_items: list, persona_ids: set[str], signal_ids: set[str]
) -> list[ResponseInterpretation]:
    interpretations: list[ResponseInterpretation] = []
    for item in raw_items if isinstance(raw_items, list) else []:
        try:
            interpretation = ResponseInterpretation.model_validate(item)
        except ValidationError:
            continue
        interpretation.persona_implications = [
            imp for imp in interpretation.persona_implications if imp.persona_id in persona_ids
        ]
        interpretation.signals_to_extract = [
            sid for sid in interpretation.signals_to_extract if sid in signal_ids
        ]
        if interpretation.persona_implications:
            interpretations.append(interpretation)
    return interpretations


def _parse_follow_ups(raw_items: list) -> list[FollowUpQuestion]:
    follow_ups: list[FollowUpQuestion] = []
    for item in raw_items if isinstance(raw_items, list) else []:
        if isinstance(item, str) and item.strip():
            follow_ups.append(FollowUpQuestion(question=item.strip(), trigger="Ambiguous response"))
            continue
        try:
            follow_ups.append(FollowUpQuestion.model_validate(item))
        except ValidationError:
            continue
    return follow_ups


def parse_generated_questions(
    raw_output: str,
    category: str,
    signals: list[DiscriminatingSignal],
) -> list[DiscriminativeQuestion]:
    """
    Parse generated questions defensively.

    Pair targets come from the signals. Interpretations that name unknown
    personas are dropped and replaced by the default ones when nothing
    usable remains.

    Raises:
        ValueError: If the output holds no usable question
    """
    parsed = parse_llm_json_dict(raw_output)
    if isinstance(parsed, dict):
        parsed = parsed.get("questions", [])
    if not isinstance(parsed, list):
        raise ValueError("Expected a JSON array of questions")

    targets = pair_targets(signals)
    persona_ids = {pid for s in signals for pid in (s.persona_a_id, s.persona_b_id)}
    signal_ids = {s.signal_id for s in signals}
    best_gain = max(s.information_gain for s in signals)

    questions: list[DiscriminativeQuestion] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        text = str(item.get("question_text") or item.get("questionText") or "").strip()
        if not text:
            continue

        interpretations = _parse_interpretations(
            item.get("response_interpretations") or item.get("responseInterpretations") or [],
            persona_ids,
            signal_ids,
        )
        questions.append(
            DiscriminativeQuestion(
                question_text=text,
                question_category=category,
                discriminates_between=targets,
                response_interpretations=interpretations
                or [default_interpretation(s) for s in signals],
                follow_up_questions=_parse_follow_ups(
                    item.get("follow_up_questions") or item.get("followUpQuestions") or []
                ),
                priority_score=best_gain,
                priority_rationale=str(item.get("priority_rationale") or "Generated question"),
                source="generated",
            )
        )

    if not questions:
        raise ValueError("No usable questions in generated output")
    return questions


def question_priority(question: DiscriminativeQuestion, probabilities: dict[str, float]) -> float:
    """
    Estimated entropy reduction across the pairs a question targets.

    For each pair with known probabilities: binary entropy of the
    normalized pair times EXPECTED_ENTROPY_REDUCTION. The sum is scaled by
    PRIORITY_SCALE and capped at 1.
    """
    total_gain = 0.0
    for target in question.discriminates_between:
        prob_a = probabilities.get(target.persona_a_id)
        prob_b = probabilities.get(target.persona_b_id)
        if prob_a is None or prob_b is None:
            continue
        total_gain += binary_entropy(prob_a, prob_b) * EXPECTED_ENTROPY_REDUCTION
    return min(1.0, total_gain * PRIORITY_SCALE)


def rank_questions_by_information_gain(
    questions: list[DiscriminativeQuestion],
    matches: list[EnsembleMatch],
) -> list[DiscriminativeQuestion]:
    """Recompute every priority from the current matches and sort descending."""
    probabilities = {m.persona_id: m.probability for m in matches}
    for question in questions:
        question.priority_score = question_priority(question, probabilities)
    return sorted(questions, key=lambda q: q.priority_score, reverse=True)


# =============================================================================
# Generator
# =============================================================================


class DiscriminativeQuestionGenerator:
    """Voir dire questions that separate ambiguous persona matches."""

    def __init__(
        self,
        store: MatchingStore,
        ensemble_matcher: EnsembleMatcher,
        complete: TextCompleter = complete_text,
    ):
        self.store = store
        self.ensemble_matcher = ensemble_matcher
        self._complete = complete

    async def candidate_persona_ids(
        self, persona_ids: list[str] | None, organization_id: str | None
    ) -> list[str]:
        if persona_ids:
            return list(dict.fromkeys(persona_ids))
        return await self.store.list_active_persona_ids(organization_id)

    async def generate_questions_for_juror(
        self,
        juror_id: str,
        persona_ids: list[str] | None = None,
        organization_id: str | None = None,
    ) -> list[DiscriminativeQuestion]:
        """
        Ranked questions for one juror.

        Empty when fewer than 2 personas can be matched or when no top-3
        pair is ambiguous.
        """
        candidates = await self.candidate_persona_ids(persona_ids, organization_id)
        if len(candidates) < 2:
            logger.info("Fewer than 2 candidate personas, no questions needed", extra={"juror_id": juror_id})
            return []

        matches = await self.ensemble_matcher.match_juror(juror_id, candidates)
        if len(matches) < 2:
            logger.info("Fewer than 2 matches, no questions needed", extra={"juror_id": juror_id})
            return []

        persona_names = await self._persona_names(
            [m.persona_id for m in matches[:AMBIGUITY_TOP_RANKED]]
        )
        pairs = identify_ambiguous_pairs(matches, persona_names)
        if not pairs:
            logger.info("No ambiguous persona pairs", extra={"juror_id": juror_id})
            return []

        signals = await self.find_discriminating_signals(juror_id, pairs)
        questions = await self.generate_questions_from_signals(juror_id, signals)
        ranked = rank_questions_by_information_gain(questions, matches)

        logger.info(
            f"Generated {len(ranked)} questions from {len(pairs)} ambiguous pairs "
            f"and {len(signals)} discriminating signals",
            extra={"juror_id": juror_id},
        )
        return ranked

    async def generate_panel_wide_questions(
        self,
        case_id: str,
        juror_ids: list[str] | None = None,
        persona_ids: list[str] | None = None,
        organization_id: str | None = None,
    ) -> list[DiscriminativeQuestion]:
        """
        Questions for ambiguities shared by more than one juror.

        Each question's priority is the mean per-juror priority, boosted by
        (1 + 0.1 * sharing jurors). At most 20 questions are returned.
        """
        if juror_ids is None:
            juror_ids = await self.store.list_case_juror_ids(case_id)
        juror_ids = list(dict.fromkeys(juror_ids))

        candidates = await self.candidate_persona_ids(persona_ids, organization_id)
        if len(juror_ids) < 2 or len(candidates) < 2:
            logger.info(
                f"Panel too small for shared questions ({len(juror_ids)} jurors, "
                f"{len(candidates)} personas)",
                extra={"case_id": case_id},
            )
            return []

        results = await asyncio.gather(
            *(self.ensemble_matcher.match_juror(jid, candidates) for jid in juror_ids),
            return_exceptions=True,
        )
        matches_by_juror: dict[str, list[EnsembleMatch]] = {}
        for juror_id, result in zip(juror_ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Matching failed for panel juror: {result}",
                    extra={"case_id": case_id, "juror_id": juror_id},
                )
                continue
            matches_by_juror[juror_id] = result

        top_ids = {m.persona_id for ms in matches_by_juror.values() for m in ms[:AMBIGUITY_TOP_RANKED]}
        persona_names = await self._persona_names(sorted(top_ids))
        shared_pairs = find_shared_ambiguous_pairs(matches_by_juror, persona_names)

        questions: list[DiscriminativeQuestion] = []
        for shared in shared_pairs:
            signals = await self.find_discriminating_signals_for_pair(shared.pair, shared.juror_ids)
            pair_questions = await self.generate_questions_from_signals(shared.juror_ids[0], signals)
            juror_count = len(shared.juror_ids)

            for question in pair_questions:
                per_juror = [
                    question_priority(question, {m.persona_id: m.probability for m in matches_by_juror[jid]})
                    for jid in shared.juror_ids
                ]
                base_priority = sum(per_juror) / juror_count
                question.priority_score = base_priority * (1 + juror_count * PANEL_BOOST_PER_JUROR)
                question.priority_rationale = (
                    f"{question.priority_rationale} This question is particularly valuable for "
                    f"{juror_count} jurors ({', '.join(shared.juror_ids)}) who all have ambiguity "
                    f"between {shared.pair.persona_a_name} and {shared.pair.persona_b_name}."
                ).strip()
            questions.extend(pair_questions)

        questions.sort(key=lambda q: q.priority_score, reverse=True)
        logger.info(
            f"Panel questions: {len(shared_pairs)} shared pairs, {len(questions)} questions "
            f"(returning {min(len(questions), MAX_PANEL_QUESTIONS)})",
            extra={"case_id": case_id},
        )
        return questions[:MAX_PANEL_QUESTIONS]

    # ------------------------------------------------------------------
    # Discriminating signals
    # ------------------------------------------------------------------

    async def _weights_by_persona(
        self, persona_ids: list[str]
    ) -> dict[str, list[PersonaSignalWeight]]:
        weights = await self.store.list_weights_for_personas(persona_ids)
        by_persona: dict[str, list[PersonaSignalWeight]] = {pid: [] for pid in persona_ids}
        for weight in weights:
            by_persona.setdefault(weight.persona_id, []).append(weight)
        return by_persona

    async def find_discriminating_signals(
        self, juror_id: str, pairs: list[AmbiguousPair]
    ) -> list[DiscriminatingSignal]:
        """Top 10 unobserved signals by power, pooled across the pairs."""
        persona_ids = list(
            dict.fromkeys(pid for p in pairs for pid in (p.persona_a_id, p.persona_b_id))
        )
        weights_by_persona, juror_signals = await asyncio.gather(
            self._weights_by_persona(persona_ids),
            self.store.list_juror_signals(juror_id),
        )
        observed = {js.signal_id for js in juror_signals}

        pooled: list[DiscriminatingSignal] = []
        for pair in pairs:
            pooled.extend(
                rank_discriminating_signals(
                    pair.persona_a_id,
                    weights_by_persona[pair.persona_a_id],
                    pair.persona_b_id,
                    weights_by_persona[pair.persona_b_id],
                    observed,
                    persona_a_name=pair.persona_a_name,
                    persona_b_name=pair.persona_b_name,
                )
            )

        pooled.sort(key=lambda s: s.information_gain, reverse=True)
        return pooled[:MAX_JUROR_SIGNALS]

    async def find_discriminating_signals_for_pair(
        self, pair: AmbiguousPair, juror_ids: list[str]
    ) -> list[DiscriminatingSignal]:
        """Top 5 signals for the pair not observed for any of the jurors."""
        weights_by_persona, juror_signals = await asyncio.gather(
            self._weights_by_persona([pair.persona_a_id, pair.persona_b_id]),
            self.store.list_signals_for_jurors(juror_ids),
        )
        observed = {js.signal_id for js in juror_signals}
        return rank_discriminating_signals(
            pair.persona_a_id,
            weights_by_persona[pair.persona_a_id],
            pair.persona_b_id,
            weights_by_persona[pair.persona_b_id],
            observed,
            limit=MAX_PAIR_SIGNALS,
            persona_a_name=pair.persona_a_name,
            persona_b_name=pair.persona_b_name,
        )

    # ------------------------------------------------------------------
    # Question phrasing
    # ------------------------------------------------------------------

    async def generate_questions_from_signals(
        self, juror_id: str, signals: list[DiscriminatingSignal]
    ) -> list[DiscriminativeQuestion]:
        """Group signals by category and phrase questions for each group."""
        if not signals:
            return []

        juror = await self.store.get_juror(juror_id)

        by_category: dict[str, list[DiscriminatingSignal]] = {}
        for signal in signals:
            by_category.setdefault(signal.signal_category, []).append(signal)

        per_category = await asyncio.gather(
            *(
                self._generate_for_category(category, category_signals, juror)
                for category, category_signals in by_category.items()
            )
        )
        return [question for questions in per_category for question in questions]

    async def _generate_for_category(
        self,
        category: str,
        signals: list[DiscriminatingSignal],
        juror: Juror | None,
    ) -> list[DiscriminativeQuestion]:
        prompt = build_question_prompt(
            category,
            signals,
            juror.case_type if juror else None,
            juror.jurisdiction if juror else None,
        )
        settings = get_settings()

        try:
            raw = await self._complete(
                prompt,
                max_tokens=settings.QUESTION_MAX_TOKENS,
                temperature=settings.QUESTION_TEMPERATURE,
            )
            return parse_generated_questions(raw, category, signals)
        except Exception as e:
            logger.warning(f"Question generation failed for {category} (non-fatal), using templates: {e}")
            return template_questions(signals)

    async def _persona_names(self, persona_ids: list[str]) -> dict[str, str]:
        if not persona_ids:
            return {}
        try:
            personas = await self.store.get_personas(persona_ids)
        except Exception as e:
            logger.warning(f"Could not load persona names: {e}")
            return {}
        return {pid: persona.name for pid, persona in personas.items()}
