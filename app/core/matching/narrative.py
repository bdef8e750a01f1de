"""Juror narrative assembly for embedding similarity.

The narrative is the only input to the embedding scorer, so its section
order and truncation limits are fixed:

1. Demographics (age, occupation, employer, location, questionnaire fields)
2. Behavioral indicators: observed signal names, deduplicated, grouped by category
3. Research findings: the 3 most recent artifacts, summary or first 200 chars
4. Voir dire: of the 20 most recent responses, those with an answer
5. Case context: case type
"""

import json
from datetime import datetime

from app.core.schemas_matching import Juror, JurorSignal, Persona, VoirDireResponse

MAX_RESEARCH_ARTIFACTS = 3
RESEARCH_CONTENT_CHARS = 200
MAX_VOIR_DIRE_RESPONSES = 20
QUESTION_PREVIEW_CHARS = 100
ANSWER_DETAIL_CHARS = 100
ANSWER_SUMMARY_CHARS = 150
SUMMARY_SIGNAL_COUNT = 5


def _sort_key_desc(value: datetime | None) -> float:
    return -value.timestamp() if value else float("inf")


def _format_answer(response: VoirDireResponse) -> str:
    if response.yes_no_answer is not None:
        answer = "Yes" if response.yes_no_answer else "No"
        if response.response_summary:
            answer += f" - {response.response_summary[:ANSWER_DETAIL_CHARS]}"
        return answer
    return (response.response_summary or "")[:ANSWER_SUMMARY_CHARS]


class JurorNarrativeBuilder:
    """Deterministic natural-language synopsis of a juror."""

    def build_narrative(self, juror: Juror, juror_signals: list[JurorSignal]) -> str:
        parts: list[str] = []

        parts.append("Demographics:")
        if juror.age:
            parts.append(f"Age: {juror.age}")
        if juror.occupation:
            parts.append(f"Occupation: {juror.occupation}")
        if juror.employer:
            parts.append(f"Employer: {juror.employer}")
        if juror.city:
            parts.append(f"Location: {juror.city}")
        questionnaire = juror.questionnaire_data or {}
        if questionnaire.get("education"):
            parts.append(f"Education: {questionnaire['education']}")
        if questionnaire.get("marital_status"):
            parts.append(f"Marital Status: {questionnaire['marital_status']}")
        if questionnaire.get("children") is not None:
            parts.append(f"Has Children: {questionnaire['children']}")
        if questionnaire.get("prior_jury_service") is not None:
            parts.append(
                f"Prior Jury Service: {'Yes' if questionnaire['prior_jury_service'] else 'No'}"
            )

        # dict preserves first-seen category order
        names_by_category: dict[str, list[str]] = {}
        for juror_signal in juror_signals:
            names = names_by_category.setdefault(juror_signal.signal_category, [])
            if juror_signal.signal_name not in names:
                names.append(juror_signal.signal_name)

        if names_by_category:
            parts.append("\nBehavioral Indicators:")
            for category, names in names_by_category.items():
                parts.append(f"{category}: {', '.join(names)}")

        artifacts = sorted(
            juror.research_artifacts, key=lambda a: _sort_key_desc(a.retrieved_at)
        )[:MAX_RESEARCH_ARTIFACTS]
        findings = []
        for artifact in artifacts:
            content = artifact.summary or (artifact.raw_content or "")[:RESEARCH_CONTENT_CHARS]
            if content:
                findings.append(f"[{artifact.source_type}]: {content}")
        if findings:
            parts.append("\nResearch Findings:")
            parts.extend(findings)

        recent_responses = sorted(
            juror.voir_dire_responses, key=lambda r: _sort_key_desc(r.response_timestamp)
        )[:MAX_VOIR_DIRE_RESPONSES]
        answered = [r for r in recent_responses if r.answered]
        if answered:
            parts.append("\nVoir Dire Responses:")
            for response in answered:
                parts.append(f"Q: {response.question_text[:QUESTION_PREVIEW_CHARS]}")
                parts.append(f"A: {_format_answer(response)}")

        if juror.case_type:
            parts.append("\nCase Context:")
            parts.append(f"Case Type: {juror.case_type}")

        return "\n".join(parts)

    def build_summary(self, juror: Juror, juror_signals: list[JurorSignal]) -> str:
        """One-line summary: occupation, age, education and a few signal names."""
        parts: list[str] = []
        if juror.occupation:
            parts.append(juror.occupation)
        if juror.age:
            parts.append(f"age {juror.age}")
        education = (juror.questionnaire_data or {}).get("education")
        if education:
            parts.append(str(education))

        top_signals = ", ".join(js.signal_name for js in juror_signals[:SUMMARY_SIGNAL_COUNT])
        if top_signals:
            parts.append(f"Key traits: {top_signals}")

        return ", ".join(parts)


def build_persona_description(persona: Persona) -> str:
    """Persona text embedded for similarity (name, summary, description, phrases, attributes)."""
    parts = [f"Persona: {persona.name}"]
    if persona.instant_read:
        parts.append(f"Quick Summary: {persona.instant_read}")
    if persona.description:
        parts.append(f"Description: {persona.description}")
    if persona.phrases_youll_hear:
        parts.append(f"Characteristic Phrases: {', '.join(persona.phrases_youll_hear)}")
    if persona.attributes:
        parts.append(f"Attributes: {json.dumps(persona.attributes, sort_keys=True)}")
    return "\n\n".join(parts)
