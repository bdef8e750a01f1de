"""Tests for juror narrative and persona description assembly."""

from datetime import datetime, timedelta, timezone

from app.core.matching.narrative import JurorNarrativeBuilder, build_persona_description
from app.core.schemas_matching import (
    Juror,
    JurorSignal,
    Persona,
    ResearchArtifact,
    VoirDireResponse,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _signal(signal_id, name, category):
    return JurorSignal(
        juror_id="j1", signal_id=signal_id, signal_name=name, signal_category=category, value=True
    )


class TestBuildNarrative:
    def test_sections_in_order(self):
        juror = Juror(
            id="j1",
            age=52,
            occupation="Nurse",
            employer="County Hospital",
            city="Denver",
            questionnaire_data={"education": "BSN", "prior_jury_service": False},
            research_artifacts=[ResearchArtifact(summary="Volunteers at a clinic", retrieved_at=NOW)],
            voir_dire_responses=[
                VoirDireResponse(question_text="Ever sued anyone?", yes_no_answer=False)
            ],
            case_type="medical malpractice",
        )
        signals = [
            _signal("OCCUPATION_HEALTHCARE", "Healthcare worker", "DEMOGRAPHIC"),
            _signal("AUTHORITY_TRUST", "Trusts authority", "ATTITUDINAL"),
        ]

        narrative = JurorNarrativeBuilder().build_narrative(juror, signals)

        assert narrative.startswith("Demographics:\nAge: 52\nOccupation: Nurse")
        assert "Prior Jury Service: No" in narrative
        assert "DEMOGRAPHIC: Healthcare worker" in narrative
        assert "[research]: Volunteers at a clinic" in narrative
        assert "Q: Ever sued anyone?\nA: No" in narrative
        assert narrative.endswith("Case Context:\nCase Type: medical malpractice")
        assert narrative.index("Behavioral Indicators") < narrative.index("Research Findings")
        assert narrative.index("Research Findings") < narrative.index("Voir Dire Responses")

    def test_signal_names_deduplicated(self):
        signals = [_signal("A", "Skeptic", "ATTITUDINAL"), _signal("A", "Skeptic", "ATTITUDINAL")]
        narrative = JurorNarrativeBuilder().build_narrative(Juror(id="j1"), signals)
        assert narrative.count("Skeptic") == 1

    def test_only_three_most_recent_artifacts(self):
        artifacts = [
            ResearchArtifact(summary=f"finding {i}", retrieved_at=NOW - timedelta(days=i))
            for i in range(5)
        ]
        narrative = JurorNarrativeBuilder().build_narrative(
            Juror(id="j1", research_artifacts=artifacts), []
        )
        assert "finding 0" in narrative
        assert "finding 2" in narrative
        assert "finding 3" not in narrative

    def test_raw_content_truncated(self):
        artifact = ResearchArtifact(raw_content="x" * 500)
        narrative = JurorNarrativeBuilder().build_narrative(
            Juror(id="j1", research_artifacts=[artifact]), []
        )
        assert "x" * 200 in narrative
        assert "x" * 201 not in narrative

    def test_unanswered_voir_dire_skipped(self):
        juror = Juror(id="j1", voir_dire_responses=[VoirDireResponse(question_text="Pending?")])
        narrative = JurorNarrativeBuilder().build_narrative(juror, [])
        assert "Voir Dire" not in narrative

    def test_deterministic(self):
        juror = Juror(id="j1", age=30, occupation="Teacher")
        builder = JurorNarrativeBuilder()
        assert builder.build_narrative(juror, []) == builder.build_narrative(juror, [])


def test_build_summary():
    juror = Juror(id="j1", occupation="Engineer", age=41, questionnaire_data={"education": "MS"})
    signals = [_signal(f"S{i}", f"Trait {i}", "ATTITUDINAL") for i in range(7)]
    summary = JurorNarrativeBuilder().build_summary(juror, signals)
    assert summary.startswith("Engineer, age 41, MS, Key traits: Trait 0")
    assert "Trait 4" in summary
    assert "Trait 5" not in summary


def test_build_persona_description():
    persona = Persona(
        id="p1",
        name="Skeptical Engineer",
        instant_read="Wants data",
        phrases_youll_hear=["show me the numbers"],
        attributes={"risk": "low"},
    )
    text = build_persona_description(persona)
    assert text.startswith("Persona: Skeptical Engineer")
    assert "Characteristic Phrases: show me the numbers" in text
    assert 'Attributes: {"risk": "low"}' in text
