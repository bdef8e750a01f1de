"""Fake in-memory matching store for engine behavioral testing."""

from typing import Any

from app.core.schemas_matching import (
    Juror,
    JurorPersonaMapping,
    JurorSignal,
    Persona,
    PersonaSignalWeight,
    WeightDirection,
)


class FakeMatchingStore:
    """In-memory MatchingStore implementation for testing."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all stores to an empty catalog."""
        self.jurors: dict[str, Juror] = {}
        self.juror_signals: list[JurorSignal] = []
        self.weights: list[PersonaSignalWeight] = []
        self.personas: dict[str, Persona] = {}
        self.mappings: list[JurorPersonaMapping] = []
        self.case_jurors: dict[str, list[str]] = {}
        self.failing_weight_personas: set[str] = set()
        self.calls: list[tuple[str, Any]] = []

    # Builders

    def add_persona(self, persona_id: str, name: str | None = None, **fields: Any) -> Persona:
        persona = Persona(id=persona_id, name=name or persona_id.title(), **fields)
        self.personas[persona_id] = persona
        return persona

    def add_juror(self, juror_id: str, **fields: Any) -> Juror:
        juror = Juror(id=juror_id, **fields)
        self.jurors[juror_id] = juror
        if juror.case_id:
            self.case_jurors.setdefault(juror.case_id, []).append(juror_id)
        return juror

    def add_weight(
        self,
        persona_id: str,
        signal_id: str,
        weight: float,
        direction: WeightDirection | str = WeightDirection.POSITIVE,
        category: str = "ATTITUDINAL",
    ) -> PersonaSignalWeight:
        row = PersonaSignalWeight(
            persona_id=persona_id,
            signal_id=signal_id,
            signal_name=signal_id.replace("_", " ").title(),
            signal_category=category,
            weight=weight,
            direction=direction,
        )
        self.weights.append(row)
        return row

    def observe(
        self, juror_id: str, signal_id: str, value: Any = True, category: str = "ATTITUDINAL"
    ) -> JurorSignal:
        row = JurorSignal(
            id=f"{juror_id}:{signal_id}",
            juror_id=juror_id,
            signal_id=signal_id,
            signal_name=signal_id.replace("_", " ").title(),
            signal_category=category,
            value=value,
        )
        self.juror_signals.append(row)
        return row

    def add_mapping(self, juror_id: str, persona_id: str, confidence: float, **fields: Any):
        mapping = JurorPersonaMapping(
            id=f"map-{len(self.mappings) + 1}",
            juror_id=juror_id,
            persona_id=persona_id,
            confidence=confidence,
            **fields,
        )
        self.mappings.append(mapping)
        return mapping

    # MatchingStore protocol

    async def get_juror(self, juror_id: str) -> Juror | None:
        self.calls.append(("get_juror", juror_id))
        return self.jurors.get(juror_id)

    async def list_juror_signals(
        self, juror_id: str, juror_signal_ids: list[str] | None = None
    ) -> list[JurorSignal]:
        self.calls.append(("list_juror_signals", juror_id))
        rows = [js for js in self.juror_signals if js.juror_id == juror_id]
        if juror_signal_ids is not None:
            rows = [js for js in rows if js.id in juror_signal_ids]
        return rows

    async def list_signals_for_jurors(self, juror_ids: list[str]) -> list[JurorSignal]:
        return [js for js in self.juror_signals if js.juror_id in juror_ids]

    async def list_persona_weights(self, persona_id: str) -> list[PersonaSignalWeight]:
        self.calls.append(("list_persona_weights", persona_id))
        if persona_id in self.failing_weight_personas:
            raise RuntimeError(f"weights unavailable for {persona_id}")
        return [w for w in self.weights if w.persona_id == persona_id]

    async def list_weights_for_personas(
        self, persona_ids: list[str]
    ) -> list[PersonaSignalWeight]:
        return [w for w in self.weights if w.persona_id in persona_ids]

    async def get_persona(self, persona_id: str) -> Persona | None:
        self.calls.append(("get_persona", persona_id))
        return self.personas.get(persona_id)

    async def get_personas(self, persona_ids: list[str]) -> dict[str, Persona]:
        return {pid: self.personas[pid] for pid in persona_ids if pid in self.personas}

    async def list_active_persona_ids(self, organization_id: str | None = None) -> list[str]:
        return [
            p.id
            for p in self.personas.values()
            if p.is_active and p.organization_id in (None, organization_id)
        ]

    async def list_primary_mappings(
        self, juror_id: str, persona_ids: list[str]
    ) -> list[JurorPersonaMapping]:
        return [
            m
            for m in self.mappings
            if m.juror_id == juror_id and m.persona_id in persona_ids and m.mapping_type == "primary"
        ]

    async def list_case_juror_ids(self, case_id: str) -> list[str]:
        return list(self.case_jurors.get(case_id, []))
