"""Persisted-store capability used by the matching engine.

The engine depends only on the ``MatchingStore`` protocol. The Supabase
implementation wraps the synchronous table functions in worker threads so
that scorer fan-out with asyncio.gather stays concurrent.
"""

import asyncio
from typing import Protocol

from app.core.logging import get_logger
from app.core.schemas_matching import (
    Juror,
    JurorPersonaMapping,
    JurorSignal,
    Persona,
    PersonaSignalWeight,
)
from app.db import jurors as jurors_db
from app.db import persona_mappings as mappings_db
from app.db import personas as personas_db
from app.db import signals as signals_db

logger = get_logger(__name__)


class MatchingStore(Protocol):
    """Read-only view of the catalog and juror evidence."""

    async def get_juror(self, juror_id: str) -> Juror | None: ...

    async def list_juror_signals(
        self, juror_id: str, juror_signal_ids: list[str] | None = None
    ) -> list[JurorSignal]: ...

    async def list_signals_for_jurors(self, juror_ids: list[str]) -> list[JurorSignal]: ...

    async def list_persona_weights(self, persona_id: str) -> list[PersonaSignalWeight]: ...

    async def list_weights_for_personas(
        self, persona_ids: list[str]
    ) -> list[PersonaSignalWeight]: ...

    async def get_persona(self, persona_id: str) -> Persona | None: ...

    async def get_personas(self, persona_ids: list[str]) -> dict[str, Persona]: ...

    async def list_active_persona_ids(self, organization_id: str | None = None) -> list[str]: ...

    async def list_primary_mappings(
        self, juror_id: str, persona_ids: list[str]
    ) -> list[JurorPersonaMapping]: ...

    async def list_case_juror_ids(self, case_id: str) -> list[str]: ...


def _weight_from_row(row: dict) -> PersonaSignalWeight:
    signal = row.get("signals") or {}
    return PersonaSignalWeight(
        persona_id=row["persona_id"],
        signal_id=row["signal_id"],
        signal_name=signal.get("name") or row["signal_id"],
        signal_category=signal.get("category") or "ATTITUDINAL",
        weight=float(row["weight"]),
        direction=row["direction"],
    )


def _juror_signal_from_row(row: dict) -> JurorSignal:
    signal = row.get("signals") or {}
    return JurorSignal(
        id=row.get("id"),
        juror_id=row["juror_id"],
        signal_id=row["signal_id"],
        signal_name=signal.get("name") or row["signal_id"],
        signal_category=signal.get("category") or "ATTITUDINAL",
        value=row.get("value"),
        extracted_at=row.get("extracted_at"),
    )


class SupabaseMatchingStore:
    """MatchingStore backed by the Supabase tables."""

    async def get_juror(self, juror_id: str) -> Juror | None:
        row = await asyncio.to_thread(jurors_db.get_juror, juror_id)
        return Juror.model_validate(row) if row else None

    async def list_juror_signals(
        self, juror_id: str, juror_signal_ids: list[str] | None = None
    ) -> list[JurorSignal]:
        rows = await asyncio.to_thread(
            signals_db.list_juror_signals, [juror_id], juror_signal_ids
        )
        return [_juror_signal_from_row(row) for row in rows]

    async def list_signals_for_jurors(self, juror_ids: list[str]) -> list[JurorSignal]:
        rows = await asyncio.to_thread(signals_db.list_juror_signals, juror_ids)
        return [_juror_signal_from_row(row) for row in rows]

    async def list_persona_weights(self, persona_id: str) -> list[PersonaSignalWeight]:
        return await self.list_weights_for_personas([persona_id])

    async def list_weights_for_personas(
        self, persona_ids: list[str]
    ) -> list[PersonaSignalWeight]:
        rows = await asyncio.to_thread(signals_db.list_persona_signal_weights, persona_ids)
        return [_weight_from_row(row) for row in rows]

    async def get_persona(self, persona_id: str) -> Persona | None:
        row = await asyncio.to_thread(personas_db.get_persona, persona_id)
        return Persona.model_validate(row) if row else None

    async def get_personas(self, persona_ids: list[str]) -> dict[str, Persona]:
        rows = await asyncio.to_thread(personas_db.list_personas_by_ids, persona_ids)
        return {row["id"]: Persona.model_validate(row) for row in rows}

    async def list_active_persona_ids(self, organization_id: str | None = None) -> list[str]:
        rows = await asyncio.to_thread(personas_db.list_active_personas, organization_id)
        return [row["id"] for row in rows]

    async def list_primary_mappings(
        self, juror_id: str, persona_ids: list[str]
    ) -> list[JurorPersonaMapping]:
        rows = await asyncio.to_thread(
            mappings_db.list_primary_mappings, juror_id, persona_ids
        )
        return [JurorPersonaMapping.model_validate(row) for row in rows]

    async def list_case_juror_ids(self, case_id: str) -> list[str]:
        return await asyncio.to_thread(jurors_db.list_case_juror_ids, case_id)
