"""Persona weight and juror signal read operations."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_WEIGHT_COLUMNS = "persona_id, signal_id, weight, direction, signals(name, category)"
_JUROR_SIGNAL_COLUMNS = "id, juror_id, signal_id, value, extracted_at, signals(name, category)"


def list_persona_signal_weights(persona_ids: list[str]) -> list[dict[str, Any]]:
    """
    List persona-signal weights for a set of personas.

    Args:
        persona_ids: Persona ids

    Returns:
        Weight dicts with persona_id, signal_id, weight, direction and the
        embedded signal name/category
    """
    if not persona_ids:
        return []

    supabase = get_supabase()

    try:
        response = (
            supabase.table("signal_persona_weights")
            .select(_WEIGHT_COLUMNS)
            .in_("persona_id", persona_ids)
            .execute()
        )

        weights = response.data or []
        logger.debug(f"Fetched {len(weights)} weights for {len(persona_ids)} personas")
        return weights

    except Exception as e:
        logger.error(f"Failed to list persona weights: {e}")
        raise


def list_juror_signals(
    juror_ids: list[str],
    juror_signal_ids: list[str] | None = None,
) -> list[dict[str, Any]]:
    """
    List observed signals for one or more jurors, newest first.

    Args:
        juror_ids: Juror ids
        juror_signal_ids: Optional juror_signal row ids to restrict to

    Returns:
        Juror signal dicts with id, juror_id, signal_id, value, extracted_at
        and the embedded signal name/category
    """
    if not juror_ids:
        return []

    supabase = get_supabase()

    try:
        query = (
            supabase.table("juror_signals")
            .select(_JUROR_SIGNAL_COLUMNS)
            .in_("juror_id", juror_ids)
        )
        if juror_signal_ids:
            query = query.in_("id", juror_signal_ids)
        response = query.order("extracted_at", desc=True).execute()

        return response.data or []

    except Exception as e:
        logger.error(f"Failed to list juror signals for {juror_ids}: {e}")
        raise
