"""Database operations for juror_persona_mappings.

At most one mapping per juror may be confirmed. Every write path that
confirms a mapping clears the juror's other confirmations first.
"""

from datetime import UTC, datetime
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_MAPPING_COLUMNS = (
    "id, juror_id, persona_id, mapping_type, source, confidence, rationale, "
    "counterfactual, is_confirmed, confirmed_by, confirmed_at, created_at, updated_at, "
    "personas(name)"
)


def _flatten(row: dict[str, Any]) -> dict[str, Any]:
    persona = row.pop("personas", None) or {}
    row["persona_name"] = persona.get("name")
    return row


def list_primary_mappings(juror_id: str, persona_ids: list[str]) -> list[dict[str, Any]]:
    """
    List primary mappings of a juror restricted to candidate personas.

    Args:
        juror_id: Juror id
        persona_ids: Candidate persona ids

    Returns:
        Mapping dicts
    """
    if not persona_ids:
        return []

    supabase = get_supabase()

    response = (
        supabase.table("juror_persona_mappings")
        .select(_MAPPING_COLUMNS)
        .eq("juror_id", juror_id)
        .eq("mapping_type", "primary")
        .in_("persona_id", persona_ids)
        .execute()
    )

    return [_flatten(row) for row in (response.data or [])]


def list_mappings(juror_id: str) -> list[dict[str, Any]]:
    """
    List every mapping for a juror, primary first then by confidence.

    Args:
        juror_id: Juror id

    Returns:
        Mapping dicts including persona_name
    """
    supabase = get_supabase()

    response = (
        supabase.table("juror_persona_mappings")
        .select(_MAPPING_COLUMNS)
        .eq("juror_id", juror_id)
        .order("mapping_type", desc=False)
        .order("confidence", desc=True)
        .execute()
    )

    return [_flatten(row) for row in (response.data or [])]


def get_mapping(juror_id: str, mapping_id: str) -> dict[str, Any] | None:
    """Get one mapping, only if it belongs to the juror."""
    supabase = get_supabase()

    response = (
        supabase.table("juror_persona_mappings")
        .select(_MAPPING_COLUMNS)
        .eq("id", mapping_id)
        .eq("juror_id", juror_id)
        .maybe_single()
        .execute()
    )

    data = response.data if response else None
    return _flatten(data) if data else None


def upsert_primary_mapping(
    juror_id: str,
    persona_id: str,
    confidence: float,
    rationale: str | None = None,
    counterfactual: str | None = None,
    source: str = "ai_suggested",
    confirmed_by: str | None = None,
) -> dict[str, Any]:
    """
    Create or update the primary mapping of a juror to a persona.

    When confirmed_by is given the mapping is stored confirmed, after every
    other confirmed mapping of the juror has been cleared.

    Args:
        juror_id: Juror id
        persona_id: Persona id
        confidence: Match confidence (0-1)
        rationale: Optional rationale text
        counterfactual: Optional counterfactual text
        source: ai_suggested or user_assigned
        confirmed_by: User id confirming the mapping, if any

    Returns:
        Stored mapping dict
    """
    supabase = get_supabase()
    now = datetime.now(UTC).isoformat()

    payload: dict[str, Any] = {
        "confidence": confidence,
        "rationale": rationale,
        "counterfactual": counterfactual,
        "source": source,
        "updated_at": now,
    }
    if confirmed_by:
        clear_confirmations(juror_id)
        payload.update({"is_confirmed": True, "confirmed_by": confirmed_by, "confirmed_at": now})

    existing = (
        supabase.table("juror_persona_mappings")
        .select("id")
        .eq("juror_id", juror_id)
        .eq("persona_id", persona_id)
        .eq("mapping_type", "primary")
        .limit(1)
        .execute()
    )

    if existing.data:
        mapping_id = existing.data[0]["id"]
        response = (
            supabase.table("juror_persona_mappings")
            .update(payload)
            .eq("id", mapping_id)
            .execute()
        )
        logger.info(
            f"Updated primary mapping {mapping_id}",
            extra={"juror_id": juror_id, "persona_id": persona_id},
        )
    else:
        response = (
            supabase.table("juror_persona_mappings")
            .insert(
                {
                    "juror_id": juror_id,
                    "persona_id": persona_id,
                    "mapping_type": "primary",
                    "created_at": now,
                    **payload,
                }
            )
            .execute()
        )
        logger.info(
            "Created primary mapping",
            extra={"juror_id": juror_id, "persona_id": persona_id},
        )

    if not response.data:
        raise ValueError(f"Failed to store mapping for juror {juror_id}")
    return response.data[0]


def clear_confirmations(juror_id: str, except_mapping_id: str | None = None) -> None:
    """Unconfirm every confirmed mapping of a juror (optionally sparing one)."""
    supabase = get_supabase()

    query = (
        supabase.table("juror_persona_mappings")
        .update({"is_confirmed": False, "confirmed_by": None, "confirmed_at": None})
        .eq("juror_id", juror_id)
        .eq("is_confirmed", True)
    )
    if except_mapping_id:
        query = query.neq("id", except_mapping_id)
    query.execute()


def confirm_mapping(juror_id: str, mapping_id: str, user_id: str | None) -> dict[str, Any]:
    """
    Confirm an existing mapping, unconfirming the juror's others.

    Args:
        juror_id: Juror id
        mapping_id: Mapping id (must belong to juror)
        user_id: Confirming user

    Returns:
        Updated mapping dict

    Raises:
        ValueError: If the mapping does not exist for this juror
    """
    supabase = get_supabase()

    clear_confirmations(juror_id, except_mapping_id=mapping_id)

    response = (
        supabase.table("juror_persona_mappings")
        .update(
            {
                "is_confirmed": True,
                "confirmed_by": user_id,
                "confirmed_at": datetime.now(UTC).isoformat(),
            }
        )
        .eq("id", mapping_id)
        .eq("juror_id", juror_id)
        .execute()
    )

    if not response.data:
        raise ValueError(f"Mapping {mapping_id} not found for juror {juror_id}")

    logger.info(f"Confirmed mapping {mapping_id}", extra={"juror_id": juror_id})
    return response.data[0]


def override_mapping(
    juror_id: str,
    persona_id: str,
    user_id: str | None,
    rationale: str | None = None,
) -> dict[str, Any]:
    """
    Replace the juror's confirmed persona with a user-chosen one.

    Args:
        juror_id: Juror id
        persona_id: Persona the user assigns
        user_id: Assigning user
        rationale: Optional user rationale

    Returns:
        Stored, confirmed mapping dict
    """
    return upsert_primary_mapping(
        juror_id=juror_id,
        persona_id=persona_id,
        confidence=1.0,
        rationale=rationale or "User override",
        source="user_assigned",
        confirmed_by=user_id or "unknown",
    )
