"""Database operations for the personas table."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_PERSONA_COLUMNS = (
    "id, name, description, instant_read, phrases_youll_hear, attributes, "
    "archetype, organization_id, is_active"
)


def get_persona(persona_id: str) -> dict[str, Any] | None:
    """
    Get a single persona by ID.

    Args:
        persona_id: Persona id

    Returns:
        Persona dict or None if not found
    """
    supabase = get_supabase()

    response = (
        supabase.table("personas")
        .select(_PERSONA_COLUMNS)
        .eq("id", persona_id)
        .maybe_single()
        .execute()
    )

    return response.data if response else None


def list_personas_by_ids(persona_ids: list[str]) -> list[dict[str, Any]]:
    """
    Get several personas at once.

    Args:
        persona_ids: Persona ids

    Returns:
        Persona dicts (missing ids are simply absent)
    """
    if not persona_ids:
        return []

    supabase = get_supabase()

    response = (
        supabase.table("personas")
        .select(_PERSONA_COLUMNS)
        .in_("id", persona_ids)
        .execute()
    )

    return response.data or []


def list_active_personas(organization_id: str | None = None) -> list[dict[str, Any]]:
    """
    List active personas available to an organization.

    System personas (organization_id null) are always included.

    Args:
        organization_id: Optional organization id

    Returns:
        Persona dicts ordered by name
    """
    supabase = get_supabase()

    query = supabase.table("personas").select(_PERSONA_COLUMNS).eq("is_active", True)
    if organization_id:
        query = query.or_(f"organization_id.eq.{organization_id},organization_id.is.null")
    else:
        query = query.is_("organization_id", "null")

    response = query.order("name", desc=False).execute()

    personas = response.data or []
    logger.debug(
        f"Listed {len(personas)} active personas",
        extra={"organization_id": organization_id},
    )
    return personas
