"""Juror read operations (juror row plus its research, voir dire and case)."""

from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

# Research artifacts the attorney has not rejected
ACTIVE_ARTIFACT_ACTIONS = ("confirmed", "pending")

_JUROR_COLUMNS = (
    "id, first_name, last_name, age, occupation, employer, city, questionnaire_data, "
    "panel_id, panels(case_id, cases(case_type, jurisdiction))"
)


def get_juror(juror_id: str) -> dict[str, Any] | None:
    """
    Get a juror with case context, research artifacts and voir dire responses.

    Research artifacts are restricted to confirmed/pending ones, newest first
    (up to 10). Voir dire responses are newest first (up to 20, answered or not).

    Args:
        juror_id: Juror id

    Returns:
        Juror dict with flattened case_id/case_type/jurisdiction plus
        research_artifacts and voir_dire_responses lists, or None if not found
    """
    supabase = get_supabase()

    response = (
        supabase.table("jurors")
        .select(_JUROR_COLUMNS)
        .eq("id", juror_id)
        .maybe_single()
        .execute()
    )
    juror = response.data if response else None
    if not juror:
        return None

    panel = juror.pop("panels", None) or {}
    case = panel.get("cases") or {}
    juror["case_id"] = panel.get("case_id")
    juror["case_type"] = case.get("case_type")
    juror["jurisdiction"] = case.get("jurisdiction")

    artifacts = (
        supabase.table("research_artifacts")
        .select("id, source_type, extracted_snippets, raw_content, user_action, retrieved_at")
        .eq("juror_id", juror_id)
        .in_("user_action", list(ACTIVE_ARTIFACT_ACTIONS))
        .order("retrieved_at", desc=True)
        .limit(10)
        .execute()
    )
    research_artifacts = []
    for row in artifacts.data or []:
        snippets = row.pop("extracted_snippets", None) or {}
        row["summary"] = snippets.get("summary") if isinstance(snippets, dict) else None
        research_artifacts.append(row)
    juror["research_artifacts"] = research_artifacts

    voir_dire = (
        supabase.table("voir_dire_responses")
        .select("id, question_text, response_summary, yes_no_answer, response_timestamp")
        .eq("juror_id", juror_id)
        .order("response_timestamp", desc=True)
        .limit(20)
        .execute()
    )
    juror["voir_dire_responses"] = voir_dire.data or []

    return juror


def list_case_juror_ids(case_id: str) -> list[str]:
    """
    List ids of every juror seated on any panel of a case.

    Args:
        case_id: Case id

    Returns:
        Juror ids
    """
    supabase = get_supabase()

    panels = supabase.table("panels").select("id").eq("case_id", case_id).execute()
    panel_ids = [row["id"] for row in (panels.data or [])]
    if not panel_ids:
        return []

    response = supabase.table("jurors").select("id").in_("panel_id", panel_ids).execute()
    return [row["id"] for row in (response.data or [])]
