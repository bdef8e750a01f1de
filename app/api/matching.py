"""API endpoints for juror-persona matching and mapping confirmation."""

from fastapi import APIRouter, HTTPException, Path

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.matching import get_embedding_scorer, get_ensemble_matcher, get_matching_store
from app.core.schemas_matching import ExplainedMatch, JurorPersonaMapping
from app.core.schemas_matching_api import (
    BreakdownResponse,
    CacheStatsResponse,
    ConfirmMappingRequest,
    MappingListResponse,
    MatchOut,
    MatchRequest,
    MatchResponse,
)
from app.db.persona_mappings import (
    confirm_mapping,
    get_mapping,
    list_mappings,
    override_mapping,
    upsert_primary_mapping,
)

logger = get_logger(__name__)

router = APIRouter()


@router.post("/jurors/{juror_id}/match", response_model=MatchResponse)
async def match_juror(
    juror_id: str = Path(..., description="Juror UUID"),
    request: MatchRequest | None = None,
) -> MatchResponse:
    """
    Rank candidate personas for a juror.

    The top match is stored as the juror's primary mapping when its
    probability exceeds MAPPING_MIN_PROBABILITY.

    Raises:
        HTTPException 404: If juror not found
        HTTPException 400: If no personas are available
        HTTPException 500: If matching fails
    """
    request = request or MatchRequest()
    store = get_matching_store()

    try:
        juror = await store.get_juror(juror_id)
        if not juror:
            raise HTTPException(status_code=404, detail=f"Juror {juror_id} not found")

        persona_ids = request.persona_ids or await store.list_active_persona_ids(
            request.organization_id
        )
        if not persona_ids:
            raise HTTPException(status_code=400, detail="No personas available for matching")

        logger.info(
            f"Matching juror against {len(persona_ids)} personas",
            extra={"juror_id": juror_id},
        )

        matcher = get_ensemble_matcher()
        weights = await matcher.weights_for_juror(juror_id)
        if request.top_n:
            matches = await matcher.get_top_matches(juror_id, persona_ids, top_n=request.top_n)
        else:
            matches = await matcher.match_juror(juror_id, persona_ids)

        persisted_mapping_id = None
        settings = get_settings()
        if request.persist and matches and matches[0].probability > settings.MAPPING_MIN_PROBABILITY:
            top = matches[0]
            explained = isinstance(top, ExplainedMatch)
            stored = upsert_primary_mapping(
                juror_id=juror_id,
                persona_id=top.persona_id,
                confidence=top.probability,
                rationale=top.rationale if explained else None,
                counterfactual=top.counterfactual if explained else None,
            )
            persisted_mapping_id = stored.get("id")

        personas = await store.get_personas([m.persona_id for m in matches])
        results = [
            MatchOut(
                persona_name=personas[m.persona_id].name if m.persona_id in personas else None,
                persona_description=(
                    personas[m.persona_id].description if m.persona_id in personas else None
                ),
                match=m,
            )
            for m in matches
        ]

        return MatchResponse(
            juror_id=juror_id,
            weights=weights,
            matches=results,
            count=len(results),
            persisted_mapping_id=persisted_mapping_id,
        )

    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"Failed to match juror to personas: {str(e)}"
        logger.error(error_msg, extra={"juror_id": juror_id})
        raise HTTPException(status_code=500, detail=error_msg) from e


@router.get("/jurors/{juror_id}/matches", response_model=MappingListResponse)
async def get_juror_matches(
    juror_id: str = Path(..., description="Juror UUID"),
) -> MappingListResponse:
    """
    List persisted persona mappings for a juror, primary first.

    Raises:
        HTTPException 500: If database operation fails
    """
    try:
        mappings = [JurorPersonaMapping.model_validate(row) for row in list_mappings(juror_id)]
        return MappingListResponse(mappings=mappings, total=len(mappings))

    except Exception as e:
        error_msg = f"Failed to list mappings: {str(e)}"
        logger.error(error_msg, extra={"juror_id": juror_id})
        raise HTTPException(status_code=500, detail=error_msg) from e


@router.post(
    "/jurors/{juror_id}/matches/{mapping_id}/confirm",
    response_model=JurorPersonaMapping,
)
async def confirm_juror_match(
    juror_id: str = Path(..., description="Juror UUID"),
    mapping_id: str = Path(..., description="Mapping UUID"),
    request: ConfirmMappingRequest = ...,
) -> JurorPersonaMapping:
    """
    Confirm a suggested mapping or override it with another persona.

    Either way the juror ends up with exactly one confirmed mapping.

    Raises:
        HTTPException 400: If override is requested without a persona
        HTTPException 404: If mapping or override persona not found
        HTTPException 500: If database operation fails
    """
    try:
        mapping = get_mapping(juror_id, mapping_id)
        if not mapping:
            raise HTTPException(
                status_code=404,
                detail=f"Mapping {mapping_id} not found for juror {juror_id}",
            )

        if request.action == "confirm":
            stored = confirm_mapping(juror_id, mapping_id, request.user_id)
        else:
            if not request.override_persona_id:
                raise HTTPException(
                    status_code=400,
                    detail="override_persona_id is required when action is override",
                )
            persona = await get_matching_store().get_persona(request.override_persona_id)
            if not persona:
                raise HTTPException(
                    status_code=404,
                    detail=f"Persona {request.override_persona_id} not found",
                )
            stored = override_mapping(
                juror_id=juror_id,
                persona_id=persona.id,
                user_id=request.user_id,
                rationale=request.rationale,
            )

        logger.info(
            f"Mapping {request.action} by {request.user_id or 'unknown'}",
            extra={"juror_id": juror_id},
        )
        return JurorPersonaMapping.model_validate(stored)

    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"Failed to {request.action} mapping: {str(e)}"
        logger.error(error_msg, extra={"juror_id": juror_id})
        raise HTTPException(status_code=500, detail=error_msg) from e


@router.get(
    "/jurors/{juror_id}/personas/{persona_id}/breakdown",
    response_model=BreakdownResponse,
)
async def get_match_breakdown(
    juror_id: str = Path(..., description="Juror UUID"),
    persona_id: str = Path(..., description="Persona UUID"),
) -> BreakdownResponse:
    """
    Method-by-method breakdown of a single juror-persona match.

    Raises:
        HTTPException 404: If juror, persona or match not found
        HTTPException 500: If matching fails
    """
    store = get_matching_store()

    try:
        juror = await store.get_juror(juror_id)
        if not juror:
            raise HTTPException(status_code=404, detail=f"Juror {juror_id} not found")

        persona = await store.get_persona(persona_id)
        if not persona:
            raise HTTPException(status_code=404, detail=f"Persona {persona_id} not found")

        matcher = get_ensemble_matcher()
        weights = await matcher.weights_for_juror(juror_id)
        matches = await matcher.match_juror(juror_id, [persona_id])
        match = next((m for m in matches if m.persona_id == persona_id), None)
        if match is None:
            raise HTTPException(
                status_code=404,
                detail="No match found for this juror-persona pair",
            )

        return BreakdownResponse(
            juror_id=juror_id,
            persona_id=persona_id,
            persona_name=persona.name,
            weights=weights,
            match=match,
        )

    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"Failed to generate match breakdown: {str(e)}"
        logger.error(error_msg, extra={"juror_id": juror_id, "persona_id": persona_id})
        raise HTTPException(status_code=500, detail=error_msg) from e


@router.get("/matching/cache", response_model=CacheStatsResponse)
async def get_cache_stats() -> CacheStatsResponse:
    """Sizes of the persona-embedding and juror-narrative caches."""
    return CacheStatsResponse(**get_embedding_scorer().cache_stats())


@router.delete("/matching/cache/personas/{persona_id}", response_model=CacheStatsResponse)
async def invalidate_persona_embedding(
    persona_id: str = Path(..., description="Persona UUID"),
) -> CacheStatsResponse:
    """Drop a persona's cached embedding. Call after editing the persona."""
    scorer = get_embedding_scorer()
    scorer.invalidate_persona(persona_id)
    logger.info("Invalidated persona embedding", extra={"persona_id": persona_id})
    return CacheStatsResponse(**scorer.cache_stats())


@router.delete("/matching/cache/jurors/{juror_id}", response_model=CacheStatsResponse)
async def invalidate_juror_narrative(
    juror_id: str = Path(..., description="Juror UUID"),
) -> CacheStatsResponse:
    """Drop a juror's cached narrative so the next match rebuilds it."""
    scorer = get_embedding_scorer()
    scorer.invalidate_juror(juror_id)
    logger.info("Invalidated juror narrative", extra={"juror_id": juror_id})
    return CacheStatsResponse(**scorer.cache_stats())
