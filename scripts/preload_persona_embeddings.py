#!/usr/bin/env python3
"""
Warm persona embeddings and optionally spot-check matches.

Embeds every active persona in batches, then (if juror ids are given)
runs the ensemble for each juror in the same process and prints the
ranked matches. Useful after editing personas to confirm embedding
scores still spread across personas instead of clustering.

Usage:
    python scripts/preload_persona_embeddings.py [--organization-id ORG] [--batch-size 3]
        [--juror-id JUROR_ID ...] [--top-n 5]

Options:
    --organization-id: Include this organization's personas with the system catalog
    --batch-size: Personas embedded per request (default: PERSONA_PRELOAD_BATCH_SIZE)
    --juror-id: Juror to match after preloading (repeatable)
    --top-n: Matches to print per juror (default: 5)
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import get_logger
from app.core.matching import get_embedding_scorer, get_ensemble_matcher, get_matching_store
from app.core.schemas_matching import ExplainedMatch

logger = get_logger(__name__)


async def preload(organization_id: str | None, batch_size: int | None) -> list[str]:
    store = get_matching_store()
    persona_ids = await store.list_active_persona_ids(organization_id)
    logger.info(f"Active personas: {len(persona_ids)}")

    loaded = await get_embedding_scorer().preload_persona_embeddings(
        persona_ids, batch_size=batch_size
    )
    logger.info(f"Embedded {loaded} personas; cache: {get_embedding_scorer().cache_stats()}")
    return persona_ids


async def spot_check(juror_id: str, persona_ids: list[str], top_n: int) -> None:
    store = get_matching_store()
    matches = await get_ensemble_matcher().get_top_matches(juror_id, persona_ids, top_n=top_n)
    personas = await store.get_personas([m.persona_id for m in matches])

    print(f"\nJuror {juror_id}")
    print("-" * 60)
    if not matches:
        print("  (no matches)")
        return

    for rank, match in enumerate(matches, start=1):
        persona = personas.get(match.persona_id)
        name = persona.name if persona else match.persona_id
        scores = match.method_scores
        print(
            f"  {rank}. {name}: {match.probability:.1%} "
            f"(signal {scores.signal_based:.2f}, embedding {scores.embedding:.2f}, "
            f"bayesian {scores.bayesian:.2f}, confidence {match.confidence:.2f})"
        )
        if isinstance(match, ExplainedMatch):
            print(f"     {match.rationale}")

    embedding_scores = [m.method_scores.embedding for m in matches]
    spread = max(embedding_scores) - min(embedding_scores)
    print(f"  Embedding score spread: {spread:.3f}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Warm persona embeddings and spot-check matches")
    parser.add_argument("--organization-id", type=str, help="Organization persona catalog")
    parser.add_argument("--batch-size", type=int, default=None, help="Personas per embedding request")
    parser.add_argument(
        "--juror-id",
        action="append",
        default=[],
        help="Juror to match after preloading (repeatable)",
    )
    parser.add_argument("--top-n", type=int, default=5, help="Matches to print per juror")
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("PERSONA EMBEDDING PRELOAD")
    logger.info("=" * 60)

    persona_ids = await preload(args.organization_id, args.batch_size)
    if not persona_ids:
        logger.warning("No active personas found")
        return

    for juror_id in args.juror_id:
        await spot_check(juror_id, persona_ids, args.top_n)


if __name__ == "__main__":
    asyncio.run(main())
