"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import matching, questions

router = APIRouter()

# Matching, mapping confirmation and cache management routes
router.include_router(matching.router, tags=["matching"])

# Discriminative voir dire question routes
router.include_router(questions.router, tags=["questions"])
