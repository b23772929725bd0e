"""
API v1路由汇总
"""

from fastapi import APIRouter

from app.api.v1.endpoints import live, tagger, transcripts

api_router = APIRouter()

api_router.include_router(transcripts.router, prefix="/transcripts", tags=["transcripts"])
api_router.include_router(tagger.router, prefix="/tagger", tags=["tagger"])
api_router.include_router(live.router, prefix="/live", tags=["live"])
