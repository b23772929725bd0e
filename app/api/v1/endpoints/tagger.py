"""
文本标注API端点
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.api.deps import get_tagger
from app.schemas.transcript import TagRequest, TagResponse
from app.services.tagger import TranscriptTagger

router = APIRouter()


@router.post("/tag", summary="标注一段文本")
async def tag_text(
    request: TagRequest,
    tagger: TranscriptTagger = Depends(get_tagger)
) -> Dict[str, Any]:
    """返回情感标签、分数和政党提及标记，引擎失败时为中性"""
    result = await tagger.tag(request.text)
    return {
        "success": True,
        "data": TagResponse(
            sentiment=result.sentiment,
            score=result.score,
            bjp_mention=result.bjp_mention,
            tmc_mention=result.tmc_mention
        )
    }
