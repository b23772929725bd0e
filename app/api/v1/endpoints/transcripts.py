"""
转写存储API端点
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_transcript_store
from app.core.exceptions import StoreUnavailableException, ValidationException
from app.schemas.transcript import (
    QueryResult,
    TranscriptBatchSaveRequest,
    TranscriptSaveRequest,
)
from app.services.transcript_store import TranscriptStore, to_naive_utc

router = APIRouter()


def _records_response(result: QueryResult) -> Dict[str, Any]:
    if result.data is None:
        raise StoreUnavailableException(result.error or "转写存储暂不可用")
    return {
        "success": True,
        "data": result.data,
        "total": len(result.data)
    }


@router.get("", summary="查询转写记录")
async def list_transcripts(
    channel_name: Optional[str] = Query(None, description="频道名称"),
    start_date: Optional[datetime] = Query(None, description="入库时间下限(含)"),
    end_date: Optional[datetime] = Query(None, description="入库时间上限(含)"),
    limit: int = Query(100, ge=1, description="返回条数，超过上限时截断"),
    store: TranscriptStore = Depends(get_transcript_store)
) -> Dict[str, Any]:
    """
    按入库时间倒序查询转写记录

    - **channel_name**: 只返回该频道
    - **start_date / end_date**: 时间范围，两端均包含
    - **limit**: 最多返回条数
    """
    if start_date and end_date and to_naive_utc(start_date) > to_naive_utc(end_date):
        raise ValidationException("start_date 不能晚于 end_date")

    result = await store.query(channel_name, start_date, end_date, limit)
    return _records_response(result)


@router.get("/political", summary="查询提及政党的转写")
async def list_political_transcripts(
    channel_name: Optional[str] = Query(None, description="频道名称"),
    limit: int = Query(100, ge=1, description="返回条数"),
    store: TranscriptStore = Depends(get_transcript_store)
) -> Dict[str, Any]:
    """只返回提及BJP或TMC的记录"""
    result = await store.query_political(channel_name, limit)
    return _records_response(result)


@router.get("/stats", summary="转写统计")
async def transcript_stats(
    channel_name: Optional[str] = Query(None, description="频道名称"),
    store: TranscriptStore = Depends(get_transcript_store)
) -> Dict[str, Any]:
    stats = await store.stats(channel_name)
    if stats.error:
        raise StoreUnavailableException(stats.error)
    return {
        "success": True,
        "data": stats
    }


@router.post("", summary="保存单条转写")
async def save_transcript(
    request: TranscriptSaveRequest,
    store: TranscriptStore = Depends(get_transcript_store)
) -> Dict[str, Any]:
    """标注并保存一条转写；保存失败同样返回200，由调用方根据 success 决定如何处理"""
    result = await store.save(request.channel_name, request.channel_id, request.line)
    return {
        "success": result.success,
        "data": result
    }


@router.post("/batch", summary="批量保存转写")
async def save_transcript_batch(
    request: TranscriptBatchSaveRequest,
    store: TranscriptStore = Depends(get_transcript_store)
) -> Dict[str, Any]:
    result = await store.save_batch(request.channel_name, request.channel_id, request.lines)
    return {
        "success": result.success,
        "data": result
    }
