"""
实时转写面板API端点
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from app.api.deps import get_connection_manager, get_transcript_panel
from app.core.logging import api_logger
from app.core.websocket import ConnectionManager
from app.schemas.live import AutoSaveRequest, LiveStartRequest
from app.services.transcript_panel import TranscriptPanel

router = APIRouter()


def register_live_handlers(manager: ConnectionManager, panel: TranscriptPanel):
    """注册面板相关的WebSocket消息处理器，并把面板更新推送给所有连接"""

    async def handle_search(connection_id: str, data: dict):
        query = data.get("query") or None
        manager.set_search(connection_id, query)
        await manager.send_personal_message(connection_id, {
            "type": "snapshot",
            "state": panel.snapshot(query).model_dump(mode="json", by_alias=True)
        })

    async def handle_snapshot(connection_id: str, data: dict):
        await manager.send_personal_message(connection_id, {
            "type": "snapshot",
            "state": panel.snapshot(manager.get_search(connection_id)).model_dump(mode="json", by_alias=True)
        })

    manager.register_handler("search", handle_search)
    manager.register_handler("snapshot", handle_snapshot)
    return panel.updates.subscribe(manager.broadcast_fire_and_forget)


@router.get("", summary="获取实时面板状态")
async def get_live_state(
    search: Optional[str] = Query(None, description="在缓冲区内搜索"),
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    return {
        "success": True,
        "data": panel.snapshot(search)
    }


@router.get("/transcript.txt", summary="下载缓冲区转写文本", response_class=PlainTextResponse)
async def download_transcript(
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> PlainTextResponse:
    """导出面板缓冲区中的全部行，文件名带频道名和当天日期"""
    filename = panel.export_filename()
    return PlainTextResponse(
        panel.export_text(),
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    )


@router.post("/start", summary="开始实时转写")
async def start_live(
    request: LiveStartRequest,
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    """
    连接转写中继并开始转写

    连接失败时 success 为 false，面板连接状态为 error。
    """
    panel.set_channel(request.channel_name, request.channel_id)
    started = await panel.start(request.filter_political)
    return {
        "success": started,
        "message": "实时转写已开始" if started else "无法连接转写服务",
        "data": panel.snapshot()
    }


@router.post("/stop", summary="停止实时转写")
async def stop_live(
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    await panel.stop()
    return {
        "success": True,
        "message": "实时转写已停止",
        "data": panel.snapshot()
    }


@router.post("/filter/toggle", summary="切换政治内容过滤")
async def toggle_filter(
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    """正在转写时会按新设置重启会话"""
    filter_political = await panel.toggle_filter()
    return {
        "success": True,
        "data": {
            "filter_political": filter_political,
            "connection_status": panel.connection_status.value
        }
    }


@router.put("/auto-save", summary="设置自动保存")
async def set_auto_save(
    request: AutoSaveRequest,
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    panel.set_auto_save(request.enabled)
    return {
        "success": True,
        "data": {"auto_save": panel.auto_save}
    }


@router.post("/reload", summary="从存储加载最近转写")
async def reload_from_store(
    limit: int = Query(50, ge=1, le=500, description="加载条数"),
    panel: TranscriptPanel = Depends(get_transcript_panel)
) -> Dict[str, Any]:
    loaded = await panel.load_from_store(limit)
    return {
        "success": True,
        "data": {
            "store_count": loaded,
            "lines": list(panel.lines)
        }
    }


@router.websocket("/ws")
async def live_websocket(
    websocket: WebSocket,
    manager: ConnectionManager = Depends(get_connection_manager),
    panel: TranscriptPanel = Depends(get_transcript_panel)
):
    """
    实时面板推送

    服务端消息: connection_established / snapshot / line / state / status / error / heartbeat
    客户端消息: ping / search / snapshot
    """
    connection_id = await manager.connect(websocket)
    await manager.send_personal_message(connection_id, {
        "type": "snapshot",
        "state": panel.snapshot().model_dump(mode="json", by_alias=True)
    })

    try:
        while True:
            message = await websocket.receive_text()
            await manager.handle_message(connection_id, message)
    except WebSocketDisconnect:
        api_logger.info(f"实时面板订阅者断开: {connection_id}")
    finally:
        await manager.disconnect(connection_id)
