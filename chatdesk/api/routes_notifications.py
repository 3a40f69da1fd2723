from fastapi import APIRouter, Depends, HTTPException

from ..notifications import NotificationCenter
from .deps import get_notifications
from .sse import event_stream, sse_response

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(center: NotificationCenter = Depends(get_notifications)):
    return {
        "notifications": [n.model_dump() for n in center.list()],
        "unreadCount": center.unread_count(),
        "undo": [u.model_dump(by_alias=True) for u in center.pending_undo()],
    }


@router.get("/stream")
async def stream_notifications(center: NotificationCenter = Depends(get_notifications)):
    return sse_response(event_stream(center.events))


@router.post("/read-all")
async def mark_all_read(center: NotificationCenter = Depends(get_notifications)):
    center.mark_all_read()
    return {"status": "ok"}


@router.post("/undo/{undo_id}")
async def invoke_undo(undo_id: str, center: NotificationCenter = Depends(get_notifications)):
    if not center.invoke_undo(undo_id):
        raise HTTPException(status_code=410, detail="Undo is no longer available")
    return {"status": "restored"}


@router.post("/{notif_id}/read")
async def mark_read(notif_id: str, center: NotificationCenter = Depends(get_notifications)):
    if not center.mark_read(notif_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "ok"}


@router.delete("/{notif_id}")
async def remove_notification(notif_id: str, center: NotificationCenter = Depends(get_notifications)):
    if not center.remove(notif_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "deleted"}


@router.delete("")
async def clear_notifications(center: NotificationCenter = Depends(get_notifications)):
    center.clear()
    return {"status": "ok"}
