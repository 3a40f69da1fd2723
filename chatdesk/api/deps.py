from fastapi import HTTPException, Request

from ..conversation.manager import ConversationManager
from ..notifications import NotificationCenter


def get_manager(request: Request) -> ConversationManager:
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Conversation manager is not running")
    return manager


def get_notifications(request: Request) -> NotificationCenter:
    return get_manager(request).notifications
