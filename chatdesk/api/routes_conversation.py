from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..conversation.manager import ConversationManager, ConversationNotFoundError
from ..conversation.models import Message
from .deps import get_manager

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateConversationRequest(_CamelRequest):
    space_id: Optional[str] = None
    space_name: Optional[str] = None
    system_prompt: Optional[str] = None


class AppendMessageRequest(_CamelRequest):
    id: Optional[str] = None  # generated when omitted
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[str] = None
    artifacts: Optional[list[Any]] = None
    search_results: Optional[list[Any]] = None


class RenameConversationRequest(BaseModel):
    title: str = Field(min_length=1)


class UpdateMetaRequest(_CamelRequest):
    space_id: Optional[str] = None
    space_name: Optional[str] = None
    system_prompt: Optional[str] = None


class ReorderRequest(BaseModel):
    ids: list[str]


class ContextQueryRequest(BaseModel):
    query: str
    files: Optional[list[str]] = None
    functions: Optional[list[str]] = None


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Conversation not found")


def _listing(manager: ConversationManager) -> dict:
    return {
        "conversations": [s.to_record() for s in manager.summaries()],
        "activeConversationId": manager.active_conversation_id,
    }


@router.get("")
async def list_conversations(manager: ConversationManager = Depends(get_manager)):
    return _listing(manager)


@router.post("")
async def create_conversation(
    req: CreateConversationRequest = CreateConversationRequest(),
    manager: ConversationManager = Depends(get_manager),
):
    conv_id = manager.create_conversation(
        space_id=req.space_id,
        space_name=req.space_name,
        system_prompt=req.system_prompt,
    )
    return {"conversation": manager.get(conv_id).to_record()}


@router.get("/active")
async def get_active_conversation(manager: ConversationManager = Depends(get_manager)):
    conv = manager.active_conversation
    if conv is None:
        raise _not_found()
    return {"conversation": conv.to_record()}


@router.post("/active/messages")
async def append_message(
    req: AppendMessageRequest,
    manager: ConversationManager = Depends(get_manager),
):
    message = Message(**req.model_dump(exclude_none=True))
    conv = manager.append_message(message)
    if conv is None:
        raise HTTPException(status_code=409, detail="No active conversation")
    return {"conversation": conv.to_record(), "message": message.to_record()}


@router.post("/active/context")
async def contextual_query(
    req: ContextQueryRequest,
    manager: ConversationManager = Depends(get_manager),
):
    query = manager.contextual_query(req.query, files=req.files, functions=req.functions)
    if query is None:
        raise HTTPException(status_code=409, detail="No active conversation")
    return {"query": query}


@router.delete("/{conv_id}/context")
async def clear_context(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    try:
        manager.clear_context(conv_id)
    except ConversationNotFoundError:
        raise _not_found()
    return {"status": "ok"}


@router.put("/order")
async def reorder_conversations(
    req: ReorderRequest,
    manager: ConversationManager = Depends(get_manager),
):
    try:
        manager.reorder_by_ids(req.ids)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=400, detail=f"Unknown conversation id: {e.args[0]}")
    return _listing(manager)


@router.get("/{conv_id}")
async def get_conversation(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    conv = manager.get(conv_id)
    if conv is None:
        raise _not_found()
    return {"conversation": conv.to_record()}


@router.post("/{conv_id}/activate")
async def switch_conversation(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    try:
        manager.switch_conversation(conv_id)
    except ConversationNotFoundError:
        raise _not_found()
    return {"activeConversationId": conv_id}


@router.put("/{conv_id}")
async def rename_conversation(
    conv_id: str,
    req: RenameConversationRequest,
    manager: ConversationManager = Depends(get_manager),
):
    try:
        conv = manager.rename_conversation(conv_id, req.title)
    except ConversationNotFoundError:
        raise _not_found()
    return {"conversation": conv.to_record()}


@router.post("/{conv_id}/pin")
async def pin_conversation(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    try:
        pinned = manager.pin_conversation(conv_id)
    except ConversationNotFoundError:
        raise _not_found()
    return {"id": conv_id, "pinned": pinned}


@router.patch("/{conv_id}/meta")
async def update_conversation_meta(
    conv_id: str,
    req: UpdateMetaRequest,
    manager: ConversationManager = Depends(get_manager),
):
    try:
        conv = manager.update_conversation_meta(conv_id, **req.model_dump(exclude_unset=True))
    except ConversationNotFoundError:
        raise _not_found()
    return {"conversation": conv.to_record()}


@router.delete("/{conv_id}")
async def delete_conversation(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    undo = manager.delete_conversation(conv_id)
    if undo is None:
        raise _not_found()
    return {
        "status": "pending",
        "undo": undo.model_dump(by_alias=True),
        "activeConversationId": manager.active_conversation_id,
    }


@router.post("/{conv_id}/restore")
async def restore_conversation(conv_id: str, manager: ConversationManager = Depends(get_manager)):
    if not manager.undo_delete(conv_id):
        raise HTTPException(status_code=404, detail="No pending delete for this conversation")
    return {"conversation": manager.get(conv_id).to_record(), "activeConversationId": conv_id}
