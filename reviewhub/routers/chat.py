from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from reviewhub.schemas.chat import ChatRequestCreate, ChatRequestReject, ConversationCreate
from reviewhub.schemas.identity import Identity
from reviewhub.services.container import ServiceContainer
from reviewhub.services.identity_service import public_profile
from reviewhub.utils.dependencies import get_current_identity, get_services
from reviewhub.utils.serialization import serialize_document


router = APIRouter(prefix="/chat", tags=["chat"])


def pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)}


@router.get("/contacts")
async def get_contacts(current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    contacts = await services.chat.get_contacts(current)
    return {"contacts": serialize_document(contacts)}


@router.post("/request", status_code=201)
async def create_chat_request(body: ChatRequestCreate, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    request = await services.chat_requests.create(current, body.reviewer_id, body.reason)
    return {"message": "Chat request submitted. Waiting for advisor approval.", "request": serialize_document(request)}


@router.get("/requests")
async def get_chat_requests(status: Optional[str] = None, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    requests = await services.chat_requests.list_for_advisor(current, status)
    return {"requests": serialize_document(requests)}


@router.patch("/request/{request_id}/approve")
async def approve_chat_request(request_id: str, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    request = await services.chat_requests.approve(request_id, current)
    return {"message": "Chat request approved", "request": serialize_document(request)}


@router.patch("/request/{request_id}/reject")
async def reject_chat_request(request_id: str, body: Optional[ChatRequestReject] = None, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    reason = body.rejection_reason if body else None
    request = await services.chat_requests.reject(request_id, current, reason)
    return {"message": "Chat request rejected", "request": serialize_document(request)}


@router.get("/conversations")
async def list_conversations(current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    conversations = await services.chat.list_conversations(current)
    return {"conversations": serialize_document(conversations)}


@router.post("/conversations")
async def start_conversation(body: ConversationCreate, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    conversation, created, target = await services.chat.start_conversation(current, body.target_user_id)
    content = {
        "conversation": {
            "_id": conversation["_id"],
            "other_participant": public_profile(target),
            "is_new": created,
        }
    }
    return JSONResponse(status_code=201 if created else 200, content=serialize_document(content))


@router.get("/review/{review_session_id}/messages")
async def get_review_messages(review_session_id: str, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200), current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    messages, total = await services.review_chat.list_messages(review_session_id, current, page, limit)
    return {"messages": serialize_document(messages), "pagination": pagination(page, limit, total)}


@router.get("/{conversation_id}/messages")
async def get_messages(conversation_id: str, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200), current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    messages, total = await services.chat.list_messages(conversation_id, current, page, limit)
    return {"messages": serialize_document(messages), "pagination": pagination(page, limit, total)}


@router.post("/{conversation_id}/read")
async def mark_read(conversation_id: str, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    updated = await services.chat.mark_read(conversation_id, current)
    return {"success": True, "updated": updated}
