"""
FastAPI Router — Conversations • Turns • Messages
=================================================

Purpose
-------
Defines the HTTP API for:
- Conversations: create, list, rename, delete
- Turns: submit a user message, then poll the pending assistant reply
- Messages: newest-first paged listing, starring
- User profile: register, read and update the caller's name and resume

Key Notes
---------
- Input validation via Pydantic models in `coach_backend.api.models`.
- Identity: the `sub` claim of a JWT taken from the `token` cookie or an
  ``Authorization: Bearer`` header. Missing/invalid tokens → 401.
- Submitting a turn returns 202 at once; inference runs as a background task
  and clients poll `GET /conversations/{id}/messages/{message_id}`.
- Core errors map to statuses: NotFound 404, Forbidden 403, Conflict 409,
  StorageExhausted 507, SnapshotCorrupt 503; invalid input 400.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Cookie, Header, HTTPException, Response
from fastapi.responses import JSONResponse

from coach_backend.api.models import (
    ConversationCreationDetails,
    ConversationDetails,
    MessageDetails,
    MessagePageDetails,
    NewTurn,
    StarDetails,
    TurnAccepted,
    UpdateConversationDetails,
    UpdateUserDetails,
    UserDetails,
    UserRegistrationDetails,
)
from coach_backend.api.utils import bearer_token, verify_token
from coach_backend.database.core import funcs
from coach_backend.database.core.errors import (
    CoachError,
    Conflict,
    Forbidden,
    NotFound,
    SnapshotCorrupt,
    StorageExhausted,
)
from coach_backend.database.daos.entity_store import entity_store
from coach_backend.database.daos.user_message_dao import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter()
"""Creates the FastAPI router in which we define its routes"""

STATUS_BY_ERROR = {
    NotFound: 404,
    Forbidden: 403,
    Conflict: 409,
    StorageExhausted: 507,
    SnapshotCorrupt: 503,
}


def http_error(error: Exception) -> HTTPException:
    """Translate a core or validation error into an HTTPException."""
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))
    for error_type, status in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status, detail={"error": error.code, "detail": error.detail})
    logger.error("Unmapped core error: %s", error)
    return HTTPException(status_code=500, detail={"error": getattr(error, "code", "InternalError")})


def caller_identity(token: Optional[str], authorization: Optional[str]) -> str:
    """Return the verified identity of the caller or raise 401."""
    raw = bearer_token(authorization) or token
    if not raw:
        raise HTTPException(status_code=401, detail="Missing Token")
    identity = verify_token(raw)
    if not identity:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return identity


@router.post("/conversations", status_code=201, response_model=ConversationDetails)
async def new_conversation(
    data: ConversationCreationDetails,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """Create an empty conversation owned by the caller."""
    identity = caller_identity(token, authorization)
    try:
        conversation = funcs.create_conversation(identity, title=data.title)
    except (CoachError, ValueError) as e:
        raise http_error(e) from e
    return ConversationDetails.of(conversation)


@router.get("/conversations", response_model=list[ConversationDetails])
async def user_conversations(token: str = Cookie(None), authorization: str = Header(None)):
    """List the caller's conversations, most recently updated first."""
    identity = caller_identity(token, authorization)
    try:
        conversations = funcs.list_conversations(identity)
    except CoachError as e:
        raise http_error(e) from e
    return [ConversationDetails.of(c) for c in conversations]


@router.patch("/conversations/{conversation_id}", response_model=ConversationDetails)
async def update_conversation(
    conversation_id: str,
    data: UpdateConversationDetails,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """Rename a conversation."""
    identity = caller_identity(token, authorization)
    try:
        conversation = funcs.rename_conversation(identity, conversation_id, data.title)
    except (CoachError, ValueError) as e:
        raise http_error(e) from e
    return ConversationDetails.of(conversation)


@router.delete("/conversations/{conversation_id}", status_code=204)
async def remove_conversation(conversation_id: str, token: str = Cookie(None), authorization: str = Header(None)):
    """Delete a conversation and all of its messages."""
    identity = caller_identity(token, authorization)
    try:
        result = funcs.delete_conversation(identity, conversation_id)
    except CoachError as e:
        raise http_error(e) from e
    if result == funcs.DeleteResult.NOT_FOUND:
        raise HTTPException(status_code=404, detail={"error": NotFound.code, "detail": conversation_id})
    if result == funcs.DeleteResult.FORBIDDEN:
        raise HTTPException(status_code=403, detail={"error": Forbidden.code, "detail": conversation_id})
    return Response(status_code=204)


@router.post("/conversations/turns", status_code=202, response_model=TurnAccepted)
async def new_turn(
    data: NewTurn,
    background_tasks: BackgroundTasks,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """
    Submit a user message.

    Records the message and a pending assistant reply, schedules inference in
    the background and returns the handle to poll. 409 while a previous turn
    of the conversation is still pending.
    """
    identity = caller_identity(token, authorization)
    try:
        handle = funcs.submit_user_turn(identity, data.conversation_id, data.text)
    except (CoachError, ValueError) as e:
        raise http_error(e) from e
    background_tasks.add_task(funcs.complete_turn, handle.conversation_id, handle.pending_message_id)
    return TurnAccepted(
        conversation_id=handle.conversation_id,
        user_message_id=handle.user_message_id,
        pending_message_id=handle.pending_message_id,
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePageDetails)
async def get_messages(
    conversation_id: str,
    cursor: Optional[int] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """Newest-first page of messages; pass `next_cursor` back as `cursor` for older ones."""
    identity = caller_identity(token, authorization)
    try:
        page = funcs.list_messages(identity, conversation_id, cursor=cursor, limit=limit)
    except CoachError as e:
        raise http_error(e) from e
    return MessagePageDetails(
        messages=[MessageDetails.of(m) for m in page.messages],
        next_cursor=page.next_cursor,
    )


@router.get("/conversations/{conversation_id}/messages/{message_id}", response_model=MessageDetails)
async def poll_message(
    conversation_id: str,
    message_id: int,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """Poll a message: pending, resolved with content, or failed with an error code."""
    identity = caller_identity(token, authorization)
    try:
        message = funcs.poll_turn(identity, conversation_id, message_id)
    except CoachError as e:
        raise http_error(e) from e
    return MessageDetails.of(message)


@router.post("/conversations/{conversation_id}/messages/{message_id}/star", response_model=MessageDetails)
async def star_message(
    conversation_id: str,
    message_id: int,
    data: StarDetails,
    token: str = Cookie(None),
    authorization: str = Header(None),
):
    """Star or unstar a message."""
    identity = caller_identity(token, authorization)
    try:
        message = funcs.star_message(identity, conversation_id, message_id, starred=data.starred)
    except CoachError as e:
        raise http_error(e) from e
    return MessageDetails.of(message)


@router.post("/users", status_code=201, response_model=UserDetails)
async def register(data: UserRegistrationDetails, token: str = Cookie(None), authorization: str = Header(None)):
    """Register the caller's coaching profile. 409 when it already exists."""
    identity = caller_identity(token, authorization)
    try:
        user = funcs.register_user(identity, data.fullname, resume=data.resume)
    except (CoachError, ValueError) as e:
        raise http_error(e) from e
    return UserDetails.of(user)


@router.get("/users/me", response_model=UserDetails)
async def get_user_profile(token: str = Cookie(None), authorization: str = Header(None)):
    """Return the caller's profile; 404 before registration."""
    identity = caller_identity(token, authorization)
    try:
        user = funcs.get_user(identity)
    except CoachError as e:
        raise http_error(e) from e
    return UserDetails.of(user)


@router.patch("/users/me", response_model=UserDetails)
async def update_user_profile(data: UpdateUserDetails, token: str = Cookie(None), authorization: str = Header(None)):
    """Change the caller's full name and/or resume."""
    identity = caller_identity(token, authorization)
    try:
        user = funcs.update_user(identity, fullname=data.fullname, resume=data.resume)
    except (CoachError, ValueError) as e:
        raise http_error(e) from e
    return UserDetails.of(user)


@router.get("/health")
async def health():
    """Liveness plus store availability; 503 while the store is blocked."""
    if entity_store.blocked:
        return JSONResponse(status_code=503, content={"status": "unavailable", "store": "blocked"})
    return {"status": "ok", "store": "available"}
