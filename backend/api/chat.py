"""
Chat API Endpoints

Endpoints for conversational chat:
- Conversation CRUD operations
- Streaming message generation (SSE)
- Stopping a generation and reading its status
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from backend.dependencies import get_controller_dependency
from backend.models.chat import (
    ChatRequest,
    ConversationDetail,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummary,
    DeleteConversationResponse,
    ModelRequest,
    StatusResponse,
    StopResponse,
)
from backend.streaming import BUSY_MESSAGE, relay_generation, to_sse
from parley.generation.controller import GenerationController
from parley.utilities.errors import ConversationNotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Conversation not found: {conversation_id}",
    )


# ========== CONVERSATION CRUD OPERATIONS ==========
@router.post(
    "/conversations",
    response_model=ConversationResponse,
    summary="Create new conversation",
    description="Create an empty conversation and select it",
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    controller: GenerationController = Depends(get_controller_dependency),
):
    conversation = controller.create_conversation()
    logger.info(f"Created conversation via API: {conversation.id}")

    return ConversationResponse(
        status="success",
        message="Conversation created successfully",
        conversation=ConversationDetail.from_conversation(conversation),
    )


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    summary="List all conversations",
    description="Retrieve all conversations, most recently updated first",
)
async def list_conversations(
    controller: GenerationController = Depends(get_controller_dependency),
):
    conversations = controller.store.list_ordered()

    return ConversationListResponse(
        conversations=[ConversationSummary.from_conversation(c) for c in conversations],
        selected_id=controller.store.selected_id,
        total=len(conversations),
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetail,
    summary="Get conversation",
    description="Retrieve a conversation with all of its messages",
)
async def get_conversation(
    conversation_id: str,
    controller: GenerationController = Depends(get_controller_dependency),
):
    conversation = controller.store.get(conversation_id)
    if conversation is None:
        raise _not_found(conversation_id)

    return ConversationDetail.from_conversation(conversation)


@router.post(
    "/conversations/{conversation_id}/select",
    response_model=ConversationResponse,
    summary="Select conversation",
    description="Make a conversation the target of new messages",
)
async def select_conversation(
    conversation_id: str,
    controller: GenerationController = Depends(get_controller_dependency),
):
    try:
        controller.select_conversation(conversation_id)
    except ConversationNotFoundError:
        raise _not_found(conversation_id)

    return ConversationResponse(
        status="success",
        message="Conversation selected",
        conversation=ConversationDetail.from_conversation(controller.selected_conversation),
    )


@router.delete(
    "/conversations/{conversation_id}",
    response_model=DeleteConversationResponse,
    summary="Delete conversation",
    description="Delete a conversation, stopping its generation if one is running",
)
async def delete_conversation(
    conversation_id: str,
    controller: GenerationController = Depends(get_controller_dependency),
):
    if not controller.delete_conversation(conversation_id):
        raise _not_found(conversation_id)

    logger.info(f"Deleted conversation via API: {conversation_id}")
    return DeleteConversationResponse(
        status="success",
        message="Conversation deleted successfully",
        deleted=1,
        selected_id=controller.store.selected_id,
    )


@router.delete(
    "/conversations",
    response_model=DeleteConversationResponse,
    summary="Delete all conversations",
)
async def delete_all_conversations(
    controller: GenerationController = Depends(get_controller_dependency),
):
    count = controller.delete_all_conversations()

    return DeleteConversationResponse(
        status="success",
        message=f"Deleted {count} conversation(s)",
        deleted=count,
        selected_id=None,
    )


# ========== GENERATION ==========
@router.post(
    "/messages/stream",
    summary="Send streaming chat message",
    description="Send a message to the selected conversation and stream the reply (SSE)",
)
async def send_message_stream(
    request: ChatRequest,
    controller: GenerationController = Depends(get_controller_dependency),
):
    """
    Stream a chat reply in real-time.

    Returns Server-Sent Events (SSE) with chunks of type:
    - status: generation status changes
    - token / reasoning: text as it arrives
    - message: the final assistant message(s)
    - error: provider failure shown in the transcript
    - done: conversation id, title and processing time

    Raises:
        HTTPException: 409 if a generation is already running
    """
    if controller.is_busy:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=BUSY_MESSAGE)

    logger.info(f"Streaming chat: '{request.message[:50]}' (model={request.model})")

    async def event_generator():
        async for chunk in relay_generation(controller, request.message, request.model):
            yield to_sse(chunk)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/stop",
    response_model=StopResponse,
    summary="Stop generation",
    description="Stop the running generation, keeping the text received so far",
)
async def stop_generation(
    controller: GenerationController = Depends(get_controller_dependency),
):
    stopped = controller.stop()
    if stopped:
        logger.info("Generation stopped via API")

    return StopResponse(stopped=stopped, status=controller.status.value)


@router.get(
    "/status",
    response_model=StatusResponse,
    summary="Generation status",
)
async def get_status(
    controller: GenerationController = Depends(get_controller_dependency),
):
    return StatusResponse(
        status=controller.status.value,
        model=controller.current_model_id,
        selected_id=controller.store.selected_id,
        active_conversation_id=controller.active_conversation_id,
        last_error=controller.last_error,
    )


@router.put(
    "/model",
    response_model=StatusResponse,
    summary="Switch model",
    description="Set the model used for subsequent messages",
)
async def set_model(
    request: ModelRequest,
    controller: GenerationController = Depends(get_controller_dependency),
):
    try:
        controller.set_model(request.model)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return await get_status(controller)
