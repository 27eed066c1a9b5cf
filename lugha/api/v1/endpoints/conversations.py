"""
Conversation API endpoints.

All routes are scoped to the authenticated owner:
- 404 when the conversation does not exist
- 403 when it belongs to someone else
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from lugha.api.deps import get_store
from lugha.core.security import UserContext, get_current_user
from lugha.schemas.chat import (
    Conversation,
    ConversationCreate,
    ConversationUpdate,
    ConversationWithMessages,
    NewConversation,
)
from lugha.services.store import ChatStore

router = APIRouter()


async def _owned_conversation(store: ChatStore, conversation_id: int, user_ctx: UserContext) -> Conversation:
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if conversation.user_id != user_ctx.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return conversation


async def _require_language(store: ChatStore, code: str) -> None:
    language = await store.get_language_by_code(code)
    if language is None or not language.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown language: {code}")


@router.get("/conversations", response_model=list[Conversation])
async def list_conversations(
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> list[Conversation]:
    """The caller's conversations, most recently updated first."""
    return await store.get_conversations_by_user_id(user_ctx.user_id)


@router.post("/conversations", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: ConversationCreate,
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> Conversation:
    """
    Start a conversation.

    **Request Body:**
    ```json
    {"title": "Learning Maasai", "language": "mas"}
    ```
    """
    await _require_language(store, request.language)
    return await store.create_conversation(
        NewConversation(user_id=user_ctx.user_id, title=request.title, language=request.language)
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationWithMessages)
async def get_conversation(
    conversation_id: int = Path(..., gt=0),
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> ConversationWithMessages:
    """A conversation with its messages in creation order."""
    conversation = await _owned_conversation(store, conversation_id, user_ctx)
    messages = await store.get_messages_by_conversation_id(conversation_id)
    return ConversationWithMessages(conversation=conversation, messages=messages)


@router.put("/conversations/{conversation_id}", response_model=Conversation)
async def update_conversation(
    request: ConversationUpdate,
    conversation_id: int = Path(..., gt=0),
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> Conversation:
    await _owned_conversation(store, conversation_id, user_ctx)
    if request.language is not None:
        await _require_language(store, request.language)

    updated = await store.update_conversation(conversation_id, **request.model_dump(exclude_unset=True))
    if updated is None:
        # Deleted between the ownership check and the update
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return updated


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: int = Path(..., gt=0),
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> Response:
    """Delete a conversation and all of its messages."""
    await _owned_conversation(store, conversation_id, user_ctx)
    await store.delete_conversation(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
