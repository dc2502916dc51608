"""
WebSocket endpoints for realtime updates.

Clients authenticate with ?token=<jwt>. Committed database changes arrive
through core.change_feed; payloads only say what changed, clients (or the
message stream below) refetch.
"""
import asyncio
from typing import Optional, Set

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from database.models import Base, User, UserRole
from auth.dependencies import user_from_token
from core.change_feed import ChangeEvent, change_feed
from core.exceptions import PortalError
from core.logger import logger
from services.conversation_service import ConversationSelection, ConversationService
from services.message_service import MessageService
import config


router = APIRouter(tags=["realtime"])

# Tables only admins may watch
ADMIN_TABLES = {"audit_logs"}


def _authenticate(token: str) -> Optional[User]:
    if not config.db:
        return None
    with config.db.get_session() as db:
        try:
            return user_from_token(token, db)
        except HTTPException:
            return None


def _subscribe(table: str, queue: asyncio.Queue):
    """Forward feed events (published from any thread) into an asyncio queue."""
    loop = asyncio.get_running_loop()

    def forward(change: ChangeEvent):
        loop.call_soon_threadsafe(queue.put_nowait, change)

    return change_feed.subscribe(table, forward)


def _log_task_failure(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None and not isinstance(error, WebSocketDisconnect):
        logger.error(f"Realtime task {task.get_name()} failed: {error}", exc_info=error)


# ============================================================================
# Table change feed
# ============================================================================

@router.websocket("/ws/changes/{table}")
async def watch_table(websocket: WebSocket, table: str, token: str = Query(...)):
    """
    Push {"table", "event", "id"} for every committed change on one table.

    Connect with: ws://host/ws/changes/messages?token=<jwt_token>
    """
    user = await run_in_threadpool(_authenticate, token)
    if user is None:
        await websocket.close(code=4001, reason="Invalid token")
        return
    if table not in Base.metadata.tables:
        await websocket.close(code=4004, reason="Unknown table")
        return
    if table in ADMIN_TABLES and user.role != UserRole.ADMIN:
        await websocket.close(code=4003, reason="Admin access required")
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = _subscribe(table, queue)

    async def pump():
        while True:
            change = await queue.get()
            await websocket.send_json(change.to_dict())

    sender = asyncio.create_task(pump(), name=f"pump-{table}")
    sender.add_done_callback(_log_task_failure)
    try:
        # Clients do not send anything; receiving detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Change feed client for {table} disconnected ({user.id})")
    finally:
        sender.cancel()
        unsubscribe()


# ============================================================================
# Message stream
# ============================================================================

def _load_conversations(user_id: str) -> list:
    with config.db.get_session() as db:
        return [c.to_dict(include_messages=False) for c in ConversationService.list_for_user(db, user_id)]


def _load_thread(user_id: str, counterpart_id: str, mark_read: bool) -> dict:
    with config.db.get_session() as db:
        if mark_read:
            MessageService.mark_conversation_read(db, user_id, counterpart_id)
        return ConversationService.thread(db, user_id, counterpart_id).to_dict()


@router.websocket("/ws/messages")
async def message_stream(websocket: WebSocket, token: str = Query(...)):
    """
    Live conversation list and open thread for one user.

    Client messages:
    - {"select": "<counterpart_id>"}: open a thread (marks it read)
    - {"select": null}: close the open thread

    Server messages:
    - {"type": "conversations", "data": [...]}
    - {"type": "thread", "data": {...}}
    - {"type": "error", "code": ..., "detail": ...}

    A thread result is only sent if its selection is still the current one
    when the load finishes.
    """
    user = await run_in_threadpool(_authenticate, token)
    if user is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    await websocket.accept()
    selection = ConversationSelection()
    send_lock = asyncio.Lock()
    changes: asyncio.Queue = asyncio.Queue()
    tasks: Set[asyncio.Task] = set()

    async def push(payload: dict):
        async with send_lock:
            await websocket.send_json(payload)

    async def push_conversations():
        await push({"type": "conversations", "data": await run_in_threadpool(_load_conversations, user.id)})

    async def push_thread(selection_token: int, counterpart_id: str, mark_read: bool):
        try:
            thread = await run_in_threadpool(_load_thread, user.id, counterpart_id, mark_read)
        except PortalError as e:
            if selection.is_current(selection_token):
                await push({"type": "error", **e.to_dict()})
            return
        if selection.is_current(selection_token):
            await push({"type": "thread", "data": thread})
        else:
            logger.debug(f"Dropped stale thread {counterpart_id} for {user.id}")

    def spawn(coro):
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        task.add_done_callback(_log_task_failure)

    async def refresh_on_change():
        while True:
            await changes.get()
            # Coalesce a burst of changes into one refetch
            while not changes.empty():
                changes.get_nowait()
            await push_conversations()
            current = selection.counterpart_id
            if current:
                await push_thread(selection.token, current, mark_read=False)

    unsubscribe = _subscribe("messages", changes)
    spawn(refresh_on_change())
    try:
        await push_conversations()
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await push({"type": "error", "code": "VALIDATION_ERROR", "detail": "Invalid JSON"})
                continue
            if not isinstance(data, dict) or "select" not in data:
                await push({"type": "error", "code": "VALIDATION_ERROR", "detail": "Expected {\"select\": id}"})
                continue
            counterpart_id = data["select"]
            selection_token = selection.select(counterpart_id)
            if counterpart_id:
                spawn(push_thread(selection_token, counterpart_id, mark_read=True))
    except WebSocketDisconnect:
        logger.debug(f"Message stream for {user.id} disconnected")
    finally:
        unsubscribe()
        for task in list(tasks):
            task.cancel()
