"""
Realtime Endpoint

WebSocket stream of committed changes for one table:

    ws://.../api/v1/realtime/{table}?token=<jwt>[&tenant_id=<id>]

Only super admins may pick another tenant or listen across tenants;
everyone else is pinned to their own tenant. Messages carry identifiers
only; clients re-read rows through the REST endpoints.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from typing import Optional
import asyncio

from crux.core.exceptions import AuthenticationError
from crux.core.rls import registry
from crux.database import SessionLocal
from crux.api.deps import caller_from_token
from crux.realtime import ALL_TABLES
from crux.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


def _resolve(token: Optional[str]):
    if not token:
        return None
    db = SessionLocal()
    try:
        return caller_from_token(db, token)
    except AuthenticationError:
        return None
    finally:
        db.close()


@router.websocket("/{table}")
async def stream_changes(
    websocket: WebSocket,
    table: str,
    token: Optional[str] = None,
    tenant_id: Optional[str] = None,
):
    caller = _resolve(token)
    if caller is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if table != ALL_TABLES and table not in registry.tables():
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not caller.is_super_admin:
        if caller.tenant_id is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        if tenant_id and tenant_id != caller.tenant_id:
            log_security_event(
                "realtime_cross_tenant_subscription",
                {"user_id": caller.user_id, "tenant_id": caller.tenant_id, "requested_tenant": tenant_id},
                logger,
            )
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        tenant_id = caller.tenant_id

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Commits happen on worker threads; hand events over to this loop
    def on_change(change):
        loop.call_soon_threadsafe(queue.put_nowait, change)

    subscription = websocket.app.state.change_feed.subscribe(table, on_change, tenant_id)
    logger.info(
        f"Realtime subscription opened for {table}",
        extra={"user_id": caller.user_id, "tenant_id": tenant_id},
    )

    async def forward():
        while True:
            change = await queue.get()
            await websocket.send_json(change.to_dict())

    async def drain():
        # Client messages are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(forward()), asyncio.create_task(drain())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    finally:
        for task in tasks:
            task.cancel()
        subscription.unsubscribe()
        logger.info(f"Realtime subscription closed for {table}", extra={"user_id": caller.user_id})
