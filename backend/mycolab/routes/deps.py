from typing import AsyncIterator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .. import pubsub, schemas
from ..database import get_db
from ..projection import LabState
from ..store import build_store

# purpose: resolve the acting user and a loaded projection for each request
# status: active


def get_current_actor(x_user_id: Optional[str] = Header(default=None)) -> UUID:
    # authentication happens upstream; the gateway forwards the user id
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user id")


async def get_state(
    db: Optional[Session] = Depends(get_db),
    actor_id: UUID = Depends(get_current_actor),
) -> AsyncIterator[LabState]:
    """Load the actor's projection and publish the events it commits."""

    state = LabState(build_store(db), actor_id).load()
    events: list[schemas.LabEvent] = []
    unsubscribe = state.subscribe(events.append)
    try:
        yield state
    finally:
        unsubscribe()
    if events:
        await pubsub.publish_lab_events(actor_id, events)
