"""Dependency injection for FastAPI endpoints"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Dict, Any, Optional

from fastapi import BackgroundTasks, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from microlend.domain.events import DomainEvent
from microlend.domain.exceptions import DomainException
from microlend.infrastructure.clients.notifier import EventWebhookClient
from microlend.infrastructure.database.models import User
from microlend.infrastructure.database.repositories import UserRepository
from microlend.infrastructure.database.session import get_db
from microlend.infrastructure.notifications.dispatcher import NotificationDispatcher
from microlend.services.accounts import AccountService
from microlend.services.lifecycle import LoanLifecycle
from microlend.utils.date_utils import utcnow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> Callable[[], datetime]:
    """Time source for lifecycle operations"""
    return utcnow


def get_event_client() -> EventWebhookClient:
    """Provide event webhook client instance"""
    return EventWebhookClient()


def get_lifecycle(
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LoanLifecycle:
    return LoanLifecycle(db, clock, request_id=get_request_id(request))


def get_account_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AccountService:
    return AccountService(db, clock)


class EventPublisher:
    """Dispatch events as notifications now, forward them to the webhook after the response"""

    def __init__(self, dispatcher: NotificationDispatcher, client: EventWebhookClient, background_tasks: BackgroundTasks):
        self.dispatcher = dispatcher
        self.client = client
        self.background_tasks = background_tasks

    def publish(self, events: Iterable[DomainEvent], request_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Deliver events for an operation that has already committed.

        Delivery failures are logged, never raised to the caller.
        """
        try:
            notifications = self.dispatcher.dispatch(events)
        except DomainException as e:
            logging.error(f"Notification dispatch failed: {e}", extra={"request_id": request_id})
            return []
        if self.client.enabled and notifications:
            self.background_tasks.add_task(self.client.send_events, notifications)
        return notifications


def get_publisher(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: EventWebhookClient = Depends(get_event_client),
) -> EventPublisher:
    return EventPublisher(NotificationDispatcher(db), client, background_tasks)


def parse_uuid(value: str, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")


def get_current_user(
    x_user_id: Optional[str] = Header(None, description="Caller identity, issued by the auth layer"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user; authentication itself happens upstream"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-ID header")

    user = UserRepository(db).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_role(*roles: str):
    """Dependency factory restricting an endpoint to the given roles"""

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail=f"Role '{user.role}' is not allowed to perform this action")
        return user

    return checker


def http_error(error: DomainException) -> HTTPException:
    """Map a domain exception to the HTTP response the caller sees"""
    return HTTPException(status_code=error.status_code, detail=str(error))
