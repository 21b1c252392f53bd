from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.exceptions import ValidationError, envelope
from ...core.security import UserRole
from ...api.deps import get_current_user, pagination
from ...services.doctor_service import DoctorService
from ...services.session_service import SessionService
from ...schemas.session import (
    SessionCreate, SessionResponse, SessionDetailResponse,
    MessageCreate, MessageResponse
)
from ...schemas.common import PageParams, Pagination
from ...models.consultation import SessionStatus
from ...models.user import User

router = APIRouter(tags=["Sessions"])

def _session(session) -> dict:
    return SessionResponse.model_validate(session).model_dump(mode="json")

def _message(message) -> dict:
    return MessageResponse.model_validate(message).model_dump(mode="json")

@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Open a session. The caller is always one side of it."""
    if current_user.role == UserRole.PATIENT:
        patient_id, doctor_id = current_user.id, session_data.doctor_id
        missing = "doctor_id is required"
    elif current_user.role == UserRole.DOCTOR:
        patient_id = session_data.patient_id
        doctor_id = DoctorService(db).get_by_user(current_user.id).id
        missing = "patient_id is required"
    else:
        patient_id, doctor_id = session_data.patient_id, session_data.doctor_id
        missing = "patient_id and doctor_id are required"

    if patient_id is None or doctor_id is None:
        raise ValidationError(errors=[missing])

    session = SessionService(db).create_session(patient_id, doctor_id, session_data.booking_id)
    return envelope("Session created successfully", {"session": _session(session)})

@router.get("/sessions")
async def list_sessions(
    status: Optional[SessionStatus] = None,
    page: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    sessions, total = SessionService(db).list_sessions(current_user, page.offset, page.limit, status)
    return envelope("Sessions retrieved successfully", {
        "sessions": [_session(session) for session in sessions],
        "pagination": Pagination.build(page.page, page.limit, total).model_dump(),
    })

@router.get("/sessions/{session_id}")
async def get_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    session = SessionService(db).get_session(session_id, current_user)
    detail = SessionDetailResponse.model_validate(session).model_dump(mode="json")
    return envelope("Session retrieved successfully", {"session": detail})

@router.post("/sessions/{session_id}/end")
async def end_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    session = SessionService(db).end_session(session_id, current_user)
    return envelope("Session ended successfully", {"session": _session(session)})

@router.post("/sessions/{session_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    session_id: int,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    message = SessionService(db).send_message(
        session_id, current_user, message_data.content, message_data.type
    )
    return envelope("Message sent successfully", {"message": _message(message)})

@router.get("/sessions/{session_id}/messages")
async def list_messages(
    session_id: int,
    page: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    messages, total = SessionService(db).list_messages(session_id, current_user, page.offset, page.limit)
    return envelope("Messages retrieved successfully", {
        "messages": [_message(message) for message in messages],
        "pagination": Pagination.build(page.page, page.limit, total).model_dump(),
    })

@router.post("/sessions/{session_id}/read")
async def mark_read(
    session_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    updated = SessionService(db).mark_read(session_id, current_user)
    return envelope("Messages marked as read", {"updated": updated})

@router.get("/messages/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = SessionService(db).unread_count(current_user)
    return envelope("Unread message count retrieved successfully", {"unread_count": count})

@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    SessionService(db).delete_message(message_id, current_user)
    return envelope("Message deleted successfully")
