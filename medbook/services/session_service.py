from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import ConflictError, ForbiddenError, NotFoundError
from ..core.security import UserRole
from ..models.booking import Booking
from ..models.consultation import ConsultSession, Message, MessageType, SessionStatus
from ..models.doctor import Doctor
from ..models.user import User

logger = logging.getLogger(__name__)

class SessionService:
    """Consultation threads between a patient and a doctor.

    Participants are identified by user id: the session's patient and the
    account that owns the session's doctor profile. Admins may read any
    session but only participants may write to one.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_session(
        self,
        patient_id: int,
        doctor_id: int,
        booking_id: Optional[int] = None,
    ) -> ConsultSession:
        patient = self.db.query(User).filter(User.id == patient_id).first()
        if not patient:
            raise NotFoundError("User not found")

        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")

        if booking_id is not None:
            booking = self.db.query(Booking).filter(
                Booking.id == booking_id,
                Booking.patient_id == patient_id,
                Booking.doctor_id == doctor_id,
            ).first()
            if not booking:
                raise NotFoundError("Booking not found")

        session = ConsultSession(
            patient_id=patient_id,
            doctor_id=doctor_id,
            booking_id=booking_id,
            status=SessionStatus.ACTIVE,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Session {session.id} opened between user {patient_id} and doctor {doctor_id}")
        return session

    def _load(self, session_id: int) -> ConsultSession:
        session = self.db.query(ConsultSession).options(
            joinedload(ConsultSession.doctor)
        ).filter(ConsultSession.id == session_id).first()
        if not session:
            raise NotFoundError("Session not found")
        return session

    def _check_participant(self, session: ConsultSession, user: User, allow_admin: bool = False):
        if user.id in session.participant_ids():
            return
        if allow_admin and user.role == UserRole.ADMIN:
            return
        raise ForbiddenError("You are not part of this session")

    def get_session(self, session_id: int, user: User) -> ConsultSession:
        session = self._load(session_id)
        self._check_participant(session, user, allow_admin=True)
        return session

    def list_sessions(
        self,
        user: User,
        offset: int,
        limit: int,
        status: Optional[SessionStatus] = None,
    ):
        query = self.db.query(ConsultSession)
        if user.role != UserRole.ADMIN:
            query = query.filter(self._participant_clause(user))
        if status:
            query = query.filter(ConsultSession.status == status)

        total = query.count()
        sessions = query.order_by(
            ConsultSession.created_at.desc(), ConsultSession.id.desc()
        ).offset(offset).limit(limit).all()
        return sessions, total

    def _participant_clause(self, user: User):
        clauses = [ConsultSession.patient_id == user.id]
        if user.doctor is not None:
            clauses.append(ConsultSession.doctor_id == user.doctor.id)
        return or_(*clauses)

    def end_session(self, session_id: int, user: User) -> ConsultSession:
        session = self._load(session_id)
        self._check_participant(session, user, allow_admin=True)

        if session.status == SessionStatus.ENDED:
            raise ConflictError("Session has already ended")

        session.status = SessionStatus.ENDED
        session.ended_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(session)
        return session

    # Messages

    def send_message(
        self,
        session_id: int,
        sender: User,
        content: str,
        type: MessageType = MessageType.TEXT,
    ) -> Message:
        session = self._load(session_id)

        if session.status != SessionStatus.ACTIVE:
            raise ConflictError("Cannot send message to inactive session")

        if sender.id not in session.participant_ids():
            raise ForbiddenError("Sender is not part of this session")

        message = Message(
            session_id=session.id,
            sender_id=sender.id,
            content=content,
            type=type,
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def list_messages(self, session_id: int, user: User, offset: int, limit: int):
        """Oldest first."""
        session = self._load(session_id)
        self._check_participant(session, user, allow_admin=True)

        query = self.db.query(Message).filter(Message.session_id == session_id)
        total = query.count()
        messages = query.order_by(
            Message.created_at.asc(), Message.id.asc()
        ).offset(offset).limit(limit).all()
        return messages, total

    def mark_read(self, session_id: int, reader: User) -> int:
        """Mark every message from the other participant as read, in one update."""
        session = self._load(session_id)
        self._check_participant(session, reader)

        updated = self.db.query(Message).filter(
            Message.session_id == session_id,
            Message.sender_id != reader.id,
            Message.is_read == False,
        ).update({"is_read": True}, synchronize_session=False)
        self.db.commit()
        return updated

    def unread_count(self, user: User) -> int:
        """Unread messages addressed to the user across all of their active sessions."""
        active_sessions = self.db.query(ConsultSession.id).filter(
            self._participant_clause(user),
            ConsultSession.status == SessionStatus.ACTIVE,
        )
        return self.db.query(Message).filter(
            Message.session_id.in_(active_sessions.scalar_subquery()),
            Message.sender_id != user.id,
            Message.is_read == False,
        ).count()

    def delete_message(self, message_id: int, user: User) -> None:
        message = self.db.query(Message).filter(Message.id == message_id).first()
        if not message:
            raise NotFoundError("Message not found")

        if message.sender_id != user.id:
            raise ForbiddenError("You can only delete your own messages")

        self.db.delete(message)
        self.db.commit()
