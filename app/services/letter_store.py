from sqlmodel import Session, select
from sqlalchemy import func, update, or_
from datetime import datetime
from typing import List, Optional

from app.config import PREVIEW_LENGTH
from app.models.letter import Letter, LetterCreate, LetterUpdate, LetterView, AdminLetterView, LetterPreview
from app.services.attachments import resolve_attachments, AttachmentError
from app.services.phone import normalize_phone, is_canonical_phone
from app.utils.dates import utcnow
from app.utils.logger import logger


class InvalidLetter(ValueError):
    pass

class PhoneTaken(Exception):
    pass


def make_preview(context: str, length: int = PREVIEW_LENGTH) -> str:
    return context[:length] + ("..." if len(context) > length else "")


class LetterStore:
    """Persistence boundary for letters.

    Every read path filters out soft-deleted rows, and attachments leave the
    store only as tagged variants.
    """

    def __init__(self, session: Session):
        self.session = session

    def _active(self):
        return select(Letter).where(Letter.deleted == False)  # noqa: E712

    def find_active_by_phone(self, phone: str) -> Optional[Letter]:
        return self.session.exec(
            self._active().where(Letter.phone == phone)
        ).first()

    def stamp_verified(self, phone: str, at: Optional[datetime] = None) -> Optional[Letter]:
        at = at or utcnow()
        # Single conditional UPDATE: concurrent stamps never move logged_at back
        statement = (
            update(Letter)
            .where(Letter.phone == phone)
            .where(Letter.deleted == False)  # noqa: E712
            .where(or_(Letter.logged_at.is_(None), Letter.logged_at < at))
            .values(logged_at=at)
        )
        result = self.session.execute(statement)
        self.session.commit()
        if result.rowcount:
            logger.info(f"Stamped verification for {phone} at {at.isoformat()}")
        return self.find_active_by_phone(phone)

    def list_public_previews(self) -> List[LetterPreview]:
        letters = self.session.exec(
            self._active().order_by(Letter.created_at.desc())
        ).all()
        return [
            LetterPreview(
                id=letter.id,
                title=letter.title,
                preview=make_preview(letter.context),
                created_at=letter.created_at,
            )
            for letter in letters
        ]

    # Admin operations

    def list_active(self) -> List[Letter]:
        return self.session.exec(
            self._active().order_by(Letter.created_at.desc())
        ).all()

    def get_active(self, letter_id: str) -> Optional[Letter]:
        return self.session.exec(
            self._active().where(Letter.id == letter_id)
        ).first()

    def _phone_taken(self, phone: str, exclude_id: Optional[str] = None) -> bool:
        statement = self._active().where(Letter.phone == phone)
        if exclude_id:
            statement = statement.where(Letter.id != exclude_id)
        return self.session.exec(statement).first() is not None

    def _save_claiming_phone(self, letter: Letter, message: str):
        # No unique index since soft-deleted rows keep their phone, so the
        # active count is re-checked inside the writing transaction
        self.session.add(letter)
        self.session.flush()
        active = self.session.exec(
            select(func.count()).select_from(Letter)
            .where(Letter.deleted == False)  # noqa: E712
            .where(Letter.phone == letter.phone)
        ).one()
        if active > 1:
            self.session.rollback()
            raise PhoneTaken(message)
        self.session.commit()
        self.session.refresh(letter)

    def _clean_phone(self, phone: str) -> str:
        phone = normalize_phone(phone)
        if not is_canonical_phone(phone):
            raise InvalidLetter("Phone must be in format: +<country code> <number>")
        return phone

    def _clean_attachments(self, attachments) -> list:
        try:
            return [a.model_dump(exclude_none=True) for a in resolve_attachments(attachments)]
        except AttachmentError as e:
            raise InvalidLetter(str(e))

    def create(self, data: LetterCreate) -> Letter:
        if not data.phone or not data.title or not data.context:
            raise InvalidLetter("Phone, title, and context are required")

        phone = self._clean_phone(data.phone)
        if self._phone_taken(phone):
            raise PhoneTaken("A letter already exists for this phone number")

        letter = Letter(
            phone=phone,
            title=data.title,
            context=data.context,
            extra_note=data.extra_note or "",
            attachments=self._clean_attachments(data.attachments),
        )
        self._save_claiming_phone(letter, "A letter already exists for this phone number")
        logger.info(f"Created letter {letter.id} for {letter.phone}")
        return letter

    def update(self, letter: Letter, data: LetterUpdate) -> Letter:
        phone_changed = False
        if data.phone and data.phone != letter.phone:
            phone = self._clean_phone(data.phone)
            if self._phone_taken(phone, exclude_id=letter.id):
                raise PhoneTaken("Another letter already exists for this phone number")
            letter.phone = phone
            phone_changed = True

        letter.title = data.title or letter.title
        letter.context = data.context or letter.context
        if data.extra_note is not None:
            letter.extra_note = data.extra_note
        if data.attachments is not None:
            letter.attachments = self._clean_attachments(data.attachments)

        if phone_changed:
            self._save_claiming_phone(letter, "Another letter already exists for this phone number")
        else:
            self.session.add(letter)
            self.session.commit()
            self.session.refresh(letter)
        logger.info(f"Updated letter {letter.id}")
        return letter

    def soft_delete(self, letter: Letter) -> None:
        letter.deleted = True
        self.session.add(letter)
        self.session.commit()
        logger.info(f"Soft-deleted letter {letter.id}")


def to_view(letter: Letter) -> LetterView:
    return LetterView(
        id=letter.id,
        phone=letter.phone,
        title=letter.title,
        context=letter.context,
        extra_note=letter.extra_note or "",
        attachments=resolve_attachments(letter.attachments, validate=False),
        created_at=letter.created_at,
    )

def to_admin_view(letter: Letter) -> AdminLetterView:
    return AdminLetterView(
        **to_view(letter).model_dump(),
        logged_at=letter.logged_at,
    )
