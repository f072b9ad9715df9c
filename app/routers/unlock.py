from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from ..database import get_session
from ..config import VERIFY_ID_TOKEN
from ..models.letter import CamelModel, LetterView
from ..services.cooldown import can_send
from ..services.firebase import verify_phone_id_token, IdTokenError
from ..services.letter_store import LetterStore, to_view
from ..services.phone import normalize_phone, to_e164
from ..utils.dates import utcnow, as_utc

router = APIRouter(
    tags=["Unlock"]
)

NOT_FOUND_MESSAGE = "No letter found for this phone number"


class PhoneRequest(CamelModel):
    phone: Optional[str] = None
    id_token: Optional[str] = None

class PreCheckResponse(CamelModel):
    can_resend: bool
    last_sent_at: Optional[datetime]

class PostCheckResponse(BaseModel):
    user: LetterView


def require_phone(request: PhoneRequest) -> str:
    if not request.phone or not request.phone.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Phone number is required"
        )
    return normalize_phone(request.phone)


@router.post("/precheck", response_model=PreCheckResponse)
def precheck(request: PhoneRequest, session: Session = Depends(get_session)):
    phone = require_phone(request)
    letter = LetterStore(session).find_active_by_phone(phone)
    if not letter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)

    return PreCheckResponse(
        can_resend=can_send(letter.logged_at, utcnow()),
        last_sent_at=as_utc(letter.logged_at),
    )


@router.post("/postcheck", response_model=PostCheckResponse)
def postcheck(request: PhoneRequest, session: Session = Depends(get_session)):
    phone = require_phone(request)

    if VERIFY_ID_TOKEN:
        try:
            verified_phone = verify_phone_id_token(request.id_token)
        except IdTokenError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
        if to_e164(verified_phone) != to_e164(phone):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Verification token does not match this phone number"
            )

    letter = LetterStore(session).stamp_verified(phone, utcnow())
    if not letter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)

    return PostCheckResponse(user=to_view(letter))
