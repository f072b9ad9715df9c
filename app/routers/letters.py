from fastapi import APIRouter, Depends
from sqlmodel import Session
from pydantic import BaseModel
from typing import List

from ..database import get_session
from ..models.letter import LetterPreview
from ..services.letter_store import LetterStore

router = APIRouter(
    prefix="/letters",
    tags=["Letters"]
)

class PublicLettersResponse(BaseModel):
    letters: List[LetterPreview]

# Previews only; full content is served by /postcheck after verification
@router.get("/public", response_model=PublicLettersResponse)
def list_public_letters(session: Session = Depends(get_session)):
    return PublicLettersResponse(letters=LetterStore(session).list_public_previews())
