from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
from pydantic import BaseModel
from typing import List, Optional

from ..auth import check_admin_credentials, create_admin_token, get_current_admin
from ..database import get_session
from ..models.letter import AdminLetterView, LetterCreate, LetterUpdate
from ..services.letter_store import LetterStore, InvalidLetter, PhoneTaken, to_admin_view

router = APIRouter(
    prefix="/admin",
    tags=["Admin"]
)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None

class LoginResponse(BaseModel):
    token: str

@router.post("/login", response_model=LoginResponse)
def login(request: LoginRequest):
    if not check_admin_credentials(request.username or "", request.password or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )
    return LoginResponse(token=create_admin_token())


class LetterListResponse(BaseModel):
    letters: List[AdminLetterView]

class LetterResponse(BaseModel):
    letter: AdminLetterView

@router.get("/letters", response_model=LetterListResponse)
def list_letters(
    session: Session = Depends(get_session),
    admin: str = Depends(get_current_admin)
):
    letters = LetterStore(session).list_active()
    return LetterListResponse(letters=[to_admin_view(letter) for letter in letters])


@router.post("/letters", response_model=LetterResponse, status_code=status.HTTP_201_CREATED)
def create_letter(
    request: LetterCreate,
    session: Session = Depends(get_session),
    admin: str = Depends(get_current_admin)
):
    try:
        letter = LetterStore(session).create(request)
    except InvalidLetter as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PhoneTaken as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return LetterResponse(letter=to_admin_view(letter))


@router.put("/letters/{letter_id}", response_model=LetterResponse)
def update_letter(
    letter_id: str,
    request: LetterUpdate,
    session: Session = Depends(get_session),
    admin: str = Depends(get_current_admin)
):
    store = LetterStore(session)
    letter = store.get_active(letter_id)
    if not letter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Letter not found")

    try:
        letter = store.update(letter, request)
    except InvalidLetter as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PhoneTaken as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return LetterResponse(letter=to_admin_view(letter))


@router.delete("/letters/{letter_id}")
def delete_letter(
    letter_id: str,
    session: Session = Depends(get_session),
    admin: str = Depends(get_current_admin)
):
    store = LetterStore(session)
    letter = store.get_active(letter_id)
    if not letter:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Letter not found")

    store.soft_delete(letter)
    return {"message": "Letter deleted successfully"}
