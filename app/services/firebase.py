import firebase_admin
from firebase_admin import auth, credentials
from typing import Optional

from app.config import FIREBASE_CREDENTIALS_JSON
from app.utils.logger import logger


class IdTokenError(Exception):
    pass


def _ensure_app():
    # Initialize Firebase Admin SDK if not already initialized
    try:
        return firebase_admin.get_app()
    except ValueError:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS_JSON)
        return firebase_admin.initialize_app(cred)

def verify_phone_id_token(id_token: Optional[str]) -> str:
    """Return the phone number asserted by a Firebase ID token."""
    if not id_token:
        raise IdTokenError("Verification token is required")

    _ensure_app()
    try:
        decoded_token = auth.verify_id_token(id_token)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        logger.warning(f"Rejected Firebase ID token: {e}")
        raise IdTokenError("Invalid verification token")

    phone_number = decoded_token.get("phone_number")
    if not phone_number:
        raise IdTokenError("Verification token carries no phone number")
    return phone_number
