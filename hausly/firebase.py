import logging

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, exceptions

from .config import FIREBASE_CLIENT_EMAIL, FIREBASE_PRIVATE_KEY, FIREBASE_PROJECT_ID

logger = logging.getLogger(__name__)


def init_firebase_admin() -> bool:
    """
    Initialize the Firebase Admin SDK once.

    Uses the service account from the environment when both client email and
    private key are set, application default credentials otherwise. A failure
    is logged and the API keeps running without admin features.
    """
    try:
        firebase_admin.get_app()
        return True
    except ValueError:
        pass

    try:
        if FIREBASE_PRIVATE_KEY and FIREBASE_CLIENT_EMAIL:
            cred = credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": FIREBASE_PROJECT_ID,
                    "client_email": FIREBASE_CLIENT_EMAIL,
                    "private_key": FIREBASE_PRIVATE_KEY,
                    "token_uri": "https://oauth2.googleapis.com/token",
                }
            )
            firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
            logger.info("✅ Firebase Admin initialized with environment credentials")
        else:
            cred = credentials.ApplicationDefault()
            firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
            logger.info("✅ Firebase Admin initialized with default credentials")
        return True
    except Exception as e:
        logger.warning(f"⚠️ Firebase Admin initialization failed: {e}")
        return False


def sync_role_claim(firebase_uid: str, role: str) -> bool:
    """Mirror a role change into the user's Firebase custom claims"""
    if not init_firebase_admin():
        return False
    try:
        firebase_auth.set_custom_user_claims(firebase_uid, {"role": role})
        logger.info(f"🔄 Role claim for {firebase_uid} set to {role}")
        return True
    except (exceptions.FirebaseError, ValueError) as e:
        logger.error(f"❌ Failed to sync role claim for {firebase_uid}: {e}")
        return False
