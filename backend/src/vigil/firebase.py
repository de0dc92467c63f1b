"""Firebase Admin SDK initialization shared by auth and push."""

import logging

import firebase_admin
from firebase_admin import credentials

from vigil.config import settings

logger = logging.getLogger(__name__)


def get_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.firebase_credentials_path:
        cred = credentials.Certificate(settings.firebase_credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None

    app = firebase_admin.initialize_app(cred, options)
    logger.info(f"Firebase Admin initialized (project={settings.firebase_project_id or 'default'})")
    return app
