"""
Firebase Cloud Messaging sender built on the Firebase Admin SDK.

The SDK refreshes its OAuth access token from the service account itself; the
blocking ``messaging.send`` call runs in a worker thread.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError

from app.core.config import settings

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "shift-marketplace"


class PushDeliveryError(Exception):
    pass


@dataclass
class PushMessage:
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


class PushNotificationService:

    def __init__(self, credentials_path: Optional[str] = None, project_id: Optional[str] = None):
        self.credentials_path = credentials_path if credentials_path is not None else settings.FIREBASE_CREDENTIALS_PATH
        self.project_id = project_id if project_id is not None else settings.FIREBASE_PROJECT_ID
        self._app: Optional[firebase_admin.App] = None

    def _get_app(self) -> firebase_admin.App:
        if self._app is not None:
            return self._app
        try:
            self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            if self.credentials_path:
                cred = credentials.Certificate(self.credentials_path)
                logger.info(f"Initializing Firebase Admin from service account {self.credentials_path}")
            else:
                cred = credentials.ApplicationDefault()
                logger.info("Initializing Firebase Admin with application default credentials")
            options = {"httpTimeout": settings.FIREBASE_HTTP_TIMEOUT_SECONDS}
            if self.project_id:
                options["projectId"] = self.project_id
            self._app = firebase_admin.initialize_app(cred, options, name=FIREBASE_APP_NAME)
        return self._app

    def _build(self, token: str, message: PushMessage) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(title=message.title, body=message.body),
            # FCM data values must be strings
            data={key: str(value) for key, value in message.data.items() if value is not None},
        )

    async def send(self, token: str, message: PushMessage) -> str:
        """Send one message to one device token and return the FCM message name."""
        try:
            app = self._get_app()
            return await asyncio.to_thread(messaging.send, self._build(token, message), app=app)
        except FirebaseError as e:
            raise PushDeliveryError(f"FCM rejected message ({e.code}): {str(e)}") from e
        except (ValueError, OSError) as e:
            raise PushDeliveryError(f"Invalid FCM message or credentials: {str(e)}") from e

    async def close(self) -> None:
        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None
