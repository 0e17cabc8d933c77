from unittest.mock import MagicMock

import pytest
from firebase_admin import messaging

from app.services import push_notification_service as push_module
from app.services.push_notification_service import (
    FIREBASE_APP_NAME,
    PushDeliveryError,
    PushMessage,
    PushNotificationService,
)


@pytest.fixture
def firebase(monkeypatch):
    sdk = MagicMock()
    sdk.app = MagicMock(name="firebase-app")
    sdk.get_app = MagicMock(side_effect=ValueError("no app"))
    sdk.initialize_app = MagicMock(return_value=sdk.app)
    sdk.delete_app = MagicMock()
    sdk.certificate = MagicMock(return_value="service-account")
    sdk.application_default = MagicMock(return_value="adc")
    sdk.send = MagicMock(return_value="projects/demo/messages/1")

    monkeypatch.setattr(push_module.firebase_admin, "get_app", sdk.get_app)
    monkeypatch.setattr(push_module.firebase_admin, "initialize_app", sdk.initialize_app)
    monkeypatch.setattr(push_module.firebase_admin, "delete_app", sdk.delete_app)
    monkeypatch.setattr(push_module.credentials, "Certificate", sdk.certificate)
    monkeypatch.setattr(push_module.credentials, "ApplicationDefault", sdk.application_default)
    monkeypatch.setattr(push_module.messaging, "send", sdk.send)
    return sdk


MESSAGE = PushMessage(title="New Shift Available", body="Alice posted a shift", data={"type": "new_exchange_shift", "count": 2})


class TestPushNotificationService:

    async def test_send_builds_fcm_message(self, firebase):
        service = PushNotificationService(credentials_path="/secrets/firebase.json", project_id="demo")

        name = await service.send("t-bob", MESSAGE)

        assert name == "projects/demo/messages/1"
        sent = firebase.send.call_args.args[0]
        assert isinstance(sent, messaging.Message)
        assert sent.token == "t-bob"
        assert sent.notification.title == "New Shift Available"
        assert sent.data == {"type": "new_exchange_shift", "count": "2"}
        assert firebase.send.call_args.kwargs["app"] is firebase.app

    async def test_app_is_initialized_once_from_service_account(self, firebase):
        service = PushNotificationService(credentials_path="/secrets/firebase.json", project_id="demo")

        await service.send("t-bob", MESSAGE)
        await service.send("t-carol", MESSAGE)

        firebase.certificate.assert_called_once_with("/secrets/firebase.json")
        firebase.initialize_app.assert_called_once()
        args, kwargs = firebase.initialize_app.call_args
        assert args[0] == "service-account"
        assert args[1]["projectId"] == "demo"
        assert kwargs["name"] == FIREBASE_APP_NAME

    async def test_application_default_credentials_without_path(self, firebase):
        service = PushNotificationService(credentials_path="", project_id="")

        await service.send("t-bob", MESSAGE)

        firebase.application_default.assert_called_once()
        firebase.certificate.assert_not_called()
        assert "projectId" not in firebase.initialize_app.call_args.args[1]

    async def test_existing_app_is_reused(self, firebase):
        firebase.get_app.side_effect = None
        firebase.get_app.return_value = firebase.app
        service = PushNotificationService(credentials_path="/secrets/firebase.json")

        await service.send("t-bob", MESSAGE)

        firebase.initialize_app.assert_not_called()

    async def test_rejected_token_raises_delivery_error(self, firebase):
        firebase.send.side_effect = messaging.UnregisteredError("Requested entity was not found.")
        service = PushNotificationService(credentials_path="/secrets/firebase.json")

        with pytest.raises(PushDeliveryError):
            await service.send("stale-token", MESSAGE)

    async def test_unreadable_credentials_raise_delivery_error(self, firebase):
        firebase.certificate.side_effect = ValueError("Invalid service account certificate")
        service = PushNotificationService(credentials_path="/secrets/missing.json")

        with pytest.raises(PushDeliveryError):
            await service.send("t-bob", MESSAGE)
        firebase.send.assert_not_called()

    async def test_close_releases_app(self, firebase):
        service = PushNotificationService(credentials_path="/secrets/firebase.json")
        await service.send("t-bob", MESSAGE)

        await service.close()
        await service.close()

        firebase.delete_app.assert_called_once_with(firebase.app)
