"""
Tests para el servicio de notificaciones, el registro de clientes y la
idempotencia en memoria.
"""

import pytest

from paysign.adapters import PayPlat, factory
from paysign.services import NotificationService
from paysign.services.notification_service import REPLY_IN_PROGRESS
from paysign.utils.exceptions import ProviderNotFoundError
from paysign.utils.idempotency import InMemoryIdempotencyManager, notification_key


class TestFactory:
    """Tests para el registro de clientes."""

    def test_get_unknown_platform(self):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            factory.get_gateway("paypal")

        assert exc_info.value.code == "PROVIDER_NOT_FOUND"

    def test_get_unregistered_platform(self):
        factory.unregister(PayPlat.WECHAT)

        with pytest.raises(ProviderNotFoundError):
            factory.get_gateway(PayPlat.WECHAT)

    def test_register_and_unregister(self, wechat_client):
        factory.register("wechat", wechat_client)
        try:
            assert factory.get_gateway(PayPlat.WECHAT) is wechat_client
            assert factory.resolve_gateway("wechat") is wechat_client
        finally:
            factory.unregister(PayPlat.WECHAT)

        with pytest.raises(ProviderNotFoundError):
            factory.get_gateway(PayPlat.WECHAT)


class TestInMemoryIdempotency:
    """Tests para el gestor de idempotencia en memoria."""

    def test_notification_key(self):
        assert notification_key("wechat", "4200") == "wechat:4200"

    @pytest.mark.asyncio
    async def test_cache_roundtrip(self, idempotency):
        assert await idempotency.get_cached_response("k") is None

        await idempotency.cache_response("k", {"body": "success"})

        assert await idempotency.get_cached_response("k") == {"body": "success"}

    @pytest.mark.asyncio
    async def test_processing_lock(self, idempotency):
        assert await idempotency.is_processing("k") is False
        assert await idempotency.is_processing("k") is True

        await idempotency.release_lock("k")

        assert await idempotency.is_processing("k") is False


class TestNotificationService:
    """Tests para el despacho de notificaciones."""

    @pytest.mark.asyncio
    async def test_handler_receives_result(
        self, wechat_client, wechat_notification_params, sign_wechat_notification
    ):
        received = []

        async def handler(result):
            received.append(result)

        service = NotificationService(wechat_client, InMemoryIdempotencyManager())

        reply = await service.process_payment_notification(
            sign_wechat_notification(wechat_notification_params), handler
        )

        assert reply.success is True
        assert received[0].transaction_id == "1004400740201409030005092168"

    @pytest.mark.asyncio
    async def test_cached_reply_is_returned(
        self, alipay_client, alipay_notification_params, sign_alipay_notification
    ):
        calls = []

        async def handler(result):
            calls.append(result)

        idempotency = InMemoryIdempotencyManager()
        service = NotificationService(alipay_client, idempotency)
        body = sign_alipay_notification(alipay_notification_params)

        first = await service.process_payment_notification(body, handler)
        second = await service.process_payment_notification(body, handler)

        assert first.body == second.body == b"success"
        assert len(calls) == 1
        key = notification_key("alipay", "ac05099524730693a8b330c5ecf72da9786")
        assert await idempotency.get_cached_response(key) is not None
        assert await idempotency.is_processing(key) is False

    @pytest.mark.asyncio
    async def test_in_progress(
        self, alipay_client, alipay_notification_params, sign_alipay_notification
    ):
        """Con el lock tomado por otro proceso se responde fallo para que reintente."""
        calls = []

        async def handler(result):
            calls.append(result)

        idempotency = InMemoryIdempotencyManager()
        await idempotency.is_processing(notification_key("alipay", "ac05099524730693a8b330c5ecf72da9786"))
        service = NotificationService(alipay_client, idempotency)

        reply = await service.process_payment_notification(
            sign_alipay_notification(alipay_notification_params), handler
        )

        assert reply.success is False
        assert reply.body == b"fail"
        assert calls == []

    @pytest.mark.asyncio
    async def test_handler_error_releases_lock(
        self, wechat_client, wechat_notification_params, sign_wechat_notification
    ):
        async def handler(result):
            raise ValueError("amount mismatch")

        idempotency = InMemoryIdempotencyManager()
        service = NotificationService(wechat_client, idempotency)

        reply = await service.process_payment_notification(
            sign_wechat_notification(wechat_notification_params), handler
        )

        key = notification_key("wechat", "1004400740201409030005092168")
        assert reply.success is False
        assert b"amount mismatch" in reply.body
        assert await idempotency.get_cached_response(key) is None
        assert await idempotency.is_processing(key) is False

    @pytest.mark.asyncio
    async def test_rejected_notification(self, wechat_client):
        async def handler(result):
            raise AssertionError("handler must not run")

        service = NotificationService(wechat_client, InMemoryIdempotencyManager())

        reply = await service.process_payment_notification(b"<xml><sign>X</sign></xml>", handler)

        assert reply.success is False

    @pytest.mark.asyncio
    async def test_refund_dedupe_key(self, wechat_client, wechat_refund_notification, refund_info):
        async def handler(result):
            pass

        idempotency = InMemoryIdempotencyManager()
        service = NotificationService(wechat_client, idempotency)

        reply = await service.process_refund_notification(wechat_refund_notification(refund_info), handler)

        assert reply.success is True
        assert await idempotency.get_cached_response("wechat:refund:REFUND-0001") is not None

    @pytest.mark.asyncio
    async def test_refund_not_supported_by_alipay(self, alipay_client):
        async def handler(result):
            raise AssertionError("handler must not run")

        service = NotificationService(alipay_client, InMemoryIdempotencyManager())

        reply = await service.process_refund_notification(b"", handler)

        assert reply.body == b"fail"
