"""
Tests de integración para endpoints de la API.
"""

import pytest
from httpx import AsyncClient

from paysign.adapters import PayPlat, factory
from paysign.engine.verifier import parse_markup
from paysign.main import app
from paysign.routes.notifications import get_notify_handler, get_refund_notify_handler


class Recorder:
    """Callback de negocio que registra las notificaciones recibidas."""

    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    async def __call__(self, result):
        self.calls.append(result)
        if self.error:
            raise self.error


@pytest.fixture
def recorder() -> Recorder:
    handler = Recorder()
    app.dependency_overrides[get_notify_handler] = lambda: handler
    app.dependency_overrides[get_refund_notify_handler] = lambda: handler
    return handler


class TestHealthEndpoints:
    """Tests para endpoints de salud."""

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        """Test endpoint raíz."""
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_health_endpoint(self, client: AsyncClient):
        """Test endpoint de health check."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["gateways"]) == {"alipay", "wechat"}

    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestAlipayNotificationEndpoint:
    """Tests para ``/api/notifications/alipay``."""

    @pytest.mark.asyncio
    async def test_valid_notification(
        self, client: AsyncClient, recorder, alipay_notification_params, sign_alipay_notification
    ):
        response = await client.post(
            "/api/notifications/alipay",
            content=sign_alipay_notification(alipay_notification_params),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        assert response.text == "success"
        assert response.headers["content-type"].startswith("text/plain")
        assert len(recorder.calls) == 1
        assert recorder.calls[0].total_amount == 8888

    @pytest.mark.asyncio
    async def test_bad_signature(
        self, client: AsyncClient, recorder, alipay_notification_params, sign_alipay_notification
    ):
        body = sign_alipay_notification(alipay_notification_params)

        response = await client.post(
            "/api/notifications/alipay",
            content=body.replace(b"total_amount=88.88", b"total_amount=0.01"),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        assert response.text == "fail"
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_redelivery_runs_handler_once(
        self, client: AsyncClient, recorder, alipay_notification_params, sign_alipay_notification
    ):
        """Un reenvío de la misma notificación no vuelve a ejecutar el callback."""
        body = sign_alipay_notification(alipay_notification_params)
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        first = await client.post("/api/notifications/alipay", content=body, headers=headers)
        second = await client.post("/api/notifications/alipay", content=body, headers=headers)

        assert first.text == "success"
        assert second.text == "success"
        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_handler_failure_replies_fail(
        self, client: AsyncClient, alipay_notification_params, sign_alipay_notification
    ):
        handler = Recorder(error=RuntimeError("order not found"))
        app.dependency_overrides[get_notify_handler] = lambda: handler
        body = sign_alipay_notification(alipay_notification_params)
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        first = await client.post("/api/notifications/alipay", content=body, headers=headers)
        second = await client.post("/api/notifications/alipay", content=body, headers=headers)

        assert first.text == "fail"
        # El fallo no se cachea: el reintento vuelve a ejecutar el callback
        assert second.text == "fail"
        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_unconfigured_gateway(self, client: AsyncClient, monkeypatch):
        factory.unregister(PayPlat.ALIPAY)
        factory.build_gateway.cache_clear()
        monkeypatch.setattr("paysign.config.settings.ALIPAY_APP_ID", "")

        response = await client.post("/api/notifications/alipay", content=b"a=1")

        assert response.status_code == 503


class TestWechatNotificationEndpoint:
    """Tests para ``/api/notifications/wechat``."""

    @pytest.mark.asyncio
    async def test_valid_notification(
        self, client: AsyncClient, recorder, wechat_notification_params, sign_wechat_notification
    ):
        response = await client.post(
            "/api/notifications/wechat",
            content=sign_wechat_notification(wechat_notification_params),
            headers={"Content-Type": "text/xml"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert parse_markup(response.content) == {"return_code": "SUCCESS", "return_msg": "OK"}
        assert recorder.calls[0].merchant_order_no == "1409811653"

    @pytest.mark.asyncio
    async def test_bad_signature(
        self, client: AsyncClient, recorder, wechat_notification_params, sign_wechat_notification
    ):
        body = sign_wechat_notification(wechat_notification_params)

        response = await client.post(
            "/api/notifications/wechat",
            content=body.replace(b"<total_fee>1</total_fee>", b"<total_fee>2</total_fee>"),
        )

        reply = parse_markup(response.content)
        assert reply["return_code"] == "FAIL"
        assert "signature verification failed" in reply["return_msg"]
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_malformed_body(self, client: AsyncClient, recorder):
        response = await client.post("/api/notifications/wechat", content=b"not xml")

        assert parse_markup(response.content)["return_code"] == "FAIL"
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_refund_notification(
        self, client: AsyncClient, recorder, wechat_refund_notification, refund_info
    ):
        response = await client.post(
            "/api/notifications/wechat/refund",
            content=wechat_refund_notification(refund_info),
        )

        assert parse_markup(response.content)["return_code"] == "SUCCESS"
        assert recorder.calls[0].refund_amount == 8800
        assert recorder.calls[0].is_success is True
