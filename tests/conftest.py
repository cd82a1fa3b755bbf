"""
Configuración de tests y fixtures compartidos.
"""

import base64
from datetime import datetime
from typing import AsyncGenerator
from urllib.parse import urlencode

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import AsyncClient, ASGITransport

from paysign.adapters import AlipayClient, PayPlat, WechatClient
from paysign.adapters import factory
from paysign.engine import RSAKeyPair, SharedSecret, Signer, aes_ecb, pkcs5_pad, render_markup
from paysign.main import app
from paysign.routes.notifications import get_idempotency
from paysign.utils.idempotency import InMemoryIdempotencyManager


WECHAT_SECRET = "192006250b4c09247ec02edce69f6a2d"

# Reloj fijo para documentos con timestamps
FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)


@pytest.fixture(scope="session")
def rsa_private_pem() -> bytes:
    """Clave privada RSA 2048 generada una vez por sesión."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def rsa_keys(rsa_private_pem: bytes) -> RSAKeyPair:
    return RSAKeyPair.from_pem(rsa_private_pem)


@pytest.fixture
def rsa_signer(rsa_keys: RSAKeyPair) -> Signer:
    """Firmante con la misma clave que usa la pasarela simulada."""
    return Signer(rsa_keys=rsa_keys)


@pytest.fixture
def md5_signer() -> Signer:
    return Signer(secret=SharedSecret(WECHAT_SECRET))


@pytest.fixture
def alipay_client(rsa_keys: RSAKeyPair) -> AlipayClient:
    return AlipayClient(
        app_id="2016000000000001",
        partner_id="2088000000000001",
        keys=rsa_keys,
        notify_url="https://merchant.example.com/notify/alipay",
    )


@pytest.fixture
def wechat_client() -> WechatClient:
    return WechatClient(
        app_id="wx2421b1c4370ec43b",
        secret=WECHAT_SECRET,
        merchant_id="10000100",
        notify_url="https://merchant.example.com/notify/wechat",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def idempotency() -> InMemoryIdempotencyManager:
    return InMemoryIdempotencyManager()


@pytest_asyncio.fixture(scope="function")
async def client(
    alipay_client: AlipayClient,
    wechat_client: WechatClient,
    idempotency: InMemoryIdempotencyManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP para tests de API."""

    async def override_get_idempotency():
        return idempotency

    factory.register(PayPlat.ALIPAY, alipay_client)
    factory.register(PayPlat.WECHAT, wechat_client)
    app.dependency_overrides[get_idempotency] = override_get_idempotency

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    factory.unregister(PayPlat.ALIPAY)
    factory.unregister(PayPlat.WECHAT)


# ============================================
# Constructores de notificaciones firmadas
# ============================================

@pytest.fixture
def alipay_notification_params() -> dict[str, str]:
    """Notificación de pago de Alipay sin firma."""
    return {
        "notify_time": "2024-01-02 03:04:05",
        "notify_type": "trade_status_sync",
        "notify_id": "ac05099524730693a8b330c5ecf72da9786",
        "app_id": "2016000000000001",
        "charset": "utf-8",
        "version": "1.0",
        "trade_no": "2024010222001400000000000001",
        "out_trade_no": "ORDER-0001",
        "buyer_id": "2088102122524333",
        "buyer_logon_id": "159****5620",
        "seller_id": "2088000000000001",
        "trade_status": "TRADE_SUCCESS",
        "total_amount": "88.88",
        "receipt_amount": "88.88",
        "subject": "测试订单",
        "gmt_create": "2024-01-02 03:00:00",
        "gmt_payment": "2024-01-02 03:04:00",
        "passback_params": "merchant-attach",
        "fund_bill_list": '[{"amount":"88.88","fundChannel":"ALIPAYACCOUNT"}]',
    }


@pytest.fixture
def sign_alipay_notification(rsa_signer: Signer):
    """Firma un ParameterSet como lo haría Alipay y lo codifica como form."""

    def _sign(params: dict[str, str], sign_type: str = "RSA2") -> bytes:
        signed = dict(params)
        signed["sign"] = rsa_signer.sign("RSA2", params)
        signed["sign_type"] = sign_type
        return urlencode(signed).encode("utf-8")

    return _sign


@pytest.fixture
def wechat_notification_params() -> dict[str, str]:
    """Notificación de pago de WeChat sin firma."""
    return {
        "return_code": "SUCCESS",
        "appid": "wx2421b1c4370ec43b",
        "mch_id": "10000100",
        "nonce_str": "5d2b6c2a8db53831f7eda20af46e531c",
        "result_code": "SUCCESS",
        "openid": "oUpF8uMEb4qRXf22hE3X68TekukE",
        "is_subscribe": "Y",
        "trade_type": "JSAPI",
        "bank_type": "CMC",
        "total_fee": "1",
        "fee_type": "CNY",
        "transaction_id": "1004400740201409030005092168",
        "out_trade_no": "1409811653",
        "attach": "支付测试",
        "time_end": "20140903131540",
        "cash_fee": "1",
    }


@pytest.fixture
def sign_wechat_notification(md5_signer: Signer):
    """Firma un ParameterSet con MD5 y lo serializa como XML."""

    def _sign(params: dict[str, str]) -> bytes:
        signed = dict(params)
        signed["sign"] = md5_signer.sign("MD5", params)
        return render_markup(signed)

    return _sign


@pytest.fixture
def wechat_refund_notification():
    """Notificación de reembolso con ``req_info`` cifrado."""

    def _build(info: dict[str, str], return_code: str = "SUCCESS") -> bytes:
        inner = render_markup(info, root="root")
        # Solo los hijos viajan cifrados
        inner = inner[len(b"<root>"):-len(b"</root>")]
        key = SharedSecret(WECHAT_SECRET).derived_key
        req_info = base64.b64encode(aes_ecb(key).encrypt(pkcs5_pad(inner))).decode("ascii")
        return render_markup({
            "return_code": return_code,
            "appid": "wx2421b1c4370ec43b",
            "mch_id": "10000100",
            "nonce_str": "TeqClE3i0mvn3DrK",
            "req_info": req_info,
        })

    return _build


@pytest.fixture
def refund_info() -> dict[str, str]:
    return {
        "transaction_id": "4200000001201901010000000001",
        "out_trade_no": "ORDER-0001",
        "refund_id": "50000000012019010100000000001",
        "out_refund_no": "REFUND-0001",
        "total_fee": "8888",
        "refund_fee": "8888",
        "settlement_refund_fee": "8800",
        "refund_status": "SUCCESS",
        "success_time": "20240102030405",
        "refund_recv_accout": "支付用户零钱",
        "refund_account": "REFUND_SOURCE_RECHARGE_FUNDS",
        "refund_request_source": "API",
    }
