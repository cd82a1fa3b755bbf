"""
Tests para el constructor de requests y el verificador de notificaciones.
"""

import base64
import json
from datetime import datetime
from urllib.parse import parse_qsl

import pytest

from paysign.engine.builder import RequestBuilder, encode_biz_content, encode_form
from paysign.engine.ciphers import aes_ecb, pkcs5_pad
from paysign.engine.verifier import NotificationVerifier, parse_form, parse_markup, render_markup
from paysign.schemas.alipay import AppPayRequest, ExtendParams
from paysign.utils.exceptions import (
    ChunkingError,
    NotificationParseError,
    SignatureVerificationError,
)


class TestRequestBuilder:
    """Tests para el sobre firmado."""

    def test_envelope_fields(self, rsa_signer):
        builder = RequestBuilder("APP1", rsa_signer, clock=lambda: datetime(2024, 1, 2, 3, 4, 5))

        params = builder.build("alipay.trade.app.pay", {"out_trade_no": "T1"})

        assert params["app_id"] == "APP1"
        assert params["method"] == "alipay.trade.app.pay"
        assert params["format"] == "JSON"
        assert params["charset"] == "utf-8"
        assert params["sign_type"] == "RSA2"
        assert params["timestamp"] == "2024-01-02 03:04:05"
        assert params["version"] == "1.0"
        assert params["biz_content"] == '{"out_trade_no":"T1"}'

    def test_signature_covers_everything_but_sign(self, rsa_signer):
        builder = RequestBuilder("APP1", rsa_signer)

        params = builder.build("m", {"a": 1}, extra={"notify_url": "https://n.example.com"})
        signature = params.pop("sign")

        rsa_signer.verify("RSA2", params, signature)

    def test_empty_extras_skipped(self, rsa_signer):
        builder = RequestBuilder("APP1", rsa_signer)

        params = builder.build("m", None, extra={"return_url": ""})

        assert "return_url" not in params
        assert params["biz_content"] == "null"

    def test_biz_content_aliases_and_none(self):
        request = AppPayRequest(
            out_trade_no="T1",
            timeout="1d",
            extend_params=ExtendParams(need_real_name="T"),
        )

        content = json.loads(encode_biz_content(request))

        assert content == {
            "out_trade_no": "T1",
            "timeout_express": "1d",
            "extend_params": {"needBuyerRealnamed": "T"},
        }

    def test_encode_form_sorted(self):
        assert encode_form({"b": "2", "a": "x y"}) == "a=x+y&b=2"


class TestParsers:
    """Tests para los parsers de cuerpo."""

    def test_parse_form_first_value_wins(self):
        assert parse_form(b"a=1&b=2&a=3") == {"a": "1", "b": "2"}

    def test_parse_form_trailing_separator(self):
        assert parse_form(b"a=1&b=%E6%B5%8B&\n") == {"a": "1", "b": "测"}

    def test_parse_form_blank_values_kept(self):
        assert parse_form(b"a=&b=2") == {"a": "", "b": "2"}

    def test_parse_form_empty_body(self):
        assert parse_form(b"") == {}

    def test_parse_form_invalid_utf8(self):
        with pytest.raises(NotificationParseError):
            parse_form(b"a=\xff\xfe")

    def test_parse_markup_cdata(self):
        raw = b"<xml><return_code><![CDATA[SUCCESS]]></return_code><total_fee>1</total_fee></xml>"

        assert parse_markup(raw) == {"return_code": "SUCCESS", "total_fee": "1"}

    def test_parse_markup_malformed(self):
        with pytest.raises(NotificationParseError):
            parse_markup(b"<xml><a>1</xml>")

    def test_parse_markup_does_not_resolve_external_entities(self):
        raw = (
            b'<?xml version="1.0"?>'
            b'<!DOCTYPE xml [<!ENTITY ext SYSTEM "file:///etc/passwd">]>'
            b"<xml><a>&ext;</a></xml>"
        )

        params = parse_markup(raw)

        assert "root:" not in params.get("a", "")

    def test_render_markup(self):
        raw = render_markup({"return_code": "SUCCESS", "return_msg": "OK"})

        assert raw == b"<xml><return_code>SUCCESS</return_code><return_msg>OK</return_msg></xml>"


class TestNotificationVerifier:
    """Tests para la verificación de notificaciones."""

    def test_verify_returns_copy_without_sign_fields(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)
        params = {"foo": "bar", "sign_type": "MD5"}
        params["sign"] = md5_signer.sign("MD5", {"foo": "bar"})

        remaining = verifier.verify(params)

        assert remaining == {"foo": "bar"}
        assert "sign" in params

    def test_missing_signature(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)

        with pytest.raises(SignatureVerificationError, match="missing signature"):
            verifier.verify({"foo": "bar", "sign_type": "MD5"})

    def test_missing_scheme(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)

        with pytest.raises(SignatureVerificationError, match="missing signing scheme"):
            verifier.verify({"foo": "bar", "sign": "X"})

    def test_default_scheme(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)
        signature = md5_signer.sign("MD5", {"foo": "bar"})

        assert verifier.verify({"foo": "bar", "sign": signature}, default_scheme="MD5") == {"foo": "bar"}

    def test_sign_type_excluded_from_canonical(self, rsa_signer):
        """``sign_type`` no participa en la cadena verificada."""
        verifier = NotificationVerifier(rsa_signer)
        signature = rsa_signer.sign("RSA2", {"a": "1"})

        verifier.verify({"a": "1", "sign": signature, "sign_type": "RSA2"})

    def test_decrypt_embedded(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)
        key = b"0" * 32
        ciphertext = aes_ecb(key).encrypt(pkcs5_pad(b"<out_refund_no>R1</out_refund_no>"))

        params = verifier.decrypt_embedded(base64.b64encode(ciphertext).decode(), key)

        assert params == {"out_refund_no": "R1"}

    def test_decrypt_embedded_bad_base64(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)

        with pytest.raises(NotificationParseError):
            verifier.decrypt_embedded("***", b"0" * 32)

    def test_decrypt_embedded_misaligned(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)

        with pytest.raises(ChunkingError):
            verifier.decrypt_embedded(base64.b64encode(b"0123456789").decode(), b"0" * 32)

    def test_verify_form_roundtrip(self, md5_signer):
        verifier = NotificationVerifier(md5_signer)
        params = {"foo": "bar"}
        body = encode_form({**params, "sign": md5_signer.sign("MD5", params), "sign_type": "MD5"})

        assert dict(parse_qsl(body))["foo"] == "bar"
        assert verifier.verify(parse_form(body.encode())) == params
