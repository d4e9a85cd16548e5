"""Tests for milou_ssl.acquisition.importer."""

from __future__ import annotations

import pytest

from conftest import generate_key, make_pair, write_pair
from milou_ssl.acquisition.base import StrategyContext
from milou_ssl.acquisition.importer import ImportStrategy, infer_key_path
from milou_ssl.core.errors import ValidationError
from milou_ssl.core.types import IssuerKind
from milou_ssl.models.request import AcquisitionRequest
from milou_ssl.validation import Validator


@pytest.fixture()
def strategy(settings, crypto) -> ImportStrategy:
    return ImportStrategy(StrategyContext(settings=settings, crypto=crypto, validator=Validator(crypto)))


class TestInferKeyPath:
    def test_same_basename(self, tmp_path):
        cert, key = write_pair(tmp_path, b"c", b"k", name="site")
        assert infer_key_path(cert, "milou") == key

    def test_configured_name(self, tmp_path):
        cert = tmp_path / "fullchain.pem"
        cert.write_bytes(b"c")
        (tmp_path / "milou.key").write_bytes(b"k")
        assert infer_key_path(cert, "milou") == tmp_path / "milou.key"

    def test_other_pem_names_ignored(self, tmp_path):
        cert = tmp_path / "fullchain.pem"
        cert.write_bytes(b"c")
        (tmp_path / "privkey.pem").write_bytes(b"k")
        assert infer_key_path(cert, "milou") is None

    def test_nothing_found(self, tmp_path):
        cert = tmp_path / "cert.pem"
        cert.write_bytes(b"c")
        assert infer_key_path(cert, "milou") is None


class TestImport:
    def test_imports_ca_issued_pair(self, strategy, tmp_path):
        cert_path, key_path = write_pair(
            tmp_path,
            *make_pair("example.com", issuer_cn="Corp CA", issuer_org="Corp"),
            name="corp",
        )
        material = strategy.acquire(
            AcquisitionRequest(domain="example.com", import_cert=cert_path, import_key=key_path),
        )
        assert material.issuer_kind is IssuerKind.IMPORTED
        assert material.certificate_pem == cert_path.read_bytes()

    def test_key_inferred(self, strategy, tmp_path):
        cert_path, _ = write_pair(tmp_path, *make_pair("example.com"), name="site")
        material = strategy.acquire(AcquisitionRequest(domain="example.com", import_cert=cert_path))
        assert material.domain == "example.com"

    def test_key_inferred_from_configured_name(self, strategy, tmp_path):
        cert_pem, key_pem = make_pair("example.com")
        cert_path = tmp_path / "fullchain.pem"
        cert_path.write_bytes(cert_pem)
        (tmp_path / "milou.key").write_bytes(key_pem)
        material = strategy.acquire(AcquisitionRequest(domain="example.com", import_cert=cert_path))
        assert material.private_key_pem == key_pem

    def test_missing_certificate_argument(self, strategy):
        with pytest.raises(ValidationError, match="requires a certificate"):
            strategy.acquire(AcquisitionRequest(domain="example.com"))

    def test_unreadable_certificate(self, strategy, tmp_path):
        key = tmp_path / "site.key"
        key.write_bytes(b"k")
        with pytest.raises(ValidationError, match="cannot read certificate"):
            strategy.acquire(
                AcquisitionRequest(domain="example.com", import_cert=tmp_path / "site.crt", import_key=key),
            )

    def test_no_key_found(self, strategy, tmp_path):
        cert = tmp_path / "cert.pem"
        cert.write_bytes(make_pair()[0])
        with pytest.raises(ValidationError, match="no private key"):
            strategy.acquire(AcquisitionRequest(domain="example.com", import_cert=cert))

    def test_mismatched_pair_rejected(self, strategy, tmp_path):
        cert, _ = make_pair("example.com")
        other_key = make_pair("example.com", key=generate_key(fresh=True))[1]
        cert_path, key_path = write_pair(tmp_path, cert, other_key)
        with pytest.raises(ValidationError, match="does not match"):
            strategy.acquire(
                AcquisitionRequest(domain="example.com", import_cert=cert_path, import_key=key_path),
            )
