"""
Tests for sensitive field registry and ciphertext detection
"""
import base64

import pytest

from steeltrack.core.config import settings
from steeltrack.core.crypto import Encrypted, Plain
from steeltrack.services.field_classifier import (
    EntityKind, ValueKind, classify, looks_encrypted, sensitive_fields
)

LEGACY_LOOKING = base64.b64encode(b"x" * 60).decode("ascii")


class TestSensitiveFields:

    def test_inventory_fields(self):
        fields = sensitive_fields(EntityKind.INVENTORY)

        assert fields["weight"] is ValueKind.NUMBER
        assert fields["serial_number"] is ValueKind.TEXT
        assert "quality" not in fields
        assert "entry_date" not in fields

    def test_sales_fields_by_name(self):
        fields = sensitive_fields("sales")

        assert fields["quantity_sold"] is ValueKind.NUMBER
        assert fields["dimensions_snapshot"] is ValueKind.JSON_LIST
        assert "form" not in fields

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            sensitive_fields("customers")


class TestClassify:

    def test_tagged_value_is_encrypted(self):
        assert classify("enc:v1:AAAA") == Encrypted("enc:v1:AAAA")

    def test_plaintext(self):
        assert classify("Coil") == Plain("Coil")
        assert classify("500") == Plain("500")
        assert classify(None) == Plain(None)
        assert classify(42) == Plain(42)

    def test_short_base64_is_plaintext(self):
        assert not looks_encrypted("QUJDRA==")

    def test_legacy_heuristic(self, monkeypatch):
        assert looks_encrypted(LEGACY_LOOKING)

        monkeypatch.setattr(settings, "LEGACY_CIPHERTEXT_DETECTION", False)
        assert not looks_encrypted(LEGACY_LOOKING)
        assert looks_encrypted("enc:v1:AAAA")

    def test_non_base64_long_text_is_plaintext(self):
        assert not looks_encrypted("Hot dipped galvanized, customer spec 7 with extra notes")
