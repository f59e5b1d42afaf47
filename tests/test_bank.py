"""Tests for course bank loading and encryption."""

import json
import sys
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import build_assessment
from proctorlab.bank import (
    CourseBank,
    SALT_PREFIX,
    decrypt_bank_bytes,
    encrypt_bank_bytes,
    is_password_encrypted,
    load_bank,
)
from proctorlab.errors import BankError


@pytest.fixture
def bank_bytes():
    bank = CourseBank(version="3", assessments=[build_assessment()])
    return json.dumps(bank.to_dict()).encode("utf-8")


class TestPlainBank:
    """Test plain JSON banks."""

    def test_load_json(self, tmp_path, bank_bytes):
        path = tmp_path / "course.json"
        path.write_bytes(bank_bytes)

        bank = load_bank(path)

        assert bank.version == "3"
        assert bank.assessments_by_id()["quiz-1"].random_mcq_count == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(BankError):
            load_bank(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "course.json"
        path.write_text("[", encoding="utf-8")

        with pytest.raises(BankError):
            load_bank(path)

    def test_top_level_list(self, tmp_path):
        path = tmp_path / "course.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(BankError):
            load_bank(path)

    def test_non_utf8_payload(self, tmp_path):
        key = Fernet.generate_key()
        path = tmp_path / "course.enc"
        path.write_bytes(encrypt_bank_bytes(b"\x80\x81{}", key=key))

        with pytest.raises(BankError):
            load_bank(path, key)

    def test_malformed_bank(self, tmp_path):
        path = tmp_path / "course.json"
        path.write_text(json.dumps({"labs": [{"title": "no id"}]}), encoding="utf-8")

        with pytest.raises(BankError):
            load_bank(path)


class TestEncryptedBank:
    """Test key file and password encryption."""

    def test_key_file_bank(self, tmp_path, bank_bytes):
        key = Fernet.generate_key()
        path = tmp_path / "course.enc"
        path.write_bytes(encrypt_bank_bytes(bank_bytes, key=key))

        assert load_bank(path, key.decode("utf-8") + "\n").version == "3"

    def test_password_bank(self, tmp_path, bank_bytes):
        data = encrypt_bank_bytes(bank_bytes, password="correct horse")
        path = tmp_path / "course.enc"
        path.write_bytes(data)

        assert is_password_encrypted(data)
        assert data.startswith(SALT_PREFIX)
        assert load_bank(path, "correct horse").version == "3"

    def test_wrong_password(self, bank_bytes):
        data = encrypt_bank_bytes(bank_bytes, password="correct horse")

        with pytest.raises(BankError):
            decrypt_bank_bytes(data, "battery staple")

    def test_invalid_key(self, bank_bytes):
        data = encrypt_bank_bytes(bank_bytes, key=Fernet.generate_key())

        with pytest.raises(BankError):
            decrypt_bank_bytes(data, "not-a-key")

    def test_encrypted_bank_needs_key(self, tmp_path, bank_bytes):
        path = tmp_path / "course.enc"
        path.write_bytes(encrypt_bank_bytes(bank_bytes, key=Fernet.generate_key()))

        with pytest.raises(BankError):
            load_bank(path)

    def test_exactly_one_secret(self, bank_bytes):
        with pytest.raises(ValueError):
            encrypt_bank_bytes(bank_bytes)
        with pytest.raises(ValueError):
            encrypt_bank_bytes(bank_bytes, key=Fernet.generate_key(), password="pw")
