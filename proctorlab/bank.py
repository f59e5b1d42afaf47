"""
Course bank loading.

A course bank is a JSON document holding the published labs and assessments:

    {"version": "...", "labs": [...], "assessments": [...]}

It is distributed either as plain JSON (authoring) or encrypted with Fernet,
using a key file or a password (password banks start with ``SALT`` followed by
a 16-byte salt).
"""

import base64
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import BankError
from .models import Assessment, LabExperiment

SALT_PREFIX = b'SALT'
SALT_LENGTH = 16


@dataclass
class CourseBank:
    """All labs and assessments published for a course."""
    version: str
    labs: List[LabExperiment] = field(default_factory=list)
    assessments: List[Assessment] = field(default_factory=list)

    @staticmethod
    def from_dict(data: dict) -> 'CourseBank':
        """Create a CourseBank object from a dictionary."""
        return CourseBank(
            version=str(data.get('version', "1")),
            labs=[LabExperiment.from_dict(lab) for lab in data.get('labs') or []],
            assessments=[Assessment.from_dict(a) for a in data.get('assessments') or []]
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "labs": [lab.to_dict() for lab in self.labs],
            "assessments": [a.to_dict() for a in self.assessments],
        }

    def labs_by_id(self) -> Dict[str, LabExperiment]:
        return {lab.id: lab for lab in self.labs}

    def assessments_by_id(self) -> Dict[str, Assessment]:
        return {a.id: a for a in self.assessments}


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,  # OWASP recommendation for 2024
    )
    key_material = kdf.derive(password.encode('utf-8'))
    return base64.urlsafe_b64encode(key_material)


def is_password_encrypted(data: bytes) -> bool:
    return data.startswith(SALT_PREFIX)


def encrypt_bank_bytes(plaintext: bytes, key: Optional[bytes] = None, password: Optional[str] = None) -> bytes:
    """
    Encrypt a plaintext bank.

    Exactly one of `key` (Fernet key) or `password` must be given. Password
    encryption prepends the salt to the token.
    """
    if (key is None) == (password is None):
        raise ValueError("Specify exactly one of key or password")

    if password is not None:
        salt = os.urandom(SALT_LENGTH)
        token = Fernet(derive_key_from_password(password, salt)).encrypt(plaintext)
        return SALT_PREFIX + salt + token

    return Fernet(key).encrypt(plaintext)


def decrypt_bank_bytes(data: bytes, key_input: Union[str, bytes]) -> bytes:
    """
    Decrypt an encrypted bank.

    Args:
        data: Raw file contents
        key_input: Password for SALT-prefixed banks, Fernet key otherwise

    Raises:
        BankError: If the key or password is wrong or the file is corrupted
    """
    try:
        if is_password_encrypted(data):
            salt = data[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_LENGTH]
            token = data[len(SALT_PREFIX) + SALT_LENGTH:]
            password = key_input.decode('utf-8') if isinstance(key_input, bytes) else key_input
            key = derive_key_from_password(password, salt)
        else:
            token = data
            key = key_input.encode('utf-8') if isinstance(key_input, str) else key_input
            key = key.strip()

        return Fernet(key).decrypt(token)
    except InvalidToken:
        raise BankError("Decryption failed: invalid key/password or corrupted file")
    except ValueError as e:
        raise BankError(f"Invalid encryption key: {e}")


def load_bank(bank_path: Path, key_input: Optional[Union[str, bytes]] = None) -> CourseBank:
    """
    Load a course bank from disk.

    Plain JSON files (.json) are read directly; anything else is treated as
    encrypted and requires `key_input`.

    Raises:
        BankError: If the file is missing, cannot be decrypted or is malformed
    """
    bank_path = Path(bank_path)
    if not bank_path.exists():
        raise BankError(f"Bank file not found: {bank_path}")

    try:
        raw = bank_path.read_bytes()
    except OSError as e:
        raise BankError(f"Error reading bank file: {e}")

    if bank_path.suffix.lower() == '.json':
        plaintext = raw
    else:
        if key_input is None:
            raise BankError("Encrypted bank requires a key file or password")
        plaintext = decrypt_bank_bytes(raw, key_input)

    try:
        data = json.loads(plaintext)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BankError(f"Invalid JSON in bank: {e}")
    if not isinstance(data, dict):
        raise BankError("Bank must be a JSON object")

    try:
        return CourseBank.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise BankError(f"Malformed bank: {e}")
