#!/usr/bin/env python3
"""
build_bank.py - Encrypt a plaintext JSON course bank.

Usage with key file:
    python tools/build_bank.py --in course.json --out banks/course.enc --key-file COURSE.key

Usage with password:
    python tools/build_bank.py --in course.json --out banks/course.enc --password
"""

import argparse
import getpass
import hashlib
import json
import sys
from pathlib import Path
from typing import Optional

from proctorlab.bank import CourseBank, encrypt_bank_bytes

MIN_PASSWORD_LENGTH = 8


def summarize_bank(bank: CourseBank) -> str:
    lines = [f"  Version: {bank.version}", f"  Labs: {len(bank.labs)}"]
    for assessment in bank.assessments:
        lines.append(
            f"  Assessment {assessment.id}: {len(assessment.mcq_questions)} MCQ, "
            f"{len(assessment.coding_questions)} coding in bank, draws "
            f"{assessment.random_mcq_count}+{assessment.random_coding_count}"
        )
    return "\n".join(lines)


def build_bank(in_file: Path, out_file: Path, key: Optional[bytes] = None, password: Optional[str] = None) -> str:
    """
    Validate and encrypt a course bank.

    Returns:
        SHA256 checksum of the written file

    Raises:
        ValueError: If the input is not a valid course bank
    """
    plaintext = Path(in_file).read_bytes()

    try:
        bank = CourseBank.from_dict(json.loads(plaintext))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in input file: {e}")
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed course bank: {e}")

    for assessment in bank.assessments:
        is_valid, error = assessment.validate()
        if not is_valid:
            raise ValueError(f"Assessment {assessment.id}: {error}")

    print("[OK] Input bank validated")
    print(summarize_bank(bank))

    final_data = encrypt_bank_bytes(plaintext, key=key, password=password)

    out_file = Path(out_file)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_bytes(final_data)
    return hashlib.sha256(final_data).hexdigest()


def _prompt_password() -> str:
    password = getpass.getpass("Enter encryption password: ")
    password_confirm = getpass.getpass("Confirm password: ")

    if password != password_confirm:
        print("[ERROR] Passwords do not match", file=sys.stderr)
        sys.exit(1)

    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"[ERROR] Password must be at least {MIN_PASSWORD_LENGTH} characters", file=sys.stderr)
        sys.exit(1)
    return password


def main():
    parser = argparse.ArgumentParser(
        description="Encrypt a plaintext JSON course bank.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/build_bank.py --in course.json --out banks/course.enc --key-file COURSE.key
  python tools/build_bank.py --in course.json --out banks/course.enc --password

Notes:
  - Every assessment is validated before encryption
  - Output directory will be created if it doesn't exist
        """
    )
    parser.add_argument("--in", dest="in_file", required=True, help="Input plaintext JSON file")
    parser.add_argument("--out", required=True, help="Output encrypted bank file (.enc)")
    method = parser.add_mutually_exclusive_group(required=True)
    method.add_argument("--key-file", help="File containing the encryption key")
    method.add_argument("--password", action="store_true", help="Use password-based encryption")
    args = parser.parse_args()

    key = None
    password = None
    try:
        if args.password:
            password = _prompt_password()
        else:
            key = Path(args.key_file).read_bytes().strip()

        checksum = build_bank(Path(args.in_file), Path(args.out), key=key, password=password)
    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)

    print("\n[OK] Success: Bank encrypted")
    print(f"  Output: {args.out}")
    print(f"  Method: {'Password-based' if password else 'Key file'}")
    print(f"  SHA256: {checksum}")


if __name__ == "__main__":
    main()
