#!/usr/bin/env python3
"""
verify_bank.py - Validate course bank schema and decrypt for inspection.

Usage with key file:
    python tools/verify_bank.py --bank banks/course.enc --key-file COURSE.key

Usage with password:
    python tools/verify_bank.py --bank banks/course.enc --password

Usage with plaintext:
    python tools/verify_bank.py --bank course.json
"""

import argparse
import getpass
import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from proctorlab.bank import decrypt_bank_bytes, is_password_encrypted
from proctorlab.errors import BankError
from proctorlab.models import Assessment, LabExperiment


def _check_test_cases(label: str, test_cases, errors: List[str], warnings: List[str]):
    if not isinstance(test_cases, list):
        errors.append(f"{label}: testCases must be a list")
        return
    if not test_cases:
        warnings.append(f"{label}: no test cases defined; submissions will be refused")
        return
    if all(tc.get('isHidden') for tc in test_cases):
        warnings.append(f"{label}: every test case is hidden")
    for idx, tc in enumerate(test_cases):
        if 'id' not in tc or 'expectedOutput' not in tc:
            errors.append(f"{label} test {idx + 1}: missing id/expectedOutput")


def validate_bank_data(bank_data: dict, verbose: bool = False) -> Tuple[List[str], List[str]]:
    """
    Validate a decoded course bank.

    Returns:
        Tuple of (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(bank_data, dict):
        return ["Bank must be a JSON object"], warnings

    labs = bank_data.get('labs') or []
    assessments = bank_data.get('assessments') or []
    if not labs and not assessments:
        warnings.append("Bank contains no labs and no assessments")

    print(f"\n[LABS] ({len(labs)})")
    for idx, lab_data in enumerate(labs):
        label = f"lab[{idx + 1}] ({lab_data.get('id', '?')})"
        missing = [f for f in ('id', 'title', 'starterCode', 'testCases') if f not in lab_data]
        if missing:
            errors.append(f"{label}: Missing fields: {', '.join(missing)}")
            continue
        _check_test_cases(label, lab_data['testCases'], errors, warnings)
        try:
            lab = LabExperiment.from_dict(lab_data)
        except (KeyError, TypeError, ValueError) as e:
            errors.append(f"{label}: {e}")
            continue
        if verbose:
            print(f"  [OK] {lab.id}: {lab.title} ({len(lab.test_cases)} tests)")

    print(f"\n[ASSESSMENTS] ({len(assessments)})")
    for idx, assessment_data in enumerate(assessments):
        label = f"assessment[{idx + 1}] ({assessment_data.get('id', '?')})"
        missing = [f for f in ('id', 'title', 'durationMinutes', 'questionBank') if f not in assessment_data]
        if missing:
            errors.append(f"{label}: Missing fields: {', '.join(missing)}")
            continue

        try:
            assessment = Assessment.from_dict(assessment_data)
        except (KeyError, TypeError, ValueError) as e:
            errors.append(f"{label}: {e}")
            continue

        is_valid, error = assessment.validate()
        if not is_valid:
            errors.append(f"{label}: {error}")

        for question_data in assessment_data['questionBank']:
            if question_data.get('type') == 'coding':
                _check_test_cases(f"{label} question {question_data.get('id', '?')}",
                                  question_data.get('testCases') or [], errors, warnings)

        if verbose:
            print(f"  [OK] {assessment.id}: {assessment.title} "
                  f"({assessment.random_mcq_count} MCQ + {assessment.random_coding_count} coding "
                  f"from {len(assessment.question_bank)}, {assessment.duration_minutes} min)")

    return errors, warnings


def read_bank(bank_file: Path, key_file: Optional[str] = None, use_password: bool = False) -> bytes:
    """Return the plaintext of a bank, decrypting it when needed."""
    data = Path(bank_file).read_bytes()
    if Path(bank_file).suffix.lower() == '.json':
        return data

    if is_password_encrypted(data):
        if not use_password:
            raise BankError("This bank was encrypted with a password. Use --password flag.")
        key_input = getpass.getpass("Enter decryption password: ")
        print("[OK] Using password-based decryption")
    else:
        if not key_file:
            raise BankError("This bank was encrypted with a key file. Use --key-file.")
        key_input = Path(key_file).read_bytes()
        print("[OK] Using key file decryption")

    plaintext = decrypt_bank_bytes(data, key_input)
    print("[OK] Bank decrypted successfully")
    return plaintext


def verify_bank(bank_file: Path, key_file: Optional[str] = None, use_password: bool = False, verbose: bool = False) -> bool:
    """
    Verify a course bank (encrypted or plaintext).
    Returns True if valid, False otherwise.
    """
    try:
        plaintext = read_bank(bank_file, key_file, use_password)
    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        return False
    except BankError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return False

    try:
        bank_data = json.loads(plaintext)
    except json.JSONDecodeError as e:
        print(f"[ERROR] Invalid JSON: {e}", file=sys.stderr)
        return False

    print(f"\n[SCHEMA] Course Bank Validation")
    print(f"{'='*60}")
    print(f"[OK] Version: {bank_data.get('version', 'unknown') if isinstance(bank_data, dict) else '?'}")

    errors, warnings = validate_bank_data(bank_data, verbose)

    print(f"\n{'='*60}")
    if warnings:
        print(f"\n[WARNING] ({len(warnings)}):")
        for warn in warnings[:10]:
            print(f"  - {warn}")
        if len(warnings) > 10:
            print(f"  ... and {len(warnings) - 10} more")

    if errors:
        print(f"\n[ERROR] ({len(errors)}):")
        for err in errors[:20]:
            print(f"  - {err}")
        if len(errors) > 20:
            print(f"  ... and {len(errors) - 20} more")
        return False

    print(f"\n[OK] Bank validation PASSED")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Validate course bank schema and content.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Verify encrypted bank
  python tools/verify_bank.py --bank banks/course.enc --key-file COURSE.key

  # Verify plaintext bank (during authoring)
  python tools/verify_bank.py --bank course.json --verbose
        """
    )
    parser.add_argument("--bank", required=True, help="Path to bank file (.enc or .json)")
    parser.add_argument("--key-file", help="Encryption key file (for key-file encrypted banks)")
    parser.add_argument("--password", action="store_true", help="Use password to decrypt (for password-encrypted banks)")
    parser.add_argument("--verbose", action="store_true", help="Show detailed lab and assessment information")
    args = parser.parse_args()

    success = verify_bank(Path(args.bank), args.key_file, args.password, args.verbose)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
