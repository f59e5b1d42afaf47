#!/usr/bin/env python3
"""
keygen.py - Generate a Fernet key for encrypting course banks.

Usage:
    python tools/keygen.py --out COURSE.key

Note: build_bank.py --password encrypts with a password instead of a key file.
"""

import argparse
import sys
from pathlib import Path

from cryptography.fernet import Fernet


def generate_key(output_file: Path) -> bytes:
    """Generate a new Fernet key and write it to `output_file`."""
    key = Fernet.generate_key()
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_bytes(key)
    return key


def main():
    parser = argparse.ArgumentParser(
        description="Generate a Fernet key for course banks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/keygen.py --out COURSE.key
  python tools/build_bank.py --in course.json --out course.enc --key-file COURSE.key

Security Notes:
  - Hand the key to students only when the course opens
  - Never commit keys next to the encrypted bank
        """
    )
    parser.add_argument("--out", required=True, help="Output file path for the key (e.g., COURSE.key)")
    args = parser.parse_args()

    try:
        key = generate_key(Path(args.out))
    except OSError as e:
        print(f"[ERROR] Could not write key: {e}", file=sys.stderr)
        sys.exit(1)

    print("[OK] Encryption key generated")
    print(f"  Output: {args.out}")
    print(f"  Key (base64): {key.decode('utf-8')}")
    print("\n[!] SECURITY: Store this key securely.")


if __name__ == "__main__":
    main()
