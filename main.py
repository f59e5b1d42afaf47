#!/usr/bin/env python3
"""
Entry point wrapper for PyInstaller packaging.

This wrapper avoids relative import issues by using absolute imports.
When PyInstaller creates the executable, this will be the main entry point.
"""

import sys
import os

if getattr(sys, 'frozen', False):
    bundle_dir = sys._MEIPASS
else:
    bundle_dir = os.path.dirname(os.path.abspath(__file__))

# Ensure the proctorlab package can be imported
sys.path.insert(0, bundle_dir)

if __name__ == "__main__":
    from proctorlab.cli import main
    sys.exit(main())
