#!/usr/bin/env python3
"""
PocketBook Highlights - Command Line Entry Point
"""

import sys
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from pocketbook_highlights.cli import main

if __name__ == "__main__":
    sys.exit(main())
