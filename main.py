#!/usr/bin/env python3
"""
tagcrawl - add location tags to everything a page or location links to

Usage:
    python main.py --help                          # Show help
    python main.py scan ENTRY_ID -o scan.json      # Scan linked content
    python main.py apply scan.json                 # Apply missing tags
    python main.py tags "Location: St. Louis"      # Resolve tag names
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Initialize structured logging from environment
from utils.logging_config import init_from_environment
init_from_environment()

# Import and run CLI
from cli.main import main

if __name__ == '__main__':
    main()
