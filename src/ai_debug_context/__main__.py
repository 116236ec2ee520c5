#!/usr/bin/env python3

"""
Main entry point for the ai_debug_context package.

This module allows the package to be executed directly with:
python -m ai_debug_context
"""

import sys

from ai_debug_context.cli.analyzer_cli import main

if __name__ == "__main__":
    sys.exit(main())
