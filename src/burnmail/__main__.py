#!/usr/bin/env python3
"""
Allow running burnmail as a module: python -m burnmail

This enables the following usage:
    python -m burnmail [OPTIONS] COMMAND

Which is equivalent to:
    burnmail [OPTIONS] COMMAND
"""

from burnmail.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
