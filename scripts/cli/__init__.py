"""
Grading operator CLI -- register submissions, apply transitions, read
history and verify the transition log from a terminal.

Entry point: python -m scripts.cli.main
"""

from scripts.cli.main import main

__all__ = ["main"]
