"""
Entry point for running roomwatch as a module.

Usage:
    python -m roomwatch poll --room <room-id> --handle <handle> --target <tmux-session>
    python -m roomwatch status --handle <handle>
    python -m roomwatch probe --target <tmux-session>
"""

from .cli import main

if __name__ == "__main__":
    main()
