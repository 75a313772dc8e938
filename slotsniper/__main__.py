"""
Convenience entry point for running slotsniper as a module.

Usage: python -m slotsniper [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
