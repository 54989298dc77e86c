"""
Convenience entry point for running bookingslots as a module.

Usage: python -m bookingslots [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
