"""
Convenience entry point for running walkscheduler directly.

Usage: python -m walkscheduler [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
