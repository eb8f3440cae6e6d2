"""
Entry point for running Support Chat as a module.

This allows users to run: python -m support_chat
"""

from support_chat.cli.main import app

if __name__ == "__main__":
    app()
