"""
Support Chat: customer-support chat backend with cache-aside conversation history.
"""

__version__ = "0.1.0"
