"""
Input validation for chat requests.

Validation runs before any side effect: a request that fails here never
touches the message log, the cache or the completion service.
"""

import re

# Session ids end up in cache keys and URLs
SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}\Z")


class ValidationError(Exception):
    """Client input was missing or malformed."""

    pass


class InputSanitizer:
    """Validation rules for user messages and session identifiers."""

    def __init__(self, max_message_length: int = 1000) -> None:
        self.max_message_length = max_message_length

    def validate_message(self, message: object, max_length: int | None = None) -> str:
        """
        Validate a user chat message.

        Length is counted in characters on the text exactly as received; the
        text is not trimmed or rewritten.

        Args:
            message: Raw message value from the request
            max_length: Override for the configured maximum length

        Returns:
            The message, unchanged

        Raises:
            ValidationError: If the message is missing, blank or too long
        """
        limit = max_length if max_length is not None else self.max_message_length

        if message is None or not isinstance(message, str) or not message.strip():
            raise ValidationError("Message is required")

        if len(message) > limit:
            raise ValidationError(f"Message is too long (max {limit} chars)")

        return message

    def validate_session_id(self, session_id: object) -> str | None:
        """
        Normalize an optional client-supplied session identifier.

        Returns:
            The identifier, or None when the client did not supply one

        Raises:
            ValidationError: If the identifier is not a usable key
        """
        if session_id is None or session_id == "":
            return None

        if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
            raise ValidationError("Invalid session id")

        return session_id


# Global sanitizer instance
_sanitizer = InputSanitizer()


def validate_message(message: object, max_length: int | None = None) -> str:
    """Global function to validate chat messages."""
    return _sanitizer.validate_message(message, max_length)


def validate_session_id(session_id: object) -> str | None:
    """Global function to validate session identifiers."""
    return _sanitizer.validate_session_id(session_id)
