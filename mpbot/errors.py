# mpbot/errors.py


class MpBotError(Exception):
    """Base class for errors raised by the engines and stores."""


class ValidationError(MpBotError):
    """Malformed input: wrong type or a missing required field."""


class NotFoundError(MpBotError):
    """A key-scoped mutation was asked for a key that does not exist."""


class StorageError(MpBotError):
    """The underlying store failed; no partial change is visible."""
