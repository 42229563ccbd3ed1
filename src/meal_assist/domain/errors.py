"""Errors raised by the suggestion pipeline."""


class SuggestionError(Exception):
    """Base class for suggestion failures with a user-facing message."""


class InvalidRequestError(SuggestionError):
    """Submitted job is missing required input."""


class MissingGoalError(SuggestionError):
    """User has no active nutrition goal."""


class MealNotFoundError(SuggestionError):
    """Meal does not exist or belongs to another user."""


class ProviderError(SuggestionError):
    """No configured provider produced a response."""


class ParseError(SuggestionError):
    """Provider text held no recoverable suggestion data."""


class EmptyResultError(SuggestionError):
    """Neither the provider nor the fallback produced a usable suggestion."""


class OwnershipError(SuggestionError):
    """Caller does not own the requested job."""


class RequestNotFoundError(SuggestionError):
    """Job id is unknown or has been swept."""
