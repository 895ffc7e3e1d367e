"""Exception hierarchy for GRE Insight."""


class GreInsightError(Exception):
    """Base class for every application error."""


# Lookup collaborator

class LookupFailure(GreInsightError):
    """The AI lookup could not produce a usable word profile."""

    def __init__(self, term: str, reason: str = "") -> None:
        self.term = term
        self.reason = reason
        msg = f"Lookup failed for '{term}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class WordNotFoundError(LookupFailure):
    """The backing service returned nothing for the term."""


class ProfileParseError(LookupFailure):
    """The backing service returned malformed data."""


# Import / export

class ImportFormatError(GreInsightError):
    """A snapshot document failed validation."""

    def __init__(self, reason: str, field: str | None = None) -> None:
        self.reason = reason
        self.field = field
        msg = f"Invalid snapshot field '{field}': {reason}" if field else f"Invalid snapshot document: {reason}"
        super().__init__(msg)


# Accounts

class AuthError(GreInsightError):
    """Base class for mock cloud account errors."""


class InvalidCredentialsError(AuthError):
    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class UserExistsError(AuthError):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User already exists")


# Sync

class SyncError(GreInsightError):
    """Remote snapshot load or save failed."""
