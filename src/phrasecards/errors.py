"""Error taxonomy and the result pair returned by collaborator calls."""
from dataclasses import dataclass
from typing import Optional


class PhrasecardsError(Exception):
    """Base class for all errors raised by the package."""


class AuthError(PhrasecardsError):
    """Invalid credentials, duplicate account or identity backend failure."""


class StoreError(PhrasecardsError):
    """Read or write failure against the document store."""


class ValidationError(PhrasecardsError):
    """Empty credential fields or a violated caller precondition."""


@dataclass
class ErrorResult:
    """Outcome of a collaborator call that produces no value."""
    error: Optional[PhrasecardsError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
