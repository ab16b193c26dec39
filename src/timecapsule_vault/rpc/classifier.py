"""Typed classification of endpoint errors into retryable and fatal."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from timecapsule_vault.rpc.errors import JsonRpcError


class ErrorClass(StrEnum):
    """Whether another endpoint could plausibly give a different answer."""

    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class ProviderQuirk:
    """
    One row of the classification table.

    A quirk matches a ``JsonRpcError`` when every criterion it sets matches:
    ``code`` compares the JSON-RPC error code, ``fragment`` is a
    case-insensitive substring of the error message.

    Attributes
    ----------
    error_class : ErrorClass
        Tag assigned on match
    code : int | None
        JSON-RPC error code to match
    fragment : str | None
        Message substring to match
    note : str
        What the quirk represents

    """

    error_class: ErrorClass
    code: int | None = None
    fragment: str | None = None
    note: str = ""

    def matches(self, error: JsonRpcError) -> bool:
        if self.code is None and self.fragment is None:
            return False
        if self.code is not None and error.code != self.code:
            return False
        if self.fragment is not None and self.fragment.lower() not in error.message.lower():
            return False
        return True


# First match wins; application-level errors are listed before the
# generic server-side codes they are usually wrapped in.
DEFAULT_QUIRKS: tuple[ProviderQuirk, ...] = (
    ProviderQuirk(ErrorClass.FATAL, code=3, note="execution reverted (geth)"),
    ProviderQuirk(ErrorClass.FATAL, fragment="execution reverted", note="revert reported under a generic code"),
    ProviderQuirk(ErrorClass.FATAL, fragment="insufficient funds"),
    ProviderQuirk(ErrorClass.FATAL, fragment="nonce too low"),
    ProviderQuirk(ErrorClass.FATAL, fragment="already known", note="transaction already in the mempool"),
    ProviderQuirk(ErrorClass.FATAL, fragment="replacement transaction underpriced"),
    ProviderQuirk(ErrorClass.FATAL, fragment="intrinsic gas too low"),
    ProviderQuirk(ErrorClass.FATAL, code=-32602, note="invalid params"),
    ProviderQuirk(ErrorClass.RETRYABLE, code=-32601, note="method not found"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="method not found"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="unavailable on our public api"),
    ProviderQuirk(ErrorClass.RETRYABLE, code=-32005, note="limit exceeded (Infura-style)"),
    ProviderQuirk(ErrorClass.RETRYABLE, code=429, note="rate limit reported as JSON-RPC code"),
    ProviderQuirk(ErrorClass.RETRYABLE, code=31, note="provider tier limit code"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="too many requests"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="rate limit"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="batch of more than"),
    ProviderQuirk(ErrorClass.RETRYABLE, fragment="free tier"),
)


class ErrorClassifier:
    """
    Maps endpoint errors to an ErrorClass using a table of provider quirks.

    Transport-level failures (timeouts, connection errors, HTTP status errors,
    malformed bodies, chain id mismatches) are always retryable. JSON-RPC errors
    are looked up in the quirk table; unmatched ones fall back to
    ``default_class``.

    Parameters
    ----------
    quirks : Iterable[ProviderQuirk] | None
        Classification table. Uses ``DEFAULT_QUIRKS`` if None.
    default_class : ErrorClass
        Tag for JSON-RPC errors no quirk matches

    """

    def __init__(
        self,
        quirks: Iterable[ProviderQuirk] | None = None,
        default_class: ErrorClass = ErrorClass.RETRYABLE,
    ) -> None:
        self.quirks = tuple(DEFAULT_QUIRKS if quirks is None else quirks)
        self.default_class = default_class

    def classify(self, error: Exception) -> ErrorClass:
        # Anything that is not a JSON-RPC error object is an endpoint fault
        if not isinstance(error, JsonRpcError):
            return ErrorClass.RETRYABLE

        for quirk in self.quirks:
            if quirk.matches(error):
                return quirk.error_class
        return self.default_class

    def with_quirks(self, extra: Iterable[ProviderQuirk]) -> "ErrorClassifier":
        """New classifier with ``extra`` consulted before the current table."""
        return ErrorClassifier((*extra, *self.quirks), self.default_class)

    __call__ = classify
