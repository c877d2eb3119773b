"""Exception hierarchy for modelroute.

All exceptions inherit from :class:`ModelRouteError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`modelroute.exit_codes`.  Library callers catch the specific subclass
they care about; the CLI entry point in :func:`modelroute.app.main` catches
``ModelRouteError`` and exits with the matching code.

Subclass hierarchy::

    ModelRouteError (exit 1)
    +-- ConfigurationError  (exit 2)
    +-- AuthenticationError (exit 3)
    +-- TransportError      (exit 6)
    +-- DecodeError         (exit 7)

None of these is retried inside the library.  Credential refresh failures
are the one place an error is deliberately absorbed; see
:meth:`modelroute.auth.lifecycle.CredentialManager.get_usable_credential`.
"""

from __future__ import annotations

from typing import Optional

from modelroute.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIGURATION_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
)


class ModelRouteError(Exception):
    """Base exception for all modelroute errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(ModelRouteError):
    """Raised for an unresolved model, a missing required field, or an unknown protocol tag."""

    exit_code = EXIT_CONFIGURATION_ERROR


class AuthenticationError(ModelRouteError):
    """Raised when no usable credential exists for a family or a login flow fails.

    Args:
        message: Human-readable error description.
        hint: The command the user should run to fix the problem, e.g.
            ``modelroute auth login --provider openai``.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class TransportError(ModelRouteError):
    """Raised on a non-2xx provider response or a network-level failure.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the failed response, or ``None`` for
            network-level failures that never produced a response.
        body: Raw response body, never partially parsed.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DecodeError(ModelRouteError):
    """Raised when a provider's top-level response envelope is not valid JSON."""

    exit_code = EXIT_DECODE_ERROR
