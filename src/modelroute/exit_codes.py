"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~modelroute.exceptions.ModelRouteError` subclass.
Shell wrappers can inspect the exit code to tell a missing login apart
from a bad config without parsing stderr.

Example::

    $ modelroute resolve claude-3-sonnet
    $ echo $?
    2   # EXIT_CONFIGURATION_ERROR -- no provider could serve the model
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIGURATION_ERROR = 2
"""The configuration could not resolve a provider, or a required field is missing."""

EXIT_AUTH_FAILURE = 3
"""No usable stored credential, or a login flow failed."""

EXIT_CONNECTION_ERROR = 6
"""A provider or gateway was unreachable, or answered with a non-2xx status."""

EXIT_DECODE_ERROR = 7
"""A provider returned a response envelope that could not be decoded."""
