"""CLI sub-command groups for modelroute.

* :mod:`~modelroute.commands.auth` -- log in, log out, and inspect stored
  OAuth credentials.
"""
