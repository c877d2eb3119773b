"""Credential storage, OAuth refresh, and login flows.

The main entry points are:

- :class:`CredentialManager` -- hands out usable credentials, refreshing
  them when they are close to expiry, and reports freshness for status
  output.
- :class:`FileCredentialStore` / :class:`MemoryCredentialStore` -- where
  credentials live.
- :mod:`modelroute.auth.login` -- browser, device-code, and paste-token
  login flows.

Typical usage::

    from modelroute.auth import CredentialManager, FileCredentialStore

    manager = CredentialManager(FileCredentialStore())
    cred = manager.get_usable_credential("openai")
"""

from modelroute.auth.credential_store import (
    AuthCredential,
    BaseCredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)
from modelroute.auth.lifecycle import (
    CredentialManager,
    CredentialReport,
    CredentialStatus,
    ExpiredCredentialPolicy,
)
from modelroute.auth.oauth import OAuthProviderConfig, default_oauth_configs

__all__ = [
    "AuthCredential",
    "BaseCredentialStore",
    "CredentialManager",
    "CredentialReport",
    "CredentialStatus",
    "ExpiredCredentialPolicy",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "OAuthProviderConfig",
    "default_oauth_configs",
]
