"""Credential lifecycle: identity exchange, persistence and single-flight renewal.

- IdentityClient: password and refresh-token exchanges against Cognito
- CredentialStore: durable copy of the live credential
- CredentialManager: hands out a valid credential, renewing at most once at a time
"""

from .identity import CognitoIdentityClient, IdentityClient
from .manager import CredentialManager
from .models import Credential
from .store import CredentialStore, FileCredentialStore

__all__ = [
    "CognitoIdentityClient",
    "Credential",
    "CredentialManager",
    "CredentialStore",
    "FileCredentialStore",
    "IdentityClient",
]
