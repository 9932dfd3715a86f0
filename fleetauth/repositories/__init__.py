"""Credential store protocol and implementations."""

from fleetauth.repositories.base import CredentialStore, UnitOfWork
from fleetauth.repositories.postgres import PostgresCredentialStore

__all__ = ["CredentialStore", "PostgresCredentialStore", "UnitOfWork"]
