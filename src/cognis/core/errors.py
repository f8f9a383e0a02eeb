"""Exception hierarchy shared across Cognis components."""

from __future__ import annotations


class CognisError(Exception):
    """Base class for Cognis errors."""


class UnknownProviderError(CognisError):
    """A caller asked for a provider name that was never registered."""


class ProviderNotRegisteredError(CognisError):
    """Model-based routing picked a provider that has no registration."""


class WorkspaceError(CognisError):
    """Workspace is missing or a path escapes it."""


class ServiceTypeError(CognisError):
    """A tool context collaborator has an unexpected type."""


class TranscriptionError(CognisError):
    """Audio transcription failed."""


class ServiceNotConfiguredError(CognisError):
    """A tool needed a collaborator the context does not carry."""
