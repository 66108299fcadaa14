"""
Shared exception types for modl_builder.
Stable surface; extend only. Every error may carry the pipeline stage it was raised in.
"""

from __future__ import annotations

from typing import Optional


class ModlBuilderError(Exception):
    """Base exception for modl_builder; catch this for any package-raised error."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigurationError(ModlBuilderError):
    """Missing or invalid configuration: required metadata, key alias, key algorithm."""


class TerminalUnavailableError(ConfigurationError):
    """A password must be entered interactively but no terminal is attached."""


class ArchiveError(ModlBuilderError):
    """Archive layout problem (e.g. two artifacts mapping to one jar name)."""


class ArchiveIOError(ArchiveError):
    """Unreadable input or unwritable output; message names the path involved."""

    def __init__(self, message: str, path: object = None, *, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.path = path


class KeyStoreError(ModlBuilderError):
    """Keystore could not be opened or unlocked (wrong password, corrupt file, token login)."""


class SigningError(ModlBuilderError):
    """Digesting or signature generation failed; the unsigned archive is left as is."""


class UploadError(ModlBuilderError):
    """Posting the module to a gateway failed. Never rolls back produced archives."""


class VerificationError(ModlBuilderError):
    """Base for signed-archive verification failures."""


class MissingSignatureError(VerificationError):
    """Archive carries no (or incomplete) signature entries."""


class TamperedArchiveError(VerificationError):
    """Entry content does not match the signed digest manifest."""

    def __init__(self, message: str, entry: Optional[str] = None, *, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)
        self.entry = entry


class SignatureVerificationError(VerificationError):
    """Manifest signature or certificate chain does not verify."""


__all__ = [
    "ArchiveError",
    "ArchiveIOError",
    "ConfigurationError",
    "KeyStoreError",
    "MissingSignatureError",
    "ModlBuilderError",
    "SignatureVerificationError",
    "SigningError",
    "TamperedArchiveError",
    "TerminalUnavailableError",
    "UploadError",
    "VerificationError",
]
