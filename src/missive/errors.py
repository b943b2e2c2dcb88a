"""Error taxonomy for the missive pipeline.

Every failure surfaced to a caller is a ``MissiveError``. Variants carry a
short ``code`` tag plus the structured fields that describe the failure; the
human-readable message is derived from those fields, never the other way
around. Callers that need to branch should look at ``code`` / ``context``
instead of parsing ``str(exc)``.

    MissiveError
      ConfigurationError
      DocumentError
      KeyMaterialError
        KeyStoreAccessError
        InvalidCredentialsError
        CertificateNotFoundError
        CertificateFileNotFoundError
        CertificateParseError
      UnsupportedAlgorithmError
      SigningError
      VerificationError
      EncryptionError
      TransportError
      ArchiveError
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class MissiveError(Exception):
    code = "missive_error"

    def __init__(self, **context: Any):
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(self.describe())

    def describe(self) -> str:
        if not self.context:
            return self.code
        fields = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.code}: {fields}"

    def __getattr__(self, item: str) -> Any:
        # structured fields are readable as attributes (exc.key, exc.alias, ...)
        context = self.__dict__.get("context")
        if context is not None and item in context:
            return context[item]
        raise AttributeError(item)

    def __reduce__(self):
        return _restore, (type(self), dict(self.context))


def _restore(cls, context: Dict[str, Any]) -> MissiveError:
    # variants have positional signatures; rebuild from the stored fields
    err = cls.__new__(cls)
    MissiveError.__init__(err, **context)
    return err


class ConfigurationError(MissiveError):
    code = "configuration"

    def __init__(self, reason: str, key: Optional[str] = None, path: Optional[str] = None):
        super().__init__(reason=reason, key=key, path=path)


class DocumentError(MissiveError):
    code = "document"

    def __init__(self, path: str, reason: str):
        super().__init__(path=path, reason=reason)


class KeyMaterialError(MissiveError):
    code = "key_material"


class KeyStoreAccessError(KeyMaterialError):
    code = "keystore_access"

    def __init__(self, locator: str, reason: str):
        super().__init__(locator=locator, reason=reason)


class InvalidCredentialsError(KeyMaterialError):
    code = "invalid_credentials"

    def __init__(self, locator: str):
        super().__init__(locator=locator)


class CertificateNotFoundError(KeyMaterialError):
    """Alias missing from the keystore, or present but not a private-key entry."""

    code = "certificate_not_found"

    def __init__(self, alias: str, locator: str):
        super().__init__(alias=alias, locator=locator)


class CertificateFileNotFoundError(KeyMaterialError):
    code = "certificate_file_not_found"

    def __init__(self, path: str):
        super().__init__(path=path)


class CertificateParseError(KeyMaterialError):
    code = "certificate_parse"

    def __init__(self, path: str, reason: str):
        super().__init__(path=path, reason=reason)


class UnsupportedAlgorithmError(MissiveError):
    code = "unsupported_algorithm"

    def __init__(self, name: str):
        super().__init__(name=name)


class SigningError(MissiveError):
    code = "signing"

    def __init__(self, reason: str, algorithm: Optional[str] = None):
        super().__init__(algorithm=algorithm, reason=reason)


class VerificationError(MissiveError):
    code = "verification"

    def __init__(self, reason: str):
        super().__init__(reason=reason)


class EncryptionError(MissiveError):
    code = "encryption"

    def __init__(self, reason: str, algorithm: Optional[str] = None):
        super().__init__(algorithm=algorithm, reason=reason)


class TransportError(MissiveError):
    code = "transport"

    def __init__(self, reason: str, host: Optional[str] = None, port: Optional[int] = None):
        super().__init__(host=host, port=port, reason=reason)


class ArchiveError(MissiveError):
    """Post-delivery failure: the sent-items copy could not be produced or stored."""

    code = "archive"

    def __init__(
        self,
        reason: str,
        folder: Optional[str] = None,
        host: Optional[str] = None,
        username: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(folder=folder, host=host, username=username, stage=stage, reason=reason)


__all__ = [
    "MissiveError",
    "ConfigurationError",
    "DocumentError",
    "KeyMaterialError",
    "KeyStoreAccessError",
    "InvalidCredentialsError",
    "CertificateNotFoundError",
    "CertificateFileNotFoundError",
    "CertificateParseError",
    "UnsupportedAlgorithmError",
    "SigningError",
    "VerificationError",
    "EncryptionError",
    "TransportError",
    "ArchiveError",
]
