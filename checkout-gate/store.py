"""Credential stores for the gate configuration.

A store holds one ``GateSettings`` value: the protected host patterns and
the password hash. Saves validate against the settings rules and replace
the whole value at once, so readers see either the old or the new
configuration, never a mix.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from contract import ValidationReport, validate_settings
from models import GateSettings, SettingsUpdate
from passwords import SecretHasher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SettingsValidationError(Exception):
    """Raised when settings fail the settings rules."""

    def __init__(self, report: ValidationReport) -> None:
        self.report = report
        super().__init__(report.summary())


class SettingsStoreError(Exception):
    """Raised when settings cannot be persisted."""

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        self.reason = reason
        super().__init__(f"Cannot write settings to {location}: {reason}")


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class CredentialStore:
    """Read/write contract shared by every store."""

    def get(self) -> GateSettings:
        raise NotImplementedError

    def _write(self, settings: GateSettings) -> None:
        raise NotImplementedError

    def replace(self, settings: GateSettings) -> GateSettings:
        report = validate_settings(settings)
        if not report.passed:
            raise SettingsValidationError(report)
        self._write(settings)
        return settings

    def save(self, update: SettingsUpdate, hasher: SecretHasher) -> GateSettings:
        """Apply an administrator update.

        Branches: SAVE-KEEP-HASH, SAVE-NEW-HASH
        """
        if update.password:                                       # SAVE-NEW-HASH
            password_hash = hasher.hash(update.password)
            logger.info("Checkout password changed")
        else:                                                     # SAVE-KEEP-HASH
            password_hash = self.get().password_hash

        settings = GateSettings(
            protected_hosts=list(update.protected_hosts),
            password_hash=password_hash,
        )
        self.replace(settings)
        logger.info(
            "Saved gate settings: %d protected host(s), password %s",
            len(settings.protected_hosts),
            "set" if settings.has_password else "unset",
        )
        return settings

    def reset(self) -> None:
        """Forget all configuration."""
        self._write(GateSettings())
        logger.info("Gate settings reset")


class InMemoryCredentialStore(CredentialStore):
    """Process-local store."""

    def __init__(self, settings: GateSettings | None = None) -> None:
        self._settings = (settings or GateSettings()).model_copy(deep=True)

    def get(self) -> GateSettings:
        return self._settings.model_copy(deep=True)

    def _write(self, settings: GateSettings) -> None:
        self._settings = settings.model_copy(deep=True)


class JsonFileCredentialStore(CredentialStore):
    """Store backed by a JSON file, replaced atomically on write.

    An unreadable or corrupt file reads as empty settings, which leaves the
    checkout open.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self) -> GateSettings:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return GateSettings()
        except OSError as e:
            logger.warning("Cannot read %s, treating as unset: %s", self.path, e)
            return GateSettings()

        try:
            return GateSettings.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Corrupt settings in %s, treating as unset: %s",
                           self.path, e)
            return GateSettings()

    def _write(self, settings: GateSettings) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=self.path.parent
            )
        except OSError as e:
            raise SettingsStoreError(str(self.path), str(e)) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(settings.model_dump_json(indent=2))
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise SettingsStoreError(str(self.path), str(e)) from e
