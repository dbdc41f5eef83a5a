from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from foundry.core.config.io import read_yaml_file, write_yaml_file
from foundry.core.config.models import BackupSettings, LoggingSettings
from foundry.core.config.paths import ConfigFsPaths
from foundry.core.crypto import EphemeralKeyProvider, FileKeyProvider, KeyProvider, SystemKeyringProvider
from foundry.core.errors import ValidationError
from foundry.core.logger import LOGGER_NAME

DEFAULT_SECTIONS: Dict[str, Type[BaseModel]] = {
    "backup": BackupSettings,
    "logging": LoggingSettings,
}


class SectionRegistry:
    """
    Named sections of foundry.yaml, each validated by its own model.

    A missing file or missing section yields the model defaults; unknown keys
    at the top level are preserved on save.
    """

    def __init__(
        self,
        *,
        fs: Optional[ConfigFsPaths] = None,
        sections: Optional[Dict[str, Type[BaseModel]]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.fs = fs or ConfigFsPaths()
        self._sections = dict(sections or DEFAULT_SECTIONS)
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    @property
    def path(self) -> str:
        return self.fs.settings_file

    def section_names(self) -> List[str]:
        return sorted(self._sections)

    def _model(self, name: str) -> Type[BaseModel]:
        model = self._sections.get(name)
        if model is None:
            raise ValidationError(f"Unknown settings section '{name}'.", section=name, known=", ".join(self.section_names()))
        return model

    def _read_all(self) -> Dict[str, Any]:
        rr = read_yaml_file(self.path)
        return rr.data if rr.ok else {}

    def load_section(self, name: str) -> BaseModel:
        model = self._model(name)
        raw = self._read_all().get(name) or {}
        if not isinstance(raw, dict):
            raise ValidationError(f"Settings section '{name}' must be a mapping.", section=name, path=self.path)
        try:
            return self._apply_defaults(model.model_validate(raw))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings section '{name}'.", section=name, path=self.path, error=str(e)) from e

    def save_section(self, name: str, value: Any) -> BaseModel:
        model = self._model(name)
        try:
            obj = value if isinstance(value, model) else model.model_validate(value)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings section '{name}'.", section=name, error=str(e)) from e
        data = self._read_all()
        data[name] = obj.model_dump(mode="json", by_alias=True)
        write_yaml_file(self.path, data)
        self.logger.info(f"Saved settings section={name} path={self.path}")
        return obj

    def reset_section(self, name: str) -> BaseModel:
        model = self._model(name)
        data = self._read_all()
        if name in data:
            data.pop(name)
            write_yaml_file(self.path, data)
            self.logger.info(f"Reset settings section={name}")
        return self._apply_defaults(model())

    def _apply_defaults(self, obj: BaseModel) -> BaseModel:
        # path defaults depend on the root, so they are filled in at load time
        if isinstance(obj, BackupSettings):
            key_path = os.path.expanduser(obj.key_path or self.fs.default_key_path)
            obj = obj.model_copy(update={"key_path": key_path})
        if isinstance(obj, LoggingSettings):
            obj = obj.model_copy(update={"dir": os.path.expanduser(obj.dir or self.fs.logs_dir)})
        return obj

    def backup_settings(self) -> BackupSettings:
        return self.load_section("backup")  # type: ignore[return-value]

    def logging_settings(self) -> LoggingSettings:
        return self.load_section("logging")  # type: ignore[return-value]


def key_provider_from_settings(settings: BackupSettings, *, create_if_missing: bool = False) -> Optional[KeyProvider]:
    """None when encryption is disabled."""
    if not settings.encrypt:
        return None
    if settings.key_source == "keyring":
        return SystemKeyringProvider(service=settings.keyring_service, create_if_missing=create_if_missing)
    if settings.key_source == "ephemeral":
        return EphemeralKeyProvider()
    if not settings.key_path:
        raise ValidationError("Backup encryption requires keyPath.", section="backup")
    return FileKeyProvider(path=os.path.expanduser(settings.key_path), create_if_missing=create_if_missing)
