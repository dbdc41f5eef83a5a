from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from foundry.core.backup.api import BackupManager
from foundry.core.config.merge import MergeResolver
from foundry.core.config.paths import ConfigFsPaths
from foundry.core.config.sections import SectionRegistry, key_provider_from_settings
from foundry.core.config.store import ConfigStore
from foundry.core.logger import LOGGER_NAME, setup_logging


@dataclass
class FoundryContext:
    fs: ConfigFsPaths
    logger: logging.Logger
    sections: SectionRegistry
    store: ConfigStore
    resolver: MergeResolver
    backups: BackupManager


def build_context(*, root: Optional[str] = None, project_dir: Optional[str] = None, log: bool = True) -> FoundryContext:
    """Wire the components from foundry.yaml the way the command-line scripts use them."""
    fs = ConfigFsPaths(root or "", project_dir=project_dir)
    sections = SectionRegistry(fs=fs)
    log_cfg = sections.logging_settings()
    if log:
        logger = setup_logging(
            log_cfg.dir,
            log_cfg.level,
            file_name=log_cfg.file_name,
            fmt=log_cfg.fmt,
            max_bytes=log_cfg.max_bytes,
            backup_count=log_cfg.backup_count,
        )
    else:
        logger = logging.getLogger(LOGGER_NAME)
    sections.logger = logger

    store = ConfigStore(fs=fs, logger=logger)
    backup_cfg = sections.backup_settings()
    backups = BackupManager(
        fs.root,
        fs.backups_dir,
        key_provider=key_provider_from_settings(backup_cfg, create_if_missing=True),
        settings=backup_cfg,
        logger=logger,
        exclude=[log_cfg.dir, backup_cfg.key_path],
    )
    return FoundryContext(
        fs=fs,
        logger=logger,
        sections=sections,
        store=store,
        resolver=MergeResolver(store),
        backups=backups,
    )
