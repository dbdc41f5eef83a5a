from __future__ import annotations

from typing import List

from foundry.core.config.merge import parse_base_ref
from foundry.core.config.models import Configuration
from foundry.core.errors import FoundryError, ValidationError

SUPPORTED_SHELLS = ("bash", "zsh", "fish")
LOG_LEVELS = ("debug", "info", "warn", "error")
SUPPORTED_VERSIONS = ("v1",)
KIND = "NixConfig"


def validate_configuration(config: Configuration) -> List[str]:
    """Semantic checks on top of the schema; returns human readable problems."""
    problems: List[str] = []
    if config.version not in SUPPORTED_VERSIONS:
        problems.append(f"unsupported version '{config.version}'")
    if config.kind != KIND:
        problems.append(f"kind must be '{KIND}', got '{config.kind}'")
    if config.settings.shell and config.settings.shell not in SUPPORTED_SHELLS:
        problems.append(f"unsupported shell '{config.settings.shell}' (expected one of {', '.join(SUPPORTED_SHELLS)})")
    if config.settings.log_level and config.settings.log_level not in LOG_LEVELS:
        problems.append(f"unsupported logLevel '{config.settings.log_level}' (expected one of {', '.join(LOG_LEVELS)})")
    if config.base:
        try:
            parse_base_ref(config.base)
        except FoundryError as e:
            problems.append(f"invalid base '{config.base}': {e.user_message}")
    return problems


def ensure_valid(config: Configuration) -> None:
    problems = validate_configuration(config)
    if problems:
        raise ValidationError("Configuration is invalid.", name=config.name, problems="; ".join(problems))
