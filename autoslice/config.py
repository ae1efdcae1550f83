"""
Runtime settings: INI file, environment variables, and CLI overrides.

Precedence, lowest first: built-in defaults, the INI file, environment
variables, explicit overrides (CLI flags). Targets from every source are
merged in that order.

INI layout::

    [autoslice]
    projects = /home/me/prints
    profiles = /home/me/.config/PrusaSlicer
    slicer = prusa-slicer-console
    debounce_ms = 500

    [targets]
    octopi = pi@octopi.local:/home/pi/.octoprint/watched[MK3S]
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterable, Optional

from iniconfig import IniConfig, ParseError
from pydantic import BaseModel, Field, ValidationError, model_validator

from .models import ProfileCategory, Target

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "gcode"

ENV_CONFIG = "AUTOSLICE_CONFIG"
ENV_TARGETS = "AUTOSLICE_TARGETS"

# Environment variable → settings field
_ENV_FIELDS: dict[str, str] = {
    "AUTOSLICE_PROJECTS": "projects_dir",
    "AUTOSLICE_PROFILES": "profiles_dir",
    "AUTOSLICE_OUTPUT": "output_dir",
    "AUTOSLICE_SLICER": "slicer_command",
}

# Short INI keys accepted alongside the field names
_INI_ALIASES: dict[str, str] = {
    "projects": "projects_dir",
    "profiles": "profiles_dir",
    "output": "output_dir",
    "slicer": "slicer_command",
    "rsync": "rsync_command",
}

_TARGET_RE = re.compile(r"^(?P<address>[^\[\]]+?)\s*(?:\[(?P<printers>[^\[\]]*)\])?$")


class ConfigurationError(Exception):
    """Raised when required settings or directories are missing or invalid."""


class Settings(BaseModel):
    projects_dir: Path
    profiles_dir: Path
    output_dir: Optional[Path] = None
    slicer_command: str = "prusa-slicer"
    rsync_command: str = "rsync"
    targets: list[Target] = Field(default_factory=list)
    debounce_ms: int = Field(default=250, ge=0)
    mirror_batch_size: int = Field(default=10, ge=1)
    slice_concurrency: Optional[int] = Field(default=None, ge=1)
    full_rebuild_on_profile_change: bool = False

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        self.projects_dir = self.projects_dir.expanduser().resolve()
        self.profiles_dir = self.profiles_dir.expanduser().resolve()
        if self.output_dir is None:
            self.output_dir = self.projects_dir / DEFAULT_OUTPUT_NAME
        else:
            self.output_dir = self.output_dir.expanduser().resolve()
        return self

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000

    def validate_paths(self) -> None:
        """Check the directories a run needs. Any failure is fatal."""
        if not self.projects_dir.is_dir():
            raise ConfigurationError(
                f"Could not find project directory {self.projects_dir}, "
                "specify it with --projects or $AUTOSLICE_PROJECTS"
            )
        if not self.profiles_dir.is_dir():
            raise ConfigurationError(
                f"Could not find PrusaSlicer directory {self.profiles_dir}, "
                "check permissions or specify it with --profiles or $AUTOSLICE_PROFILES"
            )
        for category in ProfileCategory:
            if not (self.profiles_dir / category.value).is_dir():
                raise ConfigurationError(
                    f"Expected a {category.value}/ directory in {self.profiles_dir}, "
                    "wrong directory?"
                )


def parse_target(spec: str) -> Target:
    """
    Parse ``address`` or ``address[printer1,printer2]``.

    Empty brackets give an allow-list that admits only printer-less artifacts.
    """
    match = _TARGET_RE.match(spec.strip())
    if match is None:
        raise ConfigurationError(f"Malformed target '{spec}'")
    printers = match.group("printers")
    allowed = None
    if printers is not None:
        allowed = frozenset(p.strip() for p in printers.split(",") if p.strip())
    return Target(address=match.group("address"), printers=allowed)


def parse_targets(specs: Iterable[str]) -> list[Target]:
    """Parse target specs, keeping the first occurrence of each address."""
    targets: list[Target] = []
    seen: set[str] = set()
    for spec in specs:
        if not spec.strip():
            continue
        target = parse_target(spec)
        if target.address in seen:
            logger.warning("Ignoring duplicate target %s", target.address)
            continue
        seen.add(target.address)
        targets.append(target)
    return targets


def read_ini(path: Path) -> tuple[dict[str, str], list[str]]:
    """Read the ``[autoslice]`` options and ``[targets]`` specs from an INI file."""
    try:
        ini = IniConfig(path)
    except (OSError, ParseError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}") from e

    options: dict[str, str] = {}
    if "autoslice" in ini:
        for key, value in ini["autoslice"].items():
            options[_INI_ALIASES.get(key, key)] = value

    targets: list[str] = []
    if "targets" in ini:
        targets = [value for _, value in ini["targets"].items()]
    return options, targets


def load_settings(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    extra_targets: Iterable[str] = (),
    environ: dict[str, str] | None = None,
) -> Settings:
    """Merge every configuration source into validated Settings."""
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    target_specs: list[str] = []

    if config_path is None and env.get(ENV_CONFIG):
        config_path = Path(env[ENV_CONFIG])
    if config_path is not None:
        options, ini_targets = read_ini(config_path)
        values.update(options)
        target_specs.extend(ini_targets)

    for var, field in _ENV_FIELDS.items():
        if env.get(var):
            values[field] = env[var]
    if env.get(ENV_TARGETS):
        target_specs.extend(env[ENV_TARGETS].split(","))

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value
    target_specs.extend(extra_targets)

    unknown = set(values) - set(Settings.model_fields)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
    for required, flag in (("projects_dir", "--projects"), ("profiles_dir", "--profiles")):
        if not values.get(required):
            raise ConfigurationError(f"No {required.replace('_', ' ')} given, use {flag}")

    values["targets"] = parse_targets(target_specs)
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
