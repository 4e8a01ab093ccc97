from __future__ import annotations

import logging
import os
import platform
import tomllib
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path

import tomli_w

from ._errors import ConfigurationError
from ._fs import atomic_write_bytes
from ._types import Profile

logger = logging.getLogger(__name__)

APP_NAME = "which-llm"
CONFIG_FILENAME = "config.toml"
DEFAULT_TTL_HOURS = 24
DEFAULT_ORIGIN_TTL_HOURS = 1

ENV_CONFIG_DIR = "WHICH_LLM_CONFIG_DIR"
ENV_CACHE_DIR = "WHICH_LLM_CACHE_DIR"
ENV_PROFILE = "WHICH_LLM_PROFILE"
ENV_TTL_HOURS = "WHICH_LLM_CACHE_TTL_HOURS"
ENV_ORIGIN_TTL_HOURS = "WHICH_LLM_ORIGIN_TTL_HOURS"


def default_config_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif system == "Darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
    return (base / APP_NAME).expanduser()


def default_cache_dir() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return (base / APP_NAME / "cache").expanduser()
    if system == "Darwin":
        base = Path.home() / "Library" / "Caches"
    else:
        base = Path(os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache")
    return (base / APP_NAME).expanduser()


@dataclass(frozen=True)
class Config:
    """Invocation-wide settings, loaded once and passed to every component.

    Environment variables take precedence over ``config.toml``. The object is
    immutable: the profile methods return a new ``Config``, and only
    :meth:`save` touches the file.
    """

    cache_dir: Path
    config_dir: Path
    profiles: dict[str, Profile] = field(default_factory=dict)
    default_profile: str | None = None
    selected_profile: str | None = None
    ttl: timedelta = timedelta(hours=DEFAULT_TTL_HOURS)
    origin_ttl: timedelta = timedelta(hours=DEFAULT_ORIGIN_TTL_HOURS)

    @classmethod
    def load(
        cls,
        *,
        profile: str | None = None,
        config_dir: Path | str | None = None,
        cache_dir: Path | str | None = None,
    ) -> Config:
        config_dir = Path(config_dir or os.environ.get(ENV_CONFIG_DIR) or default_config_dir())
        cache_dir = Path(cache_dir or os.environ.get(ENV_CACHE_DIR) or default_cache_dir())
        selected = profile or os.environ.get(ENV_PROFILE) or None

        ttl = _ttl_from_env(ENV_TTL_HOURS, DEFAULT_TTL_HOURS)
        origin_ttl = _ttl_from_env(ENV_ORIGIN_TTL_HOURS, DEFAULT_ORIGIN_TTL_HOURS)

        profiles, default_profile = _read_profiles(config_dir / CONFIG_FILENAME)
        logger.debug("Loaded config from %s (%d profiles)", config_dir, len(profiles))
        return cls(
            cache_dir=cache_dir,
            config_dir=config_dir,
            profiles=profiles,
            default_profile=default_profile,
            selected_profile=selected,
            ttl=ttl,
            origin_ttl=origin_ttl,
        )

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def get_profile(self, name: str) -> Profile | None:
        return self.profiles.get(name)

    def get_default_profile(self) -> Profile | None:
        if self.default_profile:
            return self.profiles.get(self.default_profile)
        return None

    def with_profile(self, name: str, api_key: str, *, make_default: bool = False) -> Config:
        """Return a copy with a new profile. The first profile becomes the default."""
        if not name:
            raise ConfigurationError("Profile name must not be empty")
        if not api_key:
            raise ConfigurationError(f"Profile '{name}' needs an api_key")
        if name in self.profiles:
            raise ConfigurationError(f"Profile '{name}' already exists")
        keys = {n: p.api_key for n, p in self.profiles.items()}
        keys[name] = api_key
        default = name if make_default or not self.profiles else self.default_profile
        return self._with_profiles(keys, default)

    def without_profile(self, name: str) -> Config:
        """Return a copy without ``name``. Removing the default leaves no default."""
        self._require_profile(name)
        keys = {n: p.api_key for n, p in self.profiles.items() if n != name}
        default = None if self.default_profile == name else self.default_profile
        return self._with_profiles(keys, default)

    def with_default(self, name: str) -> Config:
        self._require_profile(name)
        return self._with_profiles({n: p.api_key for n, p in self.profiles.items()}, name)

    def save(self) -> None:
        """Write the profiles to ``config.toml``, replacing the file atomically."""
        data: dict[str, object] = {}
        if self.default_profile is not None:
            data["default_profile"] = self.default_profile
        data["profiles"] = {n: {"api_key": p.api_key} for n, p in sorted(self.profiles.items())}
        try:
            # mkstemp creates the file with mode 0600, which os.replace keeps.
            atomic_write_bytes(self.config_file, tomli_w.dumps(data).encode("utf-8"))
        except OSError as e:
            raise ConfigurationError(f"Cannot write config file {self.config_file}: {e}") from e
        logger.debug("Saved %d profiles to %s", len(self.profiles), self.config_file)

    def _require_profile(self, name: str) -> None:
        if name not in self.profiles:
            raise ConfigurationError(f"Profile '{name}' not found")

    def _with_profiles(self, keys: dict[str, str], default: str | None) -> Config:
        profiles = {n: Profile(name=n, api_key=k, is_default=n == default) for n, k in keys.items()}
        return replace(self, profiles=profiles, default_profile=default)


def _ttl_from_env(var: str, default_hours: float) -> timedelta:
    raw = os.environ.get(var)
    if not raw:
        return timedelta(hours=default_hours)
    try:
        hours = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{var} must be a number, got {raw!r}") from e
    if hours < 0:
        raise ConfigurationError(f"{var} must not be negative, got {raw!r}")
    return timedelta(hours=hours)


def _read_profiles(path: Path) -> tuple[dict[str, Profile], str | None]:
    if not path.exists():
        return {}, None
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    profiles: dict[str, Profile] = {}
    for name, entry in (data.get("profiles") or {}).items():
        if not isinstance(entry, dict) or not entry.get("api_key"):
            raise ConfigurationError(f"Profile '{name}' in {path} has no api_key")
        profiles[name] = Profile(
            name=name,
            api_key=str(entry["api_key"]),
            is_default=bool(entry.get("is_default", False)),
        )

    defaults = [p.name for p in profiles.values() if p.is_default]
    if len(defaults) > 1:
        raise ConfigurationError(f"More than one default profile in {path}: {', '.join(sorted(defaults))}")

    default_profile = data.get("default_profile")
    if default_profile is not None:
        if default_profile not in profiles:
            raise ConfigurationError(f"default_profile '{default_profile}' is not defined in {path}")
        if defaults and defaults[0] != default_profile:
            raise ConfigurationError(
                f"default_profile '{default_profile}' conflicts with is_default on '{defaults[0]}' in {path}"
            )
    elif defaults:
        default_profile = defaults[0]

    if default_profile is not None:
        profiles[default_profile].is_default = True
    return profiles, default_profile


__all__ = ["Config", "default_cache_dir", "default_config_dir"]
