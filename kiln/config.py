"""Configuration loading for Kiln.

Configuration lives in ``kiln.yaml`` next to the site. Top-level keys are
profile names, plus an optional ``kits`` section. The ``default`` profile is
required; any other profile is merged over it when selected::

    kits:
      base: {path: vendor/base-kit, dest: /kits/base}
    default:
      paths: {source: site/, target: public/, clean_urls: true}
      context: {title: Kiln Site}
      procs:
        markdown: {}
    production:
      procs:
        canonicalize: {root: "https://www.example.com/"}

Key classes:
- KilnConfig: A parsed configuration file.
- ConfigProfile: One profile's paths, context and processors.
- SiteConfig: A resolved profile, ready to build with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .kits import KitConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "kiln.yaml"
DEFAULT_PROFILE = "default"
KITS_KEY = "kits"

DEFAULT_CONFIG_YAML = """\
# Kiln asset processing configuration

default:
  paths:
    source: site/
    target: public/
    # If true, HTML files are emitted with clean URLs.
    # For example, "about.html" becomes "about/index.html".
    clean_urls: true
  context:
    title: Kiln Site
  procs:
    markdown: {}
    template: {}
    pattern: {}
    canonicalize: {root: "http://localhost:1337/"}
    scss: {}
    minify_html: {}
    minify_js: {}
    image: {max_width: 1920, max_height: 1920}
    favicon: {}

production:
  procs:
    canonicalize: {root: "https://www.example.com/"}
"""


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{where}` must be a mapping")
    return {str(key): item for key, item in value.items()}


@dataclass(frozen=True)
class PathsConfig:
    """Source and target locations; None means "not set in this profile"."""

    source: str | None = None
    target: str | None = None
    clean_urls: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathsConfig:
        clean_urls = data.get("clean_urls")
        return cls(
            source=str(data["source"]) if data.get("source") is not None else None,
            target=str(data["target"]) if data.get("target") is not None else None,
            clean_urls=bool(clean_urls) if clean_urls is not None else None,
        )

    def merge(self, other: PathsConfig) -> PathsConfig:
        """Return these paths with every field ``other`` sets overridden."""
        return PathsConfig(
            source=other.source if other.source is not None else self.source,
            target=other.target if other.target is not None else self.target,
            clean_urls=other.clean_urls if other.clean_urls is not None else self.clean_urls,
        )


@dataclass(frozen=True)
class ConfigProfile:
    """One configuration profile.

    Attributes:
        paths: Source and target paths.
        context: Seed values for the build context.
        procs: Processor names mapped to their options, in file order.
    """

    paths: PathsConfig = field(default_factory=PathsConfig)
    context: dict[str, Any] = field(default_factory=dict)
    procs: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Any) -> ConfigProfile:
        data = _mapping(data, name)
        procs = {
            proc: _mapping(options, f"{name}.procs.{proc}")
            for proc, options in _mapping(data.get("procs"), f"{name}.procs").items()
        }
        return cls(
            paths=PathsConfig.from_dict(_mapping(data.get("paths"), f"{name}.paths")),
            context=_mapping(data.get("context"), f"{name}.context"),
            procs=procs,
        )

    def merge(self, other: ConfigProfile) -> ConfigProfile:
        """Return this profile with ``other`` merged over it.

        Paths merge field by field; context and procs merge key by key.
        """
        return replace(
            self,
            paths=self.paths.merge(other.paths),
            context={**self.context, **other.context},
            procs={**self.procs, **other.procs},
        )


@dataclass(frozen=True)
class SiteConfig:
    """A selected profile with paths resolved against the config directory.

    Attributes:
        profile_name: Name of the selected profile.
        project_root: Directory containing the configuration file.
        source_dir: Absolute source directory.
        target_dir: Absolute target directory.
        clean_urls: Whether clean URLs are enabled.
        context: Seed values for the build context.
        procs: Processor names mapped to their options.
        kits: Declared kits.
    """

    profile_name: str
    project_root: Path
    source_dir: Path
    target_dir: Path
    clean_urls: bool = False
    context: dict[str, Any] = field(default_factory=dict)
    procs: dict[str, dict[str, Any]] = field(default_factory=dict)
    kits: list[KitConfig] = field(default_factory=list)


@dataclass(frozen=True)
class KilnConfig:
    """A parsed kiln.yaml.

    Attributes:
        config_dir: Directory relative paths are resolved against.
        profiles: Every profile in the file.
        kits: Declared kits, by name.
    """

    config_dir: Path
    profiles: dict[str, ConfigProfile]
    kits: dict[str, KitConfig] = field(default_factory=dict)

    def profile(self, name: str = DEFAULT_PROFILE) -> ConfigProfile:
        """Return profile ``name`` merged over the default profile.

        Raises:
            ConfigError: If the default or the selected profile is missing.
        """
        default = self.profiles.get(DEFAULT_PROFILE)
        if default is None:
            raise ConfigError(f"missing default profile: {DEFAULT_PROFILE}")
        if name == DEFAULT_PROFILE:
            return default
        selected = self.profiles.get(name)
        if selected is None:
            raise ConfigError(f"missing selected profile: {name}")
        return default.merge(selected)

    def resolve(self, name: str = DEFAULT_PROFILE) -> SiteConfig:
        """Select a profile and resolve its paths.

        Raises:
            ConfigError: If a profile is missing or ``paths.source`` or
                ``paths.target`` isn't set.
        """
        profile = self.profile(name)
        if not profile.paths.source:
            raise ConfigError("missing paths.source")
        if not profile.paths.target:
            raise ConfigError("missing paths.target")
        logger.debug("Profile %s: processors %s", name, list(profile.procs))
        return SiteConfig(
            profile_name=name,
            project_root=self.config_dir,
            source_dir=(self.config_dir / profile.paths.source).resolve(),
            target_dir=(self.config_dir / profile.paths.target).resolve(),
            clean_urls=bool(profile.paths.clean_urls),
            context=dict(profile.context),
            procs=dict(profile.procs),
            kits=list(self.kits.values()),
        )


def load_config_from_str(text: str, config_dir: Path) -> KilnConfig:
    """Parse kiln.yaml contents.

    Args:
        text: YAML source.
        config_dir: Directory relative paths are resolved against.

    Returns:
        The parsed configuration.

    Raises:
        ConfigError: If the YAML is invalid or has the wrong shape.
    """
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    raw = _mapping(raw, "configuration")

    kits = {
        name: KitConfig.from_dict(name, entry)
        for name, entry in _mapping(raw.pop(KITS_KEY, None), KITS_KEY).items()
    }
    profiles = {name: ConfigProfile.from_dict(name, data) for name, data in raw.items()}
    return KilnConfig(config_dir=config_dir, profiles=profiles, kits=kits)


def load_config(config_path: Path) -> KilnConfig:
    """Load kiln.yaml from ``config_path``.

    Raises:
        ConfigError: If the file can't be read or parsed.
    """
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {config_path}: {exc.strerror or exc}") from exc
    return load_config_from_str(text, config_path.resolve().parent)


def write_default_config(directory: Path) -> Path:
    """Write the default kiln.yaml into ``directory``.

    Returns:
        Path of the new file.

    Raises:
        ConfigError: If the file already exists.
    """
    config_path = directory / DEFAULT_CONFIG_FILE
    if config_path.exists():
        raise ConfigError(f"{config_path} already exists")
    config_path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    return config_path
