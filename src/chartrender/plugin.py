"""Plugin declarations.

A plugin declares one of a closed set of types, each with its own config:

- cli: a subcommand (usage, shortHelp, longHelp, ignoreFlags)
- download: protocol downloaders (each needs a command and protocols)
- postrender: a post-renderer (postrenderArgs)

Unknown fields are rejected.
"""

from __future__ import annotations

from typing import Any, ClassVar

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chartrender.exceptions import PluginConfigError


class PluginConfig(BaseModel):
    """Base plugin config"""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plugin_type: ClassVar[str] = ""

    def validate_config(self) -> None:
        """Type-specific checks beyond field types"""


class CLIPluginConfig(PluginConfig):
    """cli plugin: adds a subcommand"""

    plugin_type: ClassVar[str] = "cli"

    usage: str = ""
    short_help: str = Field(default="", alias="shortHelp")
    long_help: str = Field(default="", alias="longHelp")
    ignore_flags: bool = Field(default=False, alias="ignoreFlags")


class Downloader(BaseModel):
    """A command that fetches charts for a set of protocols"""

    model_config = ConfigDict(extra="forbid")

    command: str = ""
    protocols: list[str] = []


class DownloadPluginConfig(PluginConfig):
    """download plugin: fetches charts over custom protocols"""

    plugin_type: ClassVar[str] = "download"

    downloaders: list[Downloader] = []

    def validate_config(self) -> None:
        for i, d in enumerate(self.downloaders):
            if not d.command:
                raise PluginConfigError(self.plugin_type, f"downloader {i} has empty command")
            if not d.protocols:
                raise PluginConfigError(self.plugin_type, f"downloader {i} has no protocols")
            for j, protocol in enumerate(d.protocols):
                if not protocol:
                    raise PluginConfigError(
                        self.plugin_type, f"downloader {i} has empty protocol at index {j}"
                    )


class PostrenderPluginConfig(PluginConfig):
    """postrender plugin: transforms rendered manifests"""

    plugin_type: ClassVar[str] = "postrender"

    postrender_args: list[str] = Field(default=[], alias="postrenderArgs")


# Plugin registry
_PLUGIN_CONFIGS: dict[str, type[PluginConfig]] = {
    "cli": CLIPluginConfig,
    "download": DownloadPluginConfig,
    "postrender": PostrenderPluginConfig,
}


def list_plugin_types() -> list[str]:
    return list(_PLUGIN_CONFIGS.keys())


def parse_plugin_config(plugin_type: str, data: Any) -> PluginConfig:
    """Decode and validate the config of a plugin of `plugin_type`"""
    config_cls = _PLUGIN_CONFIGS.get(plugin_type)
    if config_cls is None:
        raise PluginConfigError(
            plugin_type,
            f"unknown plugin type (available: {', '.join(list_plugin_types())})",
        )

    try:
        config = config_cls.model_validate(data or {})
    except ValidationError as e:
        raise PluginConfigError(plugin_type, str(e)) from e

    config.validate_config()
    return config


def load_plugin_file(path: str) -> PluginConfig:
    """Load a plugin declaration file with `type` and `config` keys"""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PluginConfigError("unknown", f"cannot parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise PluginConfigError("unknown", f"{path} must be a mapping")
    return parse_plugin_config(str(data.get("type", "")), data.get("config"))
