"""Engine settings, loadable from chartrender.yaml"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from chartrender.exceptions import ParseError

DEFAULT_CONFIG_FILE = "chartrender.yaml"


class EngineSettings(BaseModel):
    """Settings for one Engine"""

    model_config = {"extra": "forbid"}

    sandbox: bool = True  # hide lookup/now/randAlphaNum/uuidv4
    strict: bool = False  # undefined variables are errors
    max_include_depth: int = Field(default=100, ge=1)

    @classmethod
    def load(cls, path: Path | str) -> "EngineSettings":
        """Load settings from a yaml file; defaults when the file is missing"""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ParseError(f"cannot parse settings file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ParseError(f"settings file {path} must be a mapping")
        return cls.model_validate(data)
