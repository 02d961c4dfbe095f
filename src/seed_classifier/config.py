from dataclasses import dataclass, field
from typing import Any, Dict

import yaml

from .exceptions import ConfigurationError


@dataclass
class Config:
    """Configuration object loaded from YAML."""
    data: Dict[str, Any]
    preprocessing: Dict[str, Any]
    validation: Dict[str, Any]
    models: Dict[str, Any]
    output: Dict[str, Any]
    explore: Dict[str, Any] = field(default_factory=dict)

    REQUIRED = ("data", "preprocessing", "validation", "models", "output")

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        with open(path, "r") as f:
            cfg = yaml.safe_load(f) or {}
        return cls.from_dict(cfg)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "Config":
        missing = [key for key in cls.REQUIRED if key not in cfg]
        if missing:
            raise ConfigurationError(f"Missing config sections: {missing}")
        unknown = set(cfg) - set(cls.REQUIRED) - {"explore"}
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")
        if "target_col" not in cfg["data"]:
            raise ConfigurationError("data.target_col is required")
        return cls(**cfg)
