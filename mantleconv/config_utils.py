"""Helpers for configuration loading, CLI overrides and logging setup."""
from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError
from ruamel.yaml import YAML

from .errors import ConfigurationError
from .schema import Config

logger = logging.getLogger(__name__)

_KEYWORDS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "none": None,
    "null": None,
    "nan": float("nan"),
    "inf": float("inf"),
    "+inf": float("inf"),
    "-inf": float("-inf"),
}


def _parse_number(text: str) -> Any:
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            continue
    return None


def parse_override_value(raw: str) -> Any:
    """Turn the right-hand side of ``path=value`` into a Python value.

    Recognises booleans, ``none``/``null``, ``nan``/``inf``, integers, floats,
    bracketed comma-separated lists and quoted strings; anything else is
    returned as the stripped text.
    """

    text = raw.strip()
    key = text.lower()
    if key in _KEYWORDS:
        return _KEYWORDS[key]
    number = _parse_number(text)
    if number is not None:
        return number
    if text[:1] == "[" and text[-1:] == "]":
        items = [part for part in text[1:-1].split(",") if part.strip()]
        return [parse_override_value(part) for part in items]
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text


def _split_override(item: str) -> tuple[List[str], str]:
    key, sep, value = item.partition("=")
    path = [segment for segment in key.strip().split(".") if segment]
    if not sep or not path:
        raise ConfigurationError(f"Invalid override '{item}'; expected section.key=value")
    return path, value


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Set ``section.key=value`` overrides on a raw configuration mapping in place."""

    for item in overrides or ():
        path, value = _split_override(item)
        node: Any = payload
        for segment in path[:-1]:
            child = node.get(segment)
            if child is None:
                child = node[segment] = {}
            if not isinstance(child, dict):
                raise ConfigurationError(f"Override '{item}' descends into non-mapping '{segment}'")
            node = child
        node[path[-1]] = parse_override_value(value)
    return payload


def build_config(data: Optional[Dict[str, Any]], overrides: Optional[Sequence[str]] = None) -> Config:
    """Validate a raw mapping (plus overrides) into a :class:`Config`.

    Pydantic validation failures are re-raised as
    :class:`~mantleconv.errors.ConfigurationError`.
    """

    payload: Dict[str, Any] = {} if data is None else data
    if not isinstance(payload, dict):
        raise ConfigurationError("Configuration root must be a mapping")
    payload = apply_overrides_dict(payload, overrides or ())
    try:
        return Config(**payload)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_config(path: Optional[Path], overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance.

    ``path=None`` starts from the built-in reference configuration.
    """

    if path is None:
        return build_config({}, overrides)
    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    if not source_path.exists():
        raise ConfigurationError(f"Configuration file not found: {source_path}")
    with source_path.open("r", encoding="utf-8") as fh:
        data = yaml.load(fh)
    logger.debug("load_config: %s (%d overrides)", source_path, len(overrides or ()))
    return build_config(data, overrides)


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Configure root logging and optionally silence Python warnings."""

    logging.basicConfig(level=level)
    root = logging.getLogger()
    root.setLevel(level)
    if suppress_warnings:
        warnings.filterwarnings("ignore")
    logging.captureWarnings(True)


__all__ = [
    "parse_override_value",
    "apply_overrides_dict",
    "build_config",
    "load_config",
    "configure_logging",
]
