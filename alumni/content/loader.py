"""
Content loader

Loads the YAML content files in this directory (homepage copy, default A/B
tests) with caching, dotted-key lookup and optional hot reload.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

import yaml
from loguru import logger

from alumni.core.config import settings


class ContentLoader:
    """
    YAML content loader.

    Values are returned as deep copies so callers can personalise them
    without touching the cached originals.
    """

    def __init__(self, base_path: Path | str | None = None, hot_reload: bool = False):
        if base_path is None:
            base_path = Path(__file__).parent
        self.base_path = Path(base_path)
        self.hot_reload = hot_reload
        self._cache: Dict[str, Dict[str, Any]] = {}

    def load(self, name: str) -> Dict[str, Any]:
        """
        Load <name>.yaml.

        Raises:
            FileNotFoundError: the file does not exist
            yaml.YAMLError: the file does not parse
        """
        if not self.hot_reload and name in self._cache:
            return self._cache[name]

        file_path = self.base_path / f"{name}.yaml"
        if not file_path.exists():
            raise FileNotFoundError(f"Content file not found: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            self._cache[name] = data
            return data
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML {}: {}", file_path, e)
            raise

    def get(self, name: str, key: str | None = None, default: Any = KeyError) -> Any:
        """
        Look up a dotted key, e.g. get("homepage", "hero.individual").

        Without a default a missing key raises KeyError.
        """
        value: Any = self.load(name)
        if key is not None:
            for part in key.split("."):
                if not isinstance(value, dict) or part not in value:
                    if default is KeyError:
                        raise KeyError(f"Content key not found: {name}.{key}")
                    return default
                value = value[part]
        return copy.deepcopy(value)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Content cache cleared")


_loader: ContentLoader | None = None


def get_content_loader() -> ContentLoader:
    global _loader
    if _loader is None:
        _loader = ContentLoader(hot_reload=settings.is_development)
    return _loader


def get_content(name: str, key: str | None = None, default: Any = KeyError) -> Any:
    """
    Example:
        >>> hero = get_content("homepage", "hero.institutional")
    """
    return get_content_loader().get(name, key, default)
