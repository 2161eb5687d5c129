"""Configuration loading helpers for news-agent."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable

import yaml

from .models import AppConfig, Source

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_BASENAME = "config"
CONFIG_ENV_VAR = "NEWS_AGENT_CONFIG"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


class ConfigRepository:
    """Locate, read and validate the YAML configuration.

    Without an explicit path the repository honours ``NEWS_AGENT_CONFIG`` and
    then looks for ``config.yaml`` in the working directory and ``./configs``.
    """

    def __init__(self, search_dirs: Iterable[Path] | None = None) -> None:
        if search_dirs is None:
            search_dirs = (Path.cwd(), Path.cwd() / "configs")
        self.search_dirs = [Path(directory) for directory in search_dirs]

    def candidates(self) -> list[Path]:
        return [
            directory / f"{CONFIG_BASENAME}{extension}"
            for directory in self.search_dirs
            for extension in CONFIG_EXTENSIONS
        ]

    def resolve(self, path: str | Path | None = None) -> Path:
        if path:
            explicit = Path(path).expanduser()
            if not explicit.exists():
                raise FileNotFoundError(f"Config file not found: {explicit}")
            return explicit
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return self.resolve(env_path)
        for candidate in self.candidates():
            if candidate.exists():
                return candidate
        searched = ", ".join(str(directory) for directory in self.search_dirs)
        raise FileNotFoundError(f"No config.yaml found in: {searched}")

    def load(self, path: str | Path | None = None) -> AppConfig:
        resolved = self.resolve(path)
        return AppConfig.model_validate(_read_file(resolved))

    def add_source(self, source: Source, path: str | Path | None = None) -> Path:
        """Append ``source`` to the resolved config file.

        Other keys stay as written; the result is validated before it is saved,
        so a duplicate name leaves the file untouched.
        """

        resolved = self.resolve(path)
        payload = _read_file(resolved)
        payload["sources"] = [*(payload.get("sources") or []), source.model_dump(mode="json")]
        AppConfig.model_validate(payload)
        _write_file(resolved, payload)
        return resolved


__all__ = ["CONFIG_ENV_VAR", "CONFIG_EXTENSIONS", "ConfigRepository"]
