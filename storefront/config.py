"""Storefront application configuration."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from shopcore.config import AppConfig, load_env, settings_path


@dataclass
class StorefrontConfig:
    """Flask-level settings layered over the shared ``AppConfig``."""

    app: AppConfig
    secret_key: str
    project_root: Path
    settings_file: Path

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def log_level(self) -> int:
        return getattr(logging, self.app.log_level, logging.INFO)

    def read_settings(self) -> Dict[str, str]:
        if not self.settings_file.exists():
            return {}
        data = json.loads(self.settings_file.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}

    def write_settings(self, settings: Dict[str, str]) -> None:
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(
            json.dumps(settings, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> "StorefrontConfig":
        """Read ``.env``, ``data/settings.json`` and the environment."""

        project_root = project_root or Path(__file__).resolve().parent.parent
        settings_file = settings_path(project_root / "data" / "settings.json")
        app_config = load_env(settings_file)
        config = cls(
            app=app_config,
            secret_key=app_config.secret_key,
            project_root=project_root,
            settings_file=settings_file,
        )
        config.data_dir.mkdir(parents=True, exist_ok=True)
        return config
