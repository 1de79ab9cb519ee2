"""Configuration loading and defaults."""

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class Config:
    """Application configuration with defaults."""

    rows_per_page: int = 10
    page_window: int = 1
    max_concurrent_decrypts: int = 32
    export_basename: str = "exported-data"
    export_sheet_name: str = "Sheet1"
    csv_delimiter: str = ","
    export_directory: str = "~"
    log_level: str = "WARNING"

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from JSON file, falling back to defaults.

        Search order:
        1. Explicit path (if given)
        2. ./config.json (working directory)
        3. ~/.config/pii-decryptor/config.json
        4. Defaults
        """
        search_paths = []
        if config_path:
            search_paths.append(config_path)
        search_paths.extend(
            [
                "config.json",
                str(Path.home() / ".config" / "pii-decryptor" / "config.json"),
            ]
        )

        for path in search_paths:
            if os.path.isfile(path):
                try:
                    with open(path) as f:
                        data = json.load(f)
                    config = cls(
                        **{k: v for k, v in data.items() if k in cls.__dataclass_fields__}
                    )
                except (json.JSONDecodeError, TypeError, AttributeError):
                    continue
                config.export_directory = os.path.expanduser(config.export_directory)
                return config

        config = cls()
        config.export_directory = os.path.expanduser(config.export_directory)
        return config
