"""
Configuration management for the Project Downloader.

Provides centralized configuration for every acquisition component,
resolved once at process start from defaults, a JSON file, or the
environment (optionally seeded from a .env file).
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


@dataclass
class GitConfig:
    """Configuration for the git client."""

    # Executable used for clone, pull and checkout
    executable: str = "git"

    # Timeout for a single git invocation (seconds)
    timeout: int = 300

    # Clone submodules as well
    recursive: bool = True

    # Hosting providers whose tokens need the oauth2: user prefix
    oauth_providers: List[str] = field(default_factory=lambda: ["gitlab"])


@dataclass
class ArchiveConfig:
    """Configuration for archive location and extraction."""

    # Mode for directories created during extraction
    directory_mode: int = 0o755

    # Mode for files whose entry carries no permission bits
    default_file_mode: int = 0o644

    # Top-level directories of the upload root that never hold uploads
    reserved_directories: List[str] = field(default_factory=lambda: ["projects"])


@dataclass
class DownloaderConfig:
    """Master configuration combining all component configurations."""

    git: GitConfig = field(default_factory=GitConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)

    # Root for both uploaded archives and materialized trees
    download_root: str = "/private"

    # Ref used when a project has neither commit nor branch
    default_ref: str = "main"

    # Enable verbose logging
    verbose: bool = False

    log_level: str = "INFO"

    # JSON document backing the local metadata store
    metadata_store_path: str = "./data/store.json"

    # JSON-lines file receiving result messages
    results_path: str = "./data/results.jsonl"


class Config:
    """
    Central configuration manager providing access to all settings.

    Supports loading from environment variables and configuration files.
    """

    _instance: Optional["Config"] = None
    _config: DownloaderConfig = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._config = DownloaderConfig()
        return cls._instance

    @classmethod
    def get(cls) -> DownloaderConfig:
        """Get the current downloader configuration."""
        if cls._instance is None:
            cls()
        return cls._instance._config

    @classmethod
    def reset(cls) -> DownloaderConfig:
        """Discard any loaded settings and return fresh defaults."""
        instance = cls()
        instance._config = DownloaderConfig()
        return instance._config

    @classmethod
    def load_from_file(cls, config_path: str) -> DownloaderConfig:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file.

        Returns:
            Loaded DownloaderConfig instance.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r") as f:
            data = json.load(f)

        instance = cls()
        instance._config = cls._dict_to_config(data)
        return instance._config

    @classmethod
    def load_from_env(cls, env_file: Optional[str] = None) -> DownloaderConfig:
        """
        Load configuration from environment variables.

        A .env file is read first (the given one, or one found by
        python-dotenv's search) without overriding variables already set.

        Args:
            env_file: Optional explicit .env path.

        Returns:
            DownloaderConfig with environment overrides applied.
        """
        if env_file:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        instance = cls()
        config = instance._config

        if os.getenv("DOWNLOAD_PATH"):
            config.download_root = os.getenv("DOWNLOAD_PATH")

        if os.getenv("DOWNLOADER_DEFAULT_REF"):
            config.default_ref = os.getenv("DOWNLOADER_DEFAULT_REF")

        if os.getenv("DOWNLOADER_GIT_EXECUTABLE"):
            config.git.executable = os.getenv("DOWNLOADER_GIT_EXECUTABLE")

        if os.getenv("DOWNLOADER_GIT_TIMEOUT"):
            config.git.timeout = int(os.getenv("DOWNLOADER_GIT_TIMEOUT"))

        if os.getenv("DOWNLOADER_OAUTH_PROVIDERS"):
            config.git.oauth_providers = [
                p.strip()
                for p in os.getenv("DOWNLOADER_OAUTH_PROVIDERS").split(",")
                if p.strip()
            ]

        if os.getenv("DOWNLOADER_METADATA_STORE"):
            config.metadata_store_path = os.getenv("DOWNLOADER_METADATA_STORE")

        if os.getenv("DOWNLOADER_RESULTS_PATH"):
            config.results_path = os.getenv("DOWNLOADER_RESULTS_PATH")

        if os.getenv("DOWNLOADER_VERBOSE"):
            config.verbose = os.getenv("DOWNLOADER_VERBOSE").lower() in ("true", "1", "yes")

        return config

    @staticmethod
    def _dict_to_config(data: dict) -> DownloaderConfig:
        """Convert a dictionary to DownloaderConfig."""
        config = DownloaderConfig()

        if "git" in data:
            config.git = GitConfig(**data["git"])

        if "archive" in data:
            config.archive = ArchiveConfig(**data["archive"])

        for key in (
            "download_root",
            "default_ref",
            "verbose",
            "log_level",
            "metadata_store_path",
            "results_path",
        ):
            if key in data:
                setattr(config, key, data[key])

        return config

    @classmethod
    def save_to_file(cls, config_path: str) -> None:
        """
        Save current configuration to a JSON file.

        Args:
            config_path: Path to save the configuration file.
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        config = cls.get()
        data = cls._config_to_dict(config)

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def _config_to_dict(config: DownloaderConfig) -> dict:
        """Convert DownloaderConfig to a dictionary."""
        return {
            "git": {
                "executable": config.git.executable,
                "timeout": config.git.timeout,
                "recursive": config.git.recursive,
                "oauth_providers": config.git.oauth_providers,
            },
            "archive": {
                "directory_mode": config.archive.directory_mode,
                "default_file_mode": config.archive.default_file_mode,
                "reserved_directories": config.archive.reserved_directories,
            },
            "download_root": config.download_root,
            "default_ref": config.default_ref,
            "verbose": config.verbose,
            "log_level": config.log_level,
            "metadata_store_path": config.metadata_store_path,
            "results_path": config.results_path,
        }
