"""
Persistent provider preferences, stored as JSON in the user's home directory.
"""
import json
import os
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from core.errors import PreferenceError
from core.logging import logger

PREFERENCES_VERSION = "1.0"
DEFAULT_PREFERENCES_PATH = Path.home() / ".telos" / "llm-config.json"
KNOWN_PROVIDERS = ("ollama", "claude", "openai", "custom", "rule_based")


class Preferences(BaseModel):
    default_provider: str = ""
    provider_settings: Dict[str, str] = Field(default_factory=dict)
    version: str = PREFERENCES_VERSION


class PreferenceStore:
    """
    Reads and writes the preference file. Every mutating call loads the
    current file, applies the change and saves it back.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else DEFAULT_PREFERENCES_PATH

    def load(self) -> Preferences:
        if not self.path.exists():
            return Preferences()
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
            prefs = Preferences.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            raise PreferenceError(f"failed to read preference file {self.path}: {e}") from e
        if not prefs.version:
            prefs.version = PREFERENCES_VERSION
        return prefs

    def save(self, prefs: Preferences) -> None:
        prefs.version = PREFERENCES_VERSION
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(prefs.model_dump_json(indent=2))
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise PreferenceError(f"failed to write preference file {self.path}: {e}") from e
        logger.debug(f"Saved provider preferences to {self.path}")

    # --- Default provider ---

    def set_default_provider(self, name: str) -> None:
        prefs = self.load()
        prefs.default_provider = name
        self.save(prefs)

    def get_default_provider(self) -> str:
        return self.load().default_provider

    def clear_default_provider(self) -> None:
        self.set_default_provider("")

    # --- Provider-specific settings ---

    def set_provider_setting(self, provider: str, key: str, value: str) -> None:
        prefs = self.load()
        prefs.provider_settings[f"{provider}.{key}"] = value
        self.save(prefs)

    def get_provider_setting(self, provider: str, key: str) -> str:
        setting_key = f"{provider}.{key}"
        try:
            return self.load().provider_settings[setting_key]
        except KeyError:
            raise PreferenceError(f"setting not found: {setting_key}") from None

    def get_provider_settings(self, provider: str) -> Dict[str, str]:
        prefix = f"{provider}."
        return {
            k[len(prefix):]: v
            for k, v in self.load().provider_settings.items()
            if k.startswith(prefix)
        }

    # --- Maintenance ---

    @staticmethod
    def validate(prefs: Preferences, known_providers: Iterable[str] = KNOWN_PROVIDERS) -> None:
        if prefs.version != PREFERENCES_VERSION:
            raise PreferenceError(
                f"unsupported preference version: {prefs.version} (expected: {PREFERENCES_VERSION})"
            )
        if prefs.default_provider and prefs.default_provider not in set(known_providers):
            raise PreferenceError(f"invalid default provider: {prefs.default_provider}")

    def reset(self) -> None:
        """Delete the preference file; a missing file is already reset."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PreferenceError(f"failed to remove preference file {self.path}: {e}") from e

    def summary(self) -> str:
        prefs = self.load()
        lines = ["LLM Configuration", "-" * 40]
        if prefs.default_provider:
            lines.append(f"Default Provider: {prefs.default_provider}")
        else:
            lines.append("Default Provider: (not set - using automatic selection)")
        if prefs.provider_settings:
            lines.append("")
            lines.append("Provider Settings:")
            for key in sorted(prefs.provider_settings):
                lines.append(f"  {key}: {prefs.provider_settings[key]}")
        lines.append("")
        lines.append(f"Config Version: {prefs.version}")
        lines.append(f"Config Path: {self.path}")
        return "\n".join(lines)
