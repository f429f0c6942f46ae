"""
Configuration: defaults, YAML file, environment, then CLI overrides.

Loading priority (later wins):
  1. Built-in defaults
  2. Project dir .tagchat.yml, else global ~/.tagchat/config.yml
  3. Environment (OLLAMA_BASE_URL / OLLAMA_HOST, OLLAMA_MODEL, OLLAMA_API_KEY,
     TAGCHAT_VERBOSE), including values from .env files
  4. Command-line flags (applied by the caller)
"""

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Dict, Callable, Any

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".tagchat"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".tagchat.yml"
DEFAULT_LOG_FILE = "~/.tagchat/logs/tagchat.log"


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    if isinstance(value, bool):
        return False, 0, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> tuple[bool, float, str]:
    """Validate number within range."""
    if isinstance(value, bool):
        return False, 0.0, "Must be a number"
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, 0.0, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_url(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip().rstrip("/")
    if not text.startswith(("http://", "https://")):
        return False, "", "Must start with http:// or https://"
    return True, text, ""


def _validate_non_empty(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip()
    if not text:
        return False, "", "Must not be empty"
    return True, text, ""


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "host": ConfigFieldSpec(
        key="host",
        field_name="host",
        description="Chat server URL (\"/v1\" is appended when missing)",
        value_type="str",
        default="http://localhost:11434",
        validator=_validate_url,
    ),
    "model": ConfigFieldSpec(
        key="model",
        field_name="model",
        description="Model name served by the host",
        value_type="str",
        default="qwen3:8b",
        validator=_validate_non_empty,
    ),
    "api-key": ConfigFieldSpec(
        key="api-key",
        field_name="api_key",
        description="Bearer token for the host, if it needs one",
        value_type="str",
        default=None,
    ),
    "temperature": ConfigFieldSpec(
        key="temperature",
        field_name="temperature",
        description="Sampling temperature",
        value_type="float",
        default=0.7,
        validator=lambda v: _validate_float_range(v, 0.0, 2.0),
    ),
    "max-tokens": ConfigFieldSpec(
        key="max-tokens",
        field_name="max_tokens",
        description="Maximum tokens per reply",
        value_type="int",
        default=4096,
        validator=lambda v: _validate_int_range(v, 1, 1_000_000),
    ),
    "max-followups": ConfigFieldSpec(
        key="max-followups",
        field_name="max_followups",
        description="Automatic requests after tool results before asking the user",
        value_type="int",
        default=10,
        validator=lambda v: _validate_int_range(v, 1, 50),
    ),
    "show-thinking": ConfigFieldSpec(
        key="show-thinking",
        field_name="show_thinking",
        description="Display <think> content",
        value_type="bool",
        default=True,
        validator=_validate_bool,
    ),
    "system-prompt-file": ConfigFieldSpec(
        key="system-prompt-file",
        field_name="system_prompt_file",
        description="System instructions file, relative to the project",
        value_type="str",
        default="docs/system.md",
    ),
    "command-timeout": ConfigFieldSpec(
        key="command-timeout",
        field_name="command_timeout",
        description="Foreground command timeout in seconds (0 = none)",
        value_type="int",
        default=0,
        validator=lambda v: _validate_int_range(v, 0, 86400),
    ),
    "max-output-chars": ConfigFieldSpec(
        key="max-output-chars",
        field_name="max_output_chars",
        description="Foreground output kept before truncation",
        value_type="int",
        default=20000,
        validator=lambda v: _validate_int_range(v, 100, 10_000_000),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Debug logging on the console",
        value_type="bool",
        default=False,
        validator=_validate_bool,
    ),
    "log-file": ConfigFieldSpec(
        key="log-file",
        field_name="log_file",
        description="Rotating debug log (empty disables file logging)",
        value_type="str",
        default=DEFAULT_LOG_FILE,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]
    if spec.validator:
        return spec.validator(value)
    if value is None:
        return True, None, ""
    return True, str(value), ""


@dataclass
class Config:
    host: str = "http://localhost:11434"
    model: str = "qwen3:8b"
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096
    max_followups: int = 10
    show_thinking: bool = True
    system_prompt_file: str = "docs/system.md"
    command_timeout: int = 0
    max_output_chars: int = 20000
    verbose: bool = False
    log_file: str = DEFAULT_LOG_FILE
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Ignoring config %s: %s", filepath, e)
            return
        if not isinstance(data, dict):
            _log.warning("Ignoring config %s: expected a mapping", filepath)
            return

        for key, value in data.items():
            spec = CONFIG_FIELDS.get(key)
            if spec is None:
                _log.warning("Unknown configuration key in %s: %s", filepath, key)
                continue
            valid, coerced, error = validate_config_value(key, value)
            if not valid:
                _log.warning("Invalid %s in %s (%s); using default %r",
                             key, filepath, error, spec.default)
                coerced = spec.default
            setattr(self, spec.field_name, coerced)

    def _apply_env(self):
        host = os.environ.get("OLLAMA_BASE_URL") or os.environ.get("OLLAMA_HOST")
        env_map = {
            "host": host,
            "model": os.environ.get("OLLAMA_MODEL"),
            "api-key": os.environ.get("OLLAMA_API_KEY"),
            "verbose": os.environ.get("TAGCHAT_VERBOSE"),
        }
        for key, val in env_map.items():
            if not val:
                continue
            valid, coerced, error = validate_config_value(key, val)
            if valid:
                setattr(self, CONFIG_FIELDS[key].field_name, coerced)
            else:
                _log.warning("Ignoring environment value for %s: %s", key, error)

    def apply_overrides(self, **overrides: Any) -> None:
        """Apply CLI flags; ``None`` means the flag was not given."""
        for name, value in overrides.items():
            if value is None:
                continue
            key = name.replace("_", "-")
            valid, coerced, error = validate_config_value(key, value)
            if not valid:
                raise ValueError(f"--{key}: {error}")
            setattr(self, CONFIG_FIELDS[key].field_name, coerced)

    @property
    def base_url(self) -> str:
        host = self.host.rstrip("/")
        return host if host.endswith("/v1") else f"{host}/v1"

    @property
    def system_prompt_path(self) -> Optional[Path]:
        if not self.system_prompt_file:
            return None
        path = Path(self.system_prompt_file).expanduser()
        if not path.is_absolute():
            path = Path(self.project_root or ".") / path
        return path

    def summary(self) -> dict:
        return {
            "Host": self.base_url,
            "Model": self.model,
            "API key": "set" if self.api_key else "not set",
            "Temperature": self.temperature,
            "Max tokens": self.max_tokens,
            "Max follow-ups": self.max_followups,
            "Thinking": "shown" if self.show_thinking else "hidden",
            "System prompt": str(self.system_prompt_path or "(built-in)"),
            "Command timeout": f"{self.command_timeout}s" if self.command_timeout else "none",
            "Max output chars": self.max_output_chars,
            "Log file": self.log_file or "off",
            "Project": self.project_root,
            "Config": self._config_source or "(defaults)",
        }

    def get_config_diff(self) -> Dict[str, Dict[str, Any]]:
        """Fields whose current value differs from the default."""
        diff = {}
        for key, spec in CONFIG_FIELDS.items():
            current = getattr(self, spec.field_name)
            if current != spec.default:
                diff[key] = {"current": current, "default": spec.default}
        return diff
