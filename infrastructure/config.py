"""
DOCFLOW CONFIG - Layered Runtime Configuration

Configuration is resolved once at startup into an immutable DocflowConfig:

    built-in defaults
      < config/docflow.toml          (shipped with the project)
      < ~/.docflow/config.toml       (or the file named by DOCFLOW_CONFIG)
      < environment variables

Usage:
    from infrastructure.config import load_config

    config = load_config()
    backend = create_backend(config.provider, config.model, dry_run=config.dry_run)
"""
import os
import warnings
from pathlib import Path
from typing import Optional, Dict, Any, Mapping

import msgspec


PROJECT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "docflow.toml"
USER_CONFIG_PATH = Path.home() / ".docflow" / "config.toml"
DEFAULT_SESSIONS_DIR = str(Path.home() / ".docflow" / "sessions")

# First non-empty wins
CONVEX_URL_ENV = (
    "CONVEX_URL",
    "NEXT_PUBLIC_CONVEX_URL",
    "EXPO_PUBLIC_CONVEX_URL",
    "DOCFLOW_CONVEX_ADMIN_URL",
)

_TRUTHY = {"1", "true", "yes", "y"}


def truthy(value: Optional[str]) -> bool:
    """Parse a boolean flag the way the CLI always has: 1/true/yes/y."""
    return str(value or "").strip().lower() in _TRUTHY


class DocflowConfig(msgspec.Struct, kw_only=True, frozen=True):
    """Resolved configuration. API keys are held but never printed."""
    provider: str = "local"
    model: str = ""
    temperature: float = 0.2
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    dry_run: bool = False

    max_turns: int = 12
    history_window: int = 8

    store: str = ""                     # "file" | "convex" | "memory" | "" (auto)
    sessions_dir: str = DEFAULT_SESSIONS_DIR
    convex_url: Optional[str] = None
    use_convex_ai: bool = False

    tool_timeout: float = 30.0
    tavily_api_key: Optional[str] = None

    log_level: str = "WARNING"
    log_dir: Optional[str] = None

    @property
    def api_key(self) -> Optional[str]:
        """Key for the configured provider."""
        if self.provider == "openai":
            return self.openai_api_key
        if self.provider == "anthropic":
            return self.anthropic_api_key
        return None

    @property
    def store_backend(self) -> str:
        """Explicit store choice, else convex when a URL is known, else file."""
        if self.store:
            return self.store
        return "convex" if self.convex_url else "file"


# =============================================================================
# LOADERS
# =============================================================================

def load_toml_config(path: Path) -> Dict[str, Any]:
    """
    Load a TOML file.

    Returns:
        Dict with all configuration sections ({} when absent or unreadable)
    """
    if not path.exists():
        return {}
    try:
        import tomllib

        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        warnings.warn(f"Failed to load config from TOML ({path}): {e}")
        return {}


def _flatten(sections: Dict[str, Any]) -> Dict[str, Any]:
    """Map TOML sections onto DocflowConfig field names."""
    ai = sections.get("ai", {})
    conversation = sections.get("conversation", {})
    store = sections.get("store", {})
    tools = sections.get("tools", {})
    logging_section = sections.get("logging", {})

    flat = {
        "provider": ai.get("provider"),
        "model": ai.get("model"),
        "temperature": ai.get("temperature"),
        "max_turns": conversation.get("max_turns"),
        "history_window": conversation.get("history_window"),
        "store": store.get("backend"),
        "sessions_dir": store.get("sessions_dir"),
        "convex_url": store.get("convex_url"),
        "tool_timeout": tools.get("timeout"),
        "log_level": logging_section.get("level"),
        "log_dir": logging_section.get("log_dir"),
    }
    return {k: v for k, v in flat.items() if v is not None and v != ""}


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    def get(name: str) -> str:
        return str(env.get(name, "") or "").strip()

    overrides: Dict[str, Any] = {}

    provider = get("AI_PROVIDER").lower()
    if provider:
        overrides["provider"] = provider
    if get("AI_MODEL"):
        overrides["model"] = get("AI_MODEL")
    if get("AI_TEMPERATURE"):
        try:
            overrides["temperature"] = float(get("AI_TEMPERATURE"))
        except ValueError:
            warnings.warn(f"Ignoring non-numeric AI_TEMPERATURE={get('AI_TEMPERATURE')!r}")

    for name, field in (("OPENAI_API_KEY", "openai_api_key"),
                        ("ANTHROPIC_API_KEY", "anthropic_api_key"),
                        ("TAVILY_API_KEY", "tavily_api_key")):
        if get(name):
            overrides[field] = get(name)

    if truthy(get("AI_DRY_RUN")):
        overrides["dry_run"] = True

    for name, field, cast in (("DOCFLOW_MAX_TURNS", "max_turns", int),
                              ("DOCFLOW_HISTORY_WINDOW", "history_window", int),
                              ("DOCFLOW_TOOL_TIMEOUT", "tool_timeout", float)):
        if get(name):
            try:
                overrides[field] = cast(get(name))
            except ValueError:
                warnings.warn(f"Ignoring invalid {name}={get(name)!r}")

    if get("DOCFLOW_SESSIONS_DIR"):
        overrides["sessions_dir"] = get("DOCFLOW_SESSIONS_DIR")
    if get("DOCFLOW_STORE"):
        overrides["store"] = get("DOCFLOW_STORE").lower()

    for name in CONVEX_URL_ENV:
        if get(name):
            overrides["convex_url"] = get(name)
            break

    # The relay flag is an exact "1", unlike the other booleans
    if get("DOCFLOW_USE_CONVEX_AI") == "1":
        overrides["use_convex_ai"] = True

    if get("DOCFLOW_LOG_LEVEL"):
        overrides["log_level"] = get("DOCFLOW_LOG_LEVEL").upper()
    if get("DOCFLOW_LOG_DIR"):
        overrides["log_dir"] = get("DOCFLOW_LOG_DIR")

    return overrides


def load_config(
    env: Optional[Mapping[str, str]] = None,
    project_path: Optional[Path] = None,
    user_path: Optional[Path] = None,
    **overrides: Any,
) -> DocflowConfig:
    """
    Resolve the layered configuration.

    Args:
        env: Environment mapping (os.environ by default)
        project_path: Project TOML (config/docflow.toml by default)
        user_path: User TOML (DOCFLOW_CONFIG or ~/.docflow/config.toml by default)
        **overrides: Final overrides, e.g. from CLI flags (None values ignored)

    Returns:
        DocflowConfig
    """
    env = os.environ if env is None else env
    if user_path is None:
        user_path = Path(env["DOCFLOW_CONFIG"]) if env.get("DOCFLOW_CONFIG") else USER_CONFIG_PATH

    values: Dict[str, Any] = {}
    values.update(_flatten(load_toml_config(project_path or PROJECT_CONFIG_PATH)))
    values.update(_flatten(load_toml_config(user_path)))
    values.update(_env_overrides(env))
    values.update({k: v for k, v in overrides.items() if v is not None})

    if "sessions_dir" in values:
        values["sessions_dir"] = str(Path(values["sessions_dir"]).expanduser())

    try:
        return msgspec.convert(values, type=DocflowConfig)
    except msgspec.ValidationError as e:
        warnings.warn(f"Invalid configuration, using defaults: {e}")
        return DocflowConfig()
