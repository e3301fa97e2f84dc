import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "server_path": None,  # path to the Augment server.js; required unless given via env
    "node_binary": "node",
    "ignore": [],  # extra glob patterns on top of the defaults and .bugmentignore
    "use_default_ignores": True,
    "rules_dir": ".augment/rules",
    "prompt": None,  # None = built-in prompt.md; set to a path string to override
    "sync_max_attempts": 300,
    "sync_interval": 1.0,
    "startup_retries": 5,
    "startup_min_backoff": 2.0,
    "startup_max_backoff": 10.0,
    "startup_timeout": 120.0,
    "request_timeout": 180.0,
    "history": True,  # read prior runs from the PR's review bodies
    "cleanup_history": True,  # dismiss/minimize earlier Bugment reviews before posting
}

_BUILTIN_PROMPT = Path(__file__).parent / "prompt.md"


def _env(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def load_config(config_path: str = ".bugment.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .bugment.yml in the current directory
      3. CLI argument overrides

    Credentials always come from the environment. GitHub Actions exposes
    action inputs as INPUT_<NAME>; those win over the plain variables.
    """
    config = {**DEFAULT_CONFIG, "ignore": list(DEFAULT_CONFIG["ignore"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["github_token"] = _env("INPUT_GITHUB_TOKEN", "GITHUB_TOKEN")
    config["augment_access_token"] = _env("INPUT_AUGMENT_ACCESS_TOKEN", "AUGMENT_ACCESS_TOKEN")
    config["augment_tenant_url"] = _env("INPUT_AUGMENT_TENANT_URL", "AUGMENT_TENANT_URL")
    config["server_path"] = _env("INPUT_SERVER_PATH", "BUGMENT_SERVER_PATH") or config.get("server_path")
    config.setdefault("workspace", os.environ.get("GITHUB_WORKSPACE") or os.getcwd())
    config.setdefault("checkout_sha", os.environ.get("GITHUB_SHA"))

    return config


def load_prompt_template(config: dict) -> str:
    """
    Load the review prompt template.

    If ``prompt`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in template.
    """
    custom_path = config.get("prompt")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Prompt template not found: {custom_path}")
        return p.read_text(encoding="utf-8")

    if _BUILTIN_PROMPT.exists():
        return _BUILTIN_PROMPT.read_text(encoding="utf-8")

    raise FileNotFoundError("No prompt configured and built-in prompt.md is missing.")
