"""smartalt configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (SMARTALT_AI_KEY, SMARTALT_AI_ENDPOINT, SMARTALT_ALT_SOURCE)
  3. Per-project smartalt.yaml  (next to .smartalt.db)
  4. Global ~/.smartalt/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

The loaded configuration is immutable and is passed explicitly through the
pipeline; nothing below the CLI looks settings up on its own.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import json
import os
import re
import warnings
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from smartalt.errors import ConfigError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".smartalt"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "smartalt.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s) and a bare "key".
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|^key$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "enabled",
        "alt_source",
        "injection_method",
        "max_alt_length",
        "force_update",
        "cache",
        "bulk",
        "logging",
        "ai",
    ]
)

_JSON_PATH_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_.\[\]]+$")

ALT_SOURCES: tuple[str, ...] = ("heuristic", "ai")
INJECTION_METHODS: tuple[str, ...] = ("server_buffer", "client_script")
BULK_SCOPES: tuple[str, ...] = ("all", "attached_only", "attached_products")
LOG_LEVELS: tuple[str, ...] = ("debug", "info", "error")

# Older settings stores used the title-based source name.
_ALT_SOURCE_ALIASES: dict[str, str] = {"post_title": "heuristic"}

DEFAULT_REQUEST_TEMPLATE: str = (
    "{\n"
    '  "task": "Write concise, descriptive alt text for each image on this page.",\n'
    '  "image_count": {image_count},\n'
    '  "max_length": {max_length},\n'
    '  "page": {"title": "{post_title}", "excerpt": "{post_excerpt}", "content": "{post_content}"},\n'
    '  "images": {images_json},\n'
    '  "response_format": "Return JSON {\\"alts\\": {\\"<image url>\\": \\"<alt text>\\"}}"\n'
    "}"
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheCfg:
    """AI result caching (smartalt.yaml: cache:)."""

    ai_results: bool = True
    ai_ttl_days: int = 90


@dataclass(frozen=True)
class BulkCfg:
    """Bulk / scheduled processing (smartalt.yaml: bulk:)."""

    batch_size: int = 50
    scope: str = "attached_only"


@dataclass(frozen=True)
class LoggingCfg:
    """Change-log settings (smartalt.yaml: logging:).

    Attributes:
        enabled: When False, ``ChangeLog.record()`` is a no-op.
        level: Minimum severity written to the change log.
        retention_days: Entries older than this are removed by ``prune``.
    """

    enabled: bool = True
    level: str = "info"
    retention_days: int = 30


@dataclass(frozen=True)
class AiCfg:
    """Remote AI provider settings (smartalt.yaml: ai:).

    Attributes:
        endpoint: HTTP(S) URL of the provider. Empty means "not configured".
        method: GET or POST.
        headers: Extra request headers merged over ``Content-Type: application/json``.
        key: Bearer token. ``SMARTALT_AI_KEY`` in the environment wins.
        auth_header: Header name that carries ``Bearer <key>``.
        request_template: Body template with ``{placeholder}`` substitution.
        response_path: Dot-notation path into the JSON reply (``choices[0].message.content``).
        model_name: Recorded with every AI-sourced change.
        timeout: Per-request timeout in seconds.
    """

    endpoint: str = ""
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    key: str = field(default="", repr=False)
    auth_header: str = "Authorization"
    request_template: str = DEFAULT_REQUEST_TEMPLATE
    response_path: str = "alts"
    model_name: str = "generic_http"
    timeout: float = 15.0


@dataclass(frozen=True)
class SmartAltConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    enabled: bool = True
    alt_source: str = "heuristic"
    injection_method: str = "server_buffer"
    max_alt_length: int = 125
    force_update: bool = False
    cache: CacheCfg = field(default_factory=CacheCfg)
    bulk: BulkCfg = field(default_factory=BulkCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)
    ai: AiCfg = field(default_factory=AiCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _clamp(value: Any, low: int, high: int, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from exc
    return max(low, min(high, number))


def _choice(value: Any, choices: tuple[str, ...], name: str) -> str:
    text = str(value).strip().lower()
    if text not in choices:
        raise ConfigError(
            f"'{name}' must be one of {', '.join(choices)}; got {value!r}"
        )
    return text


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_headers(raw: Any) -> dict[str, str]:
    """Return custom headers from a mapping or a JSON object string.

    Raises:
        ConfigError: If *raw* is not a JSON object of string → string.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"ai.headers is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("ai.headers must be a JSON object of header → value.")
    for k, v in raw.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ConfigError(
                f"ai.headers values must be strings; '{k}' has {type(v).__name__}."
            )
    return dict(raw)


def validate_endpoint(url: str) -> str:
    """Return *url* stripped, or raise ConfigError if it is not http(s)."""
    url = url.strip()
    if url and not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigError(
            f"ai.endpoint must be an http:// or https:// URL, got '{url}'"
        )
    return url


def validate_response_path(path: str) -> str:
    path = path.strip()
    if not _JSON_PATH_RE.match(path):
        raise ConfigError(
            f"ai.response_path '{path}' may only contain letters, digits, '_', '.', '[' and ']'."
        )
    return path


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names.

    Global config must never store credentials; they belong in env vars.
    """

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export SMARTALT_AI_KEY=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _normalise_alt_source(value: Any) -> str:
    text = str(value).strip().lower()
    return _choice(_ALT_SOURCE_ALIASES.get(text, text), ALT_SOURCES, "alt_source")


def _normalise_method(value: Any) -> str:
    method = str(value).strip().upper()
    return method if method in ("GET", "POST") else "POST"


def config_from_dict(data: dict[str, Any]) -> SmartAltConfig:
    """Build a validated *SmartAltConfig* from a merged raw YAML dict."""
    defaults = SmartAltConfig()

    c = data.get("cache") or {}
    cache = CacheCfg(
        ai_results=_bool(c.get("ai_results", defaults.cache.ai_results)),
        ai_ttl_days=_clamp(c.get("ai_ttl_days", defaults.cache.ai_ttl_days), 1, 365, "cache.ai_ttl_days"),
    )

    b = data.get("bulk") or {}
    bulk = BulkCfg(
        batch_size=_clamp(b.get("batch_size", defaults.bulk.batch_size), 10, 500, "bulk.batch_size"),
        scope=_choice(b.get("scope", defaults.bulk.scope), BULK_SCOPES, "bulk.scope"),
    )

    lg = data.get("logging") or {}
    logging_cfg = LoggingCfg(
        enabled=_bool(lg.get("enabled", defaults.logging.enabled)),
        level=_choice(lg.get("level", defaults.logging.level), LOG_LEVELS, "logging.level"),
        retention_days=_clamp(
            lg.get("retention_days", defaults.logging.retention_days), 7, 365, "logging.retention_days"
        ),
    )

    a = data.get("ai") or {}
    ai = AiCfg(
        endpoint=validate_endpoint(str(a.get("endpoint") or "")),
        method=_normalise_method(a.get("method", defaults.ai.method)),
        headers=parse_headers(a.get("headers")),
        key=str(a.get("key") or ""),
        auth_header=str(a.get("auth_header") or defaults.ai.auth_header),
        request_template=str(a.get("request_template") or defaults.ai.request_template),
        response_path=validate_response_path(str(a.get("response_path") or defaults.ai.response_path)),
        model_name=str(a.get("model_name") or defaults.ai.model_name),
        timeout=float(a.get("timeout", defaults.ai.timeout)),
    )

    return SmartAltConfig(
        enabled=_bool(data.get("enabled", defaults.enabled)),
        alt_source=_normalise_alt_source(data.get("alt_source", defaults.alt_source)),
        injection_method=_choice(
            data.get("injection_method", defaults.injection_method), INJECTION_METHODS, "injection_method"
        ),
        max_alt_length=_clamp(data.get("max_alt_length", defaults.max_alt_length), 50, 500, "max_alt_length"),
        force_update=_bool(data.get("force_update", defaults.force_update)),
        cache=cache,
        bulk=bulk,
        logging=logging_cfg,
        ai=ai,
    )


def _apply_env_overrides(cfg: SmartAltConfig) -> SmartAltConfig:
    """Apply SMARTALT_* environment variable overrides (layer 2)."""
    ai = cfg.ai
    if key := os.environ.get("SMARTALT_AI_KEY"):
        ai = replace(ai, key=key)
    if endpoint := os.environ.get("SMARTALT_AI_ENDPOINT"):
        ai = replace(ai, endpoint=validate_endpoint(endpoint))
    cfg = replace(cfg, ai=ai)
    if source := os.environ.get("SMARTALT_ALT_SOURCE"):
        cfg = replace(cfg, alt_source=_normalise_alt_source(source))
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> SmartAltConfig:
    """Load and return a merged *SmartAltConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *smartalt.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *SmartAltConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or if any
            value fails validation (bad enum, invalid headers JSON, bad URL).
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = config_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.smartalt/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# smartalt global configuration: defaults only.\n"
            "# NEVER store API keys here; use the environment:\n"
            "#   export SMARTALT_AI_KEY=...\n"
            "\n"
            "max_alt_length: 125\n"
            "logging:\n"
            "  level: info\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target


def write_project_config(project_dir: Path) -> Path:
    """Write a commented starter ``smartalt.yaml`` into *project_dir*."""
    target = project_dir / PROJECT_CONFIG_NAME
    content = (
        "enabled: true\n"
        "alt_source: heuristic        # heuristic | ai\n"
        "injection_method: server_buffer\n"
        "max_alt_length: 125\n"
        "force_update: false\n"
        "\n"
        "cache:\n"
        "  ai_results: true\n"
        "  ai_ttl_days: 90\n"
        "\n"
        "bulk:\n"
        "  batch_size: 50\n"
        "  scope: attached_only      # all | attached_only | attached_products\n"
        "\n"
        "logging:\n"
        "  enabled: true\n"
        "  level: info               # debug | info | error\n"
        "  retention_days: 30\n"
        "\n"
        "# ai:\n"
        "#   endpoint: https://example.com/v1/alt-text\n"
        "#   method: POST\n"
        "#   headers: {}\n"
        "#   response_path: alts\n"
        "#   model_name: generic_http\n"
        "#   (set the key with: export SMARTALT_AI_KEY=...)\n"
    )
    target.write_text(content, encoding="utf-8")
    return target
