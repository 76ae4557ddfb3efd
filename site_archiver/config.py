# === FILE: site_archiver/config.py ===
"""
Loading and validation of the SiteArchiver capture configuration.
Pydantic describes the schema; YAML and JSON files are both accepted.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_ANALYTICS_HOSTS: tuple[str, ...] = (
    "google-analytics.com",
    "googletagmanager.com",
    "doubleclick.net",
    "googleadservices.com",
    "hotjar.io",
    "hotjar.com",
    "ahrefs.com",
    "www.google.com",
)


class TimeoutsConfig(BaseModel):
    """Waits used by the route visitor, in seconds."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    homepage_navigation: float = Field(90.0, gt=0, description="Homepage navigation timeout.")
    route_navigation: float = Field(60.0, gt=0, description="Per-route navigation timeout.")
    chart_probe: float = Field(5.0, ge=0, description="Wait for canvas/svg elements.")
    network_idle: float = Field(10.0, ge=0, description="Ceiling for the network idle wait.")
    idle_window: float = Field(2.0, ge=0, description="Quiet period counted as idle.")
    chart_settle: float = Field(0.5, ge=0, description="Delay after charts settle.")
    homepage_settle: float = Field(0.5, ge=0, description="Delay on a homepage without charts.")
    route_settle: float = Field(0.2, ge=0, description="Delay on a route without charts.")
    final: float = Field(0.0, ge=0, description="Delay after the last route, before teardown.")
    fingerprint: float = Field(10.0, gt=0, description="Homepage fetch timeout for the fingerprint.")


class ArchiverConfig(BaseModel):
    """Configuration of a single capture run."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    target_url: HttpUrl = Field(..., description="Homepage of the application to archive.")
    site_domain: Optional[str] = Field(
        None, description="Domain suffix treated as same-origin (e.g. 'lovable.app')."
    )
    max_routes: int = Field(50, ge=0, description="Upper bound on visited routes besides '/'.")
    analytics_hosts: tuple[str, ...] = Field(
        DEFAULT_ANALYTICS_HOSTS, description="Hostname fragments that are never captured."
    )
    passthrough_hosts: tuple[str, ...] = Field(
        ("google", "facebook"), description="Hostname fragments left absolute in scripts."
    )
    reserved_prefixes: tuple[str, ...] = Field(
        ("/assets", "/api"), description="Bundle string literals under these are not routes."
    )
    user_agent: str = Field(
        "SiteArchiver/1.0", min_length=1, description="User-Agent of the fingerprint fetch."
    )
    browser_user_agent: Optional[str] = Field(
        None, description="User-Agent override for the capture browser."
    )
    headless: bool = Field(True, description="Run the browser without a window.")
    scroll_step: int = Field(100, gt=0, description="Pixels per scroll step.")
    scroll_interval: float = Field(0.1, gt=0, description="Seconds between scroll steps.")
    max_scroll_steps: int = Field(500, gt=0, description="Ceiling for scroll steps per page.")
    staging_root: Optional[Path] = Field(
        None, description="Parent directory for staging folders (system temp if unset)."
    )
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @field_validator("analytics_hosts", "passthrough_hosts", mode="before")
    def _lower_hosts(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(str(h).strip().lower() for h in v if str(h).strip())
        return v

    @field_validator("site_domain", mode="before")
    def _strip_dot(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lstrip(".").lower() or None
        return v

    @field_validator("reserved_prefixes")
    def _prefixes_rooted(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        bad = [p for p in v if not p.startswith("/")]
        if bad:
            raise ValueError(f"reserved prefixes must start with '/': {bad}")
        return v

    @model_validator(mode="after")
    def _check_staging_root(self) -> ArchiverConfig:
        if self.staging_root is not None and self.staging_root.exists() and not self.staging_root.is_dir():
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(self.staging_root))
        return self

    @property
    def target_host(self) -> str:
        return (urlparse(str(self.target_url)).hostname or "").lower()


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None], **overrides: Any) -> ArchiverConfig:
    """
    Read YAML or JSON and return a validated ArchiverConfig.
    Keyword *overrides* replace file values (used by the CLI for --url etc.).
    Raises FileNotFoundError when the file is missing.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Unsupported config format: {suffix}")

    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ArchiverConfig(**data)
    except ValidationError:
        raise


__all__ = ["ArchiverConfig", "TimeoutsConfig", "DEFAULT_ANALYTICS_HOSTS", "load_config"]
