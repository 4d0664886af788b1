"""
Configuration for the icesink.io module.

Defines SinkSettings, a frozen dataclass carrying runtime configuration for the table
sink: catalog binding, storage prefix, commit cadence, per-call timeouts, Parquet
options, and retry behavior. Defaults are sourced from icesink.core.constants.

Source of truth
- icesink.core.constants.COMMIT_INTERVAL_SECONDS, OPERATION_TIMEOUT_SECONDS,
  ROW_GROUP_SIZE, COMPRESSION, DEFAULT_NAMESPACE, DEFAULT_PREFIX

Import DAG discipline
- Depends only on stdlib, icesink.core.constants, and icesink.io.errors.

Notes
- Loader precedence: env > TOML > defaults.
- Mapping-valued settings (catalog_properties, snapshot_properties) are taken from TOML,
  or from env as JSON objects.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

try:  # Python 3.11+ stdlib TOML parser
    import tomllib  # type: ignore
except Exception:  # pragma: no cover - environments without tomllib
    tomllib = None  # type: ignore[assignment]

from icesink.core.constants import COMMIT_INTERVAL_SECONDS as CORE_COMMIT_INTERVAL
from icesink.core.constants import COMPRESSION as CORE_COMPRESSION
from icesink.core.constants import DEFAULT_NAMESPACE as CORE_DEFAULT_NAMESPACE
from icesink.core.constants import DEFAULT_PREFIX as CORE_DEFAULT_PREFIX
from icesink.core.constants import OPERATION_TIMEOUT_SECONDS as CORE_OPERATION_TIMEOUT
from icesink.core.constants import ROW_GROUP_SIZE as CORE_ROW_GROUP_SIZE

from .errors import IoConfigError

CatalogType = Literal["rest", "glue", "local"]
Compression = Literal["zstd", "snappy", "lz4", "gzip", "none"]

_CATALOG_TYPES = ("rest", "glue", "local")
_COMPRESSIONS = ("zstd", "snappy", "lz4", "gzip", "none")


@dataclass(frozen=True)
class RetrySettings:
    """Exponential backoff parameters used around file writes and (optionally) commits.

    Notes:
        - max_elapsed_seconds None means no cap beyond the caller's deadline.
        - retry_commits wraps transaction commits as well as file writes.
    """

    initial_interval_seconds: float = 0.5
    multiplier: float = 1.5
    max_interval_seconds: float = 60.0
    randomization_factor: float = 0.5
    max_elapsed_seconds: float | None = None
    retry_commits: bool = False


@dataclass(frozen=True)
class SinkSettings:
    """
    Runtime settings for the icesink table sink.

    Attributes:
        catalog_type (Literal["rest","glue","local"]): Catalog adapter to bind.
        catalog_name (str): Name handed to the catalog loader.
        catalog_uri (str | None): Catalog endpoint (required for "rest"); root directory
            for "local" (defaults to prefix).
        catalog_properties (dict[str, str]): Free-form catalog properties.
        default_namespace (str): Namespace used when an event carries none.
        commit_interval_seconds (float): Leader commit cadence.
        operation_timeout_seconds (float): Upper bound for every blocking call.
        prefix (str): Storage prefix under which data files are written.
        snapshot_properties (dict[str, str]): Properties attached to each committed
            transaction.
        compression (Literal[...]): Parquet compression codec.
        row_group_size (int): Parquet row group size.
        retry (RetrySettings): Backoff parameters.

    Examples:
        >>> from icesink.io.config import SinkSettings
        >>> SinkSettings(catalog_type="local", prefix="out")  # doctest: +ELLIPSIS
        SinkSettings(...)
    """

    catalog_type: CatalogType = "local"
    catalog_name: str = "default"
    catalog_uri: str | None = None
    catalog_properties: dict[str, str] = field(default_factory=dict)
    default_namespace: str = CORE_DEFAULT_NAMESPACE
    commit_interval_seconds: float = CORE_COMMIT_INTERVAL
    operation_timeout_seconds: float = CORE_OPERATION_TIMEOUT
    prefix: str = CORE_DEFAULT_PREFIX
    snapshot_properties: dict[str, str] = field(default_factory=dict)
    compression: Compression = CORE_COMPRESSION  # type: ignore[assignment]
    row_group_size: int = CORE_ROW_GROUP_SIZE
    retry: RetrySettings = field(default_factory=RetrySettings)

    def __post_init__(self) -> None:
        # Non-positive cadences fall back to the defaults.
        if self.commit_interval_seconds <= 0:
            object.__setattr__(self, "commit_interval_seconds", CORE_COMMIT_INTERVAL)
        if self.operation_timeout_seconds <= 0:
            object.__setattr__(self, "operation_timeout_seconds", CORE_OPERATION_TIMEOUT)

    def validate(self) -> SinkSettings:
        """
        Check cross-field constraints.

        Returns:
            SinkSettings: self, for chaining.

        Raises:
            IoConfigError: Unsupported catalog type or REST catalog without a URI.
        """
        if self.catalog_type not in _CATALOG_TYPES:
            raise IoConfigError(
                f"unsupported catalog_type {self.catalog_type!r}; expected one of {_CATALOG_TYPES}"
            )
        if self.catalog_type == "rest" and not self.catalog_uri:
            raise IoConfigError("catalog_uri is required for a 'rest' catalog")
        if self.row_group_size < 1:
            raise IoConfigError("row_group_size must be >= 1")
        return self

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: SinkSettings, cfg: dict[str, Any] | None) -> SinkSettings:
        """Apply a loose config mapping onto SinkSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        def _float(v: Any, fallback: float) -> float:
            try:
                return float(v)
            except (TypeError, ValueError):
                return fallback

        def _bool(v: Any) -> bool:
            if isinstance(v, bool):
                return v
            if isinstance(v, (int, float)):
                return bool(v)
            if isinstance(v, str):
                return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
            return False

        def _str_map(v: Any) -> dict[str, str] | None:
            if isinstance(v, str):
                try:
                    v = json.loads(v)
                except ValueError:
                    return None
            if isinstance(v, dict):
                return {str(k): str(val) for k, val in v.items()}
            return None

        if isinstance(cfg.get("catalog_type"), str):
            kind = cfg["catalog_type"].strip().lower()
            if kind in _CATALOG_TYPES:
                s = replace(s, catalog_type=kind)  # type: ignore[arg-type]

        for key in ("catalog_name", "catalog_uri", "default_namespace", "prefix"):
            if isinstance(cfg.get(key), str):
                s = replace(s, **{key: cfg[key]})

        for key in ("catalog_properties", "snapshot_properties"):
            if key in cfg:
                parsed = _str_map(cfg[key])
                if parsed is not None:
                    s = replace(s, **{key: parsed})

        if "commit_interval_seconds" in cfg:
            s = replace(
                s,
                commit_interval_seconds=_float(cfg["commit_interval_seconds"], s.commit_interval_seconds),
            )
        if "operation_timeout_seconds" in cfg:
            s = replace(
                s,
                operation_timeout_seconds=_float(
                    cfg["operation_timeout_seconds"], s.operation_timeout_seconds
                ),
            )

        if isinstance(cfg.get("compression"), str):
            comp = cfg["compression"].strip().lower()
            if comp in _COMPRESSIONS:
                s = replace(s, compression=comp)  # type: ignore[arg-type]

        if "row_group_size" in cfg:
            try:
                s = replace(s, row_group_size=int(cfg["row_group_size"]))
            except (TypeError, ValueError):
                pass

        # retry (nested mapping)
        if isinstance(cfg.get("retry"), dict):
            r = cfg["retry"]
            curr = s.retry
            max_elapsed = r.get("max_elapsed_seconds", curr.max_elapsed_seconds)
            if max_elapsed is not None:
                max_elapsed = _float(max_elapsed, 0.0) or None
            s = replace(
                s,
                retry=replace(
                    curr,
                    initial_interval_seconds=_float(
                        r.get("initial_interval_seconds"), curr.initial_interval_seconds
                    ),
                    multiplier=_float(r.get("multiplier"), curr.multiplier),
                    max_interval_seconds=_float(r.get("max_interval_seconds"), curr.max_interval_seconds),
                    randomization_factor=_float(
                        r.get("randomization_factor"), curr.randomization_factor
                    ),
                    max_elapsed_seconds=max_elapsed,
                    retry_commits=_bool(r.get("retry_commits", curr.retry_commits)),
                ),
            )

        return s

    @classmethod
    def from_env(cls, base: SinkSettings | None = None, prefix: str = "ICESINK_") -> SinkSettings:
        """
        Build SinkSettings from environment variables. Precedence is env > base (if provided) > defaults.

        Recognized variables:
            - ICESINK_CATALOG_TYPE ("rest" | "glue" | "local")
            - ICESINK_CATALOG_NAME
            - ICESINK_CATALOG_URI
            - ICESINK_CATALOG_PROPERTIES (JSON object)
            - ICESINK_DEFAULT_NAMESPACE
            - ICESINK_COMMIT_INTERVAL_SECONDS
            - ICESINK_OPERATION_TIMEOUT_SECONDS
            - ICESINK_PREFIX
            - ICESINK_SNAPSHOT_PROPERTIES (JSON object)
            - ICESINK_COMPRESSION
            - ICESINK_ROW_GROUP_SIZE
            - ICESINK_RETRY_INITIAL_INTERVAL_SECONDS, ICESINK_RETRY_MULTIPLIER,
              ICESINK_RETRY_MAX_INTERVAL_SECONDS, ICESINK_RETRY_MAX_ELAPSED_SECONDS,
              ICESINK_RETRY_COMMITS
        """
        s = base or cls()

        def get(name: str) -> str | None:
            return os.getenv(prefix + name)

        mapping: dict[str, Any] = {}
        for name in (
            "CATALOG_TYPE",
            "CATALOG_NAME",
            "CATALOG_URI",
            "CATALOG_PROPERTIES",
            "DEFAULT_NAMESPACE",
            "COMMIT_INTERVAL_SECONDS",
            "OPERATION_TIMEOUT_SECONDS",
            "PREFIX",
            "SNAPSHOT_PROPERTIES",
            "COMPRESSION",
            "ROW_GROUP_SIZE",
        ):
            v = get(name)
            if v:
                mapping[name.lower()] = v

        retry_keys = {
            "RETRY_INITIAL_INTERVAL_SECONDS": "initial_interval_seconds",
            "RETRY_MULTIPLIER": "multiplier",
            "RETRY_MAX_INTERVAL_SECONDS": "max_interval_seconds",
            "RETRY_MAX_ELAPSED_SECONDS": "max_elapsed_seconds",
            "RETRY_COMMITS": "retry_commits",
        }
        for env_name, key in retry_keys.items():
            v = get(env_name)
            if v:
                mapping.setdefault("retry", {})[key] = v

        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> SinkSettings:
        """
        Build SinkSettings from a TOML file.

        Search order when `path` is None:
            1) ./icesink.toml (with either a top-level [sink] table or direct keys)
            2) ./pyproject.toml under [tool.icesink]

        Returns defaults if no file present or tomllib is unavailable.
        """
        s = cls()
        if tomllib is None:
            return s

        def _load_toml(p: Path) -> dict[str, Any] | None:
            try:
                with p.open("rb") as fh:
                    return tomllib.load(fh)  # type: ignore[arg-type]
            except (OSError, ValueError):
                return None

        cfg: dict[str, Any] | None = None

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "icesink.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        for p in cand:
            if not p.exists():
                continue
            data = _load_toml(p)
            if not isinstance(data, dict):
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("icesink") if isinstance(tool, dict) else None
            else:
                if isinstance(data.get("sink"), dict):
                    cfg = data["sink"]
                else:
                    cfg = data
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> SinkSettings:
        """
        Load SinkSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults (icesink.toml, pyproject.toml).
        """
        s = cls.from_toml(path)
        s = cls.from_env(base=s)
        return s
