"""Configuration for equivalence checks."""

import os
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigurationError


class Region(str, Enum):
    """Notation-convention profile that gates region-specific rules."""

    US = "US"
    UK = "UK"
    EU = "EU"

    @classmethod
    def parse(cls, value: Union[str, "Region"]) -> "Region":
        """Accept a Region or its (case-insensitive) name."""
        if isinstance(value, Region):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            names = ", ".join(r.value for r in cls)
            raise ConfigurationError(
                f"Unknown region {value!r}; expected one of {names}",
                field="region", value=value,
            ) from None

    def __str__(self) -> str:
        return self.value


ALL_REGIONS = frozenset(Region)

SEVEN_DAYS = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class EquivalenceConfig:
    """Settings for a single equivalence check.

    Part of the cache fingerprint: two checks with different settings never
    share a cached verdict.
    """

    region: Region = Region.US
    force_symbolic_only: bool = False
    float_tolerance: float = 1e-6
    symbolic_timeout_ms: int = 2000
    max_canonicalization_iterations: int = 100
    cache_enabled: bool = True
    symbolic_fallback_enabled: bool = True
    cache_ttl_seconds: int = SEVEN_DAYS

    def __post_init__(self):
        # Strings are accepted for the region so dict/env input works.
        object.__setattr__(self, "region", Region.parse(self.region))

    def validate(self) -> "EquivalenceConfig":
        """Raise ConfigurationError on the first invalid field."""
        for name in ("force_symbolic_only", "cache_enabled", "symbolic_fallback_enabled"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be a boolean",
                                         field=name, value=getattr(self, name))
        for name in ("symbolic_timeout_ms", "max_canonicalization_iterations", "cache_ttl_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer", field=name, value=value)
        if self.force_symbolic_only and not self.symbolic_fallback_enabled:
            raise ConfigurationError("force_symbolic_only requires symbolic_fallback_enabled",
                                     field="force_symbolic_only", value=True)
        if self.symbolic_timeout_ms <= 0:
            raise ConfigurationError("symbolic_timeout_ms must be positive",
                                     field="symbolic_timeout_ms", value=self.symbolic_timeout_ms)
        if self.max_canonicalization_iterations <= 0:
            raise ConfigurationError("max_canonicalization_iterations must be at least 1",
                                     field="max_canonicalization_iterations",
                                     value=self.max_canonicalization_iterations)
        if self.cache_ttl_seconds < 0:
            raise ConfigurationError("cache_ttl_seconds must not be negative",
                                     field="cache_ttl_seconds", value=self.cache_ttl_seconds)
        tolerance = self.float_tolerance
        if isinstance(tolerance, bool) or not isinstance(tolerance, (int, float)):
            raise ConfigurationError("float_tolerance must be a number",
                                     field="float_tolerance", value=tolerance)
        if tolerance < 0 or tolerance != tolerance:
            raise ConfigurationError("float_tolerance must be a non-negative number",
                                     field="float_tolerance", value=tolerance)
        return self

    def replace(self, **changes) -> "EquivalenceConfig":
        """Return a copy with some fields changed."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["region"] = self.region.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EquivalenceConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration field(s): {', '.join(unknown)}",
                                     field=unknown[0], value=data[unknown[0]])
        return cls(**dict(data))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EquivalenceConfig":
        """Create config from MATHEQUIV_* environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            region=env.get("MATHEQUIV_REGION", defaults.region.value),
            force_symbolic_only=_env_bool(env, "MATHEQUIV_FORCE_SYMBOLIC_ONLY",
                                          defaults.force_symbolic_only),
            float_tolerance=_env_number(env, "MATHEQUIV_FLOAT_TOLERANCE",
                                        defaults.float_tolerance, float),
            symbolic_timeout_ms=_env_number(env, "MATHEQUIV_SYMBOLIC_TIMEOUT_MS",
                                            defaults.symbolic_timeout_ms, int),
            max_canonicalization_iterations=_env_number(env, "MATHEQUIV_MAX_ITERATIONS",
                                                        defaults.max_canonicalization_iterations, int),
            cache_enabled=_env_bool(env, "MATHEQUIV_CACHE_ENABLED", defaults.cache_enabled),
            symbolic_fallback_enabled=_env_bool(env, "MATHEQUIV_FALLBACK_ENABLED",
                                                defaults.symbolic_fallback_enabled),
            cache_ttl_seconds=_env_number(env, "MATHEQUIV_CACHE_TTL_SECONDS",
                                          defaults.cache_ttl_seconds, int),
        ).validate()


def coerce_config(config: Union[None, EquivalenceConfig, Mapping[str, Any]]) -> EquivalenceConfig:
    """Normalize the accepted config forms into a validated EquivalenceConfig."""
    if config is None:
        return EquivalenceConfig()
    if isinstance(config, EquivalenceConfig):
        return config.validate()
    if isinstance(config, Mapping):
        return EquivalenceConfig.from_dict(config).validate()
    raise ConfigurationError(f"Unsupported configuration type: {type(config).__name__}")


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {raw!r}", field=key, value=raw)


def _env_number(env: Mapping[str, str], key: str, default, kind):
    raw = env.get(key)
    if raw is None:
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a {kind.__name__}, got {raw!r}",
                                 field=key, value=raw) from None
