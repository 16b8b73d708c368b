"""
Configuration for the tracing HTTP client and its export pipeline
"""
import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type
from urllib.parse import urlparse

from loadtrace.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ExporterKind(Enum):
    """Supported exporter backends"""
    OTLP = "otlp"
    JAEGER = "jaeger"
    CROCOSPANS = "crocospans"


class PropagatorKind(Enum):
    """Supported propagation header formats"""
    W3C = "w3c"
    B3 = "b3"
    B3_MULTI = "b3multi"
    JAEGER = "jaeger"


class OverflowPolicy(Enum):
    """What enqueue does when the span buffer is full"""
    DROP_OLDEST = "drop_oldest"
    BLOCK = "block"


class TraceIdFormat(Enum):
    """How root trace ids are generated"""
    RANDOM = "random"
    K6 = "k6"


OTLP_PROTOCOLS = ("http/protobuf", "http/json")

DEFAULT_ENDPOINTS = {
    ExporterKind.OTLP: "http://localhost:4318",
    ExporterKind.JAEGER: "http://localhost:14268/api/traces",
}

SECRET_FIELDS = ("password", "token")


def parse_enum(enum_type: Type[Enum], value: Any, option: str) -> Enum:
    if isinstance(value, enum_type):
        return value
    if value is None or value == "":
        raise ConfigurationError(f"missing required option '{option}'")
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ConfigurationError(
            f"unknown {option} '{value}', expected one of: {allowed}"
        ) from None


def _parse_number(value: Any, option: str, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"error parsing option '{option}': {value!r}") from None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff for failed export attempts"""
    max_attempts: int = 3
    initial_backoff: float = 0.1
    max_backoff: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.1

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("retry_policy.max_attempts must be >= 1")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ConfigurationError("retry_policy backoff values must be >= 0")
        if self.multiplier < 1:
            raise ConfigurationError("retry_policy.multiplier must be >= 1")
        if not 0 <= self.jitter <= 1:
            raise ConfigurationError("retry_policy.jitter must be between 0 and 1")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "RetryPolicy":
        """Create a retry policy from a plain mapping"""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            if key not in known:
                raise ConfigurationError(f"unknown retry_policy option '{key}'")
            kwargs[key] = _parse_number(value, f"retry_policy.{key}",
                                        int if key == "max_attempts" else float)
        return cls(**kwargs)


@dataclass(frozen=True)
class ExporterConfig:
    """Configuration shared by a facade, its pipeline and its exporter backend.

    Read-only once constructed. String selectors are accepted and coerced to
    their Enum; anything invalid raises ConfigurationError right away.
    """
    exporter: ExporterKind
    propagator: PropagatorKind
    endpoint: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    protocol: str = "http/protobuf"
    service_name: str = "k6"

    # Batching and buffering
    batch_max_size: int = 512
    batch_max_delay: float = 1.0
    max_queue_size: int = 2048
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    block_timeout: float = 0.05
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    # Backend behaviour
    export_timeout: float = 10.0
    unhealthy_cooldown: float = 30.0

    trace_id_format: TraceIdFormat = TraceIdFormat.RANDOM
    test_run_id: Optional[int] = None
    org_id: Optional[str] = None

    def __post_init__(self):
        def set_(name, value):
            object.__setattr__(self, name, value)

        set_("exporter", parse_enum(ExporterKind, self.exporter, "exporter"))
        set_("propagator", parse_enum(PropagatorKind, self.propagator, "propagator"))
        set_("overflow_policy", parse_enum(OverflowPolicy, self.overflow_policy, "overflow_policy"))
        set_("trace_id_format", parse_enum(TraceIdFormat, self.trace_id_format, "trace_id_format"))
        set_("headers", dict(self.headers or {}))

        if not self.endpoint:
            if self.exporter not in DEFAULT_ENDPOINTS:
                raise ConfigurationError(
                    f"missing required option 'endpoint' for exporter '{self.exporter.value}'"
                )
            set_("endpoint", DEFAULT_ENDPOINTS[self.exporter])

        parsed = urlparse(self.endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"malformed endpoint '{self.endpoint}', expected http(s)://host[:port]/path")

        if self.protocol not in OTLP_PROTOCOLS:
            raise ConfigurationError(
                f"unknown protocol '{self.protocol}', expected one of: {', '.join(OTLP_PROTOCOLS)}"
            )
        if self.batch_max_size < 1:
            raise ConfigurationError("batch_max_size must be >= 1")
        if self.max_queue_size < 1:
            raise ConfigurationError("max_queue_size must be >= 1")
        if self.batch_max_delay < 0 or self.block_timeout < 0:
            raise ConfigurationError("batch_max_delay and block_timeout must be >= 0")
        if self.export_timeout <= 0:
            raise ConfigurationError("export_timeout must be > 0")
        if self.password and not self.username:
            raise ConfigurationError("password given without username")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "ExporterConfig":
        """Create config from the options mapping a script passes to Http()

        Args:
            options: Mapping with at least 'exporter' and 'propagator'

        Returns:
            ExporterConfig: Validated configuration

        Raises:
            ConfigurationError: On missing/unknown selectors or bad values
        """
        if options is None:
            raise ConfigurationError("missing tracing configuration")

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            if key == "credentials":
                creds = dict(value or {})
                for cred_key in ("username", "password", "token"):
                    if cred_key in creds:
                        kwargs[cred_key] = creds.pop(cred_key)
                if creds:
                    raise ConfigurationError(f"unknown credentials fields: {', '.join(sorted(creds))}")
            elif key == "retry_policy" and isinstance(value, Mapping):
                kwargs[key] = RetryPolicy.from_dict(value)
            elif key in ("batch_max_size", "max_queue_size"):
                kwargs[key] = _parse_number(value, key, int)
            elif key in ("batch_max_delay", "block_timeout", "export_timeout", "unhealthy_cooldown"):
                kwargs[key] = _parse_number(value, key, float)
            elif key == "test_run_id":
                kwargs[key] = None if value is None else _parse_number(value, key, int)
            elif key == "org_id":
                kwargs[key] = None if value is None else str(value)
            elif key in known:
                kwargs[key] = value
            else:
                logger.warning(f"Ignoring unknown tracing option: {key}")

        for required in ("exporter", "propagator"):
            if required not in kwargs:
                raise ConfigurationError(f"missing required option '{required}'")

        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExporterConfig":
        """Create config from LOADTRACE_* environment variables"""
        env = os.environ if environ is None else environ

        exporter = parse_enum(ExporterKind, env.get("LOADTRACE_EXPORTER", "otlp"), "LOADTRACE_EXPORTER")
        options: Dict[str, Any] = {
            "exporter": exporter,
            "propagator": env.get("LOADTRACE_PROPAGATOR", "w3c"),
        }

        endpoint = env.get("LOADTRACE_ENDPOINT")
        if not endpoint and exporter == ExporterKind.OTLP:
            endpoint = env.get("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or env.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        elif not endpoint and exporter == ExporterKind.JAEGER:
            endpoint = env.get("JAEGER_ENDPOINT")
        if endpoint:
            options["endpoint"] = endpoint

        if env.get("LOADTRACE_TOKEN"):
            options["token"] = env["LOADTRACE_TOKEN"]
        if env.get("LOADTRACE_ORG_ID"):
            options["org_id"] = env["LOADTRACE_ORG_ID"]
        if env.get("LOADTRACE_SERVICE_NAME"):
            options["service_name"] = env["LOADTRACE_SERVICE_NAME"]

        numeric = {
            "LOADTRACE_BATCH_MAX_SIZE": ("batch_max_size", int),
            "LOADTRACE_PUSH_INTERVAL": ("batch_max_delay", float),
            "LOADTRACE_TEST_RUN_ID": ("test_run_id", int),
        }
        for var, (option, cast) in numeric.items():
            if var in env:
                try:
                    options[option] = cast(env[var])
                except ValueError:
                    raise ConfigurationError(
                        f"error parsing environment variable '{var}': {env[var]!r}"
                    ) from None

        return cls.from_dict(options)

    def key(self) -> Tuple:
        """Hashable identity used to share one pipeline between equal configs"""
        values = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "propagator":
                # Propagation is per facade; it does not affect export
                continue
            if isinstance(value, Mapping):
                value = tuple(sorted(value.items()))
            values.append((f.name, value))
        return tuple(values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging, with secrets masked"""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, RetryPolicy):
                value = {rf.name: getattr(value, rf.name) for rf in fields(value)}
            elif f.name in SECRET_FIELDS and value:
                value = "***"
            elif f.name == "headers":
                value = {k: "***" if k.lower() == "authorization" else v for k, v in value.items()}
            result[f.name] = value
        return result
