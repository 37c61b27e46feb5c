"""
Configuration management for request signing

This module provides the signing configuration, named profiles, a fluent
builder, loaders for dicts / JSON / files / environment variables, and the
``create_signer`` factory that turns a configuration into a signer.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..credentials import CredentialsLike
from ..exceptions import CloudSignError, ConfigurationError
from .aws_v4_signer import MAX_EXPIRES_SECONDS, AwsV4FormSigner, AwsV4QuerySigner
from .chef_signer import ChefRsaSigner, PrivateKeySource
from .region import AwsServiceAndRegion, ServiceAndRegion, StaticServiceAndRegion

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "CLOUDSIGN_"
DEFAULT_SLOW_SIGNING_THRESHOLD_MS = 10.0


class SigningScheme(str, Enum):
    """Supported request-signing schemes"""
    AWS_V4 = "aws-v4"
    AWS_V4_QUERY = "aws-v4-query"
    CHEF = "chef"


@dataclass
class DebugConfig:
    """
    Debugging switches

    Attributes:
        log_canonical_strings: Send canonical strings to the ``cloudsign.signature`` logger
        log_timing: Log the duration of every signing call
    """
    log_canonical_strings: bool = False
    log_timing: bool = False


@dataclass
class SigningConfig:
    """
    Configuration for a signer

    Attributes:
        scheme: Signing scheme
        endpoint: Service endpoint URL (AWS schemes derive the service from it)
        service: Explicit service token, used together with ``region``
        region: Explicit region token, used together with ``service``
        api_version: ``Version`` added to AWS form payloads that lack one
        expires_seconds: ``X-Amz-Expires`` for presigned URLs
        sign_payload: Hash the payload for presigned URLs (else ``UNSIGNED-PAYLOAD``)
        require_action: Refuse AWS form payloads without ``Action``
        debug: Debugging switches
        slow_signing_threshold_ms: Warn when a signing call takes longer
    """
    scheme: SigningScheme = SigningScheme.AWS_V4
    endpoint: Optional[str] = None
    service: Optional[str] = None
    region: Optional[str] = None
    api_version: Optional[str] = None
    expires_seconds: Optional[int] = None
    sign_payload: bool = True
    require_action: bool = False
    debug: DebugConfig = field(default_factory=DebugConfig)
    slow_signing_threshold_ms: float = DEFAULT_SLOW_SIGNING_THRESHOLD_MS

    def __post_init__(self):
        if not isinstance(self.scheme, SigningScheme):
            try:
                self.scheme = SigningScheme(self.scheme)
            except ValueError:
                raise ConfigurationError(
                    f"Unknown signing scheme: {self.scheme}",
                    details={"available_schemes": [s.value for s in SigningScheme]}
                )
        if isinstance(self.debug, Mapping):
            self.debug = DebugConfig(**self.debug)

    @property
    def is_aws(self) -> bool:
        return self.scheme in (SigningScheme.AWS_V4, SigningScheme.AWS_V4_QUERY)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scheme": self.scheme.value,
            "endpoint": self.endpoint,
            "service": self.service,
            "region": self.region,
            "api_version": self.api_version,
            "expires_seconds": self.expires_seconds,
            "sign_payload": self.sign_payload,
            "require_action": self.require_action,
            "debug": {
                "log_canonical_strings": self.debug.log_canonical_strings,
                "log_timing": self.debug.log_timing,
            },
            "slow_signing_threshold_ms": self.slow_signing_threshold_ms,
        }


@dataclass
class SigningProfile:
    """
    Named preset for common signing setups

    Attributes:
        name: Profile name
        description: Profile description
        scheme: Signing scheme
        expires_seconds: Default presigned URL lifetime
        sign_payload: Whether presigned URLs hash the payload
    """
    name: str
    description: str
    scheme: SigningScheme
    expires_seconds: Optional[int] = None
    sign_payload: bool = True


SIGNING_PROFILES: Dict[str, SigningProfile] = {
    "aws": SigningProfile(
        name="AWS",
        description="AWS Signature Version 4 in the Authorization header",
        scheme=SigningScheme.AWS_V4,
    ),

    "aws-presign": SigningProfile(
        name="AWS presigned URL",
        description="AWS Signature Version 4 in the query string, valid for 15 minutes",
        scheme=SigningScheme.AWS_V4_QUERY,
        expires_seconds=900,
    ),

    "chef": SigningProfile(
        name="Chef",
        description="Chef server mixlib-authentication 1.0 RSA headers",
        scheme=SigningScheme.CHEF,
    ),
}


def get_signing_profile(name: str) -> SigningProfile:
    """
    Get signing profile by name.

    Raises:
        ConfigurationError: If profile name is invalid
    """
    if name not in SIGNING_PROFILES:
        raise ConfigurationError(
            f"Unknown signing profile: {name}",
            details={"available_profiles": list(SIGNING_PROFILES.keys())}
        )
    return SIGNING_PROFILES[name]


def list_signing_profiles() -> List[str]:
    return list(SIGNING_PROFILES.keys())


class SigningConfigBuilder:
    """
    Builder for creating signing configurations with fluent API
    """

    def __init__(self):
        self._config = SigningConfig()

    def scheme(self, scheme: Union[SigningScheme, str]) -> "SigningConfigBuilder":
        """
        Set signing scheme.

        Args:
            scheme: Scheme or its name (``aws-v4``, ``aws-v4-query``, ``chef``)

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._config.scheme = SigningConfig(scheme=scheme).scheme
        return self

    def endpoint(self, endpoint: str) -> "SigningConfigBuilder":
        self._config.endpoint = endpoint
        return self

    def service(self, service: str) -> "SigningConfigBuilder":
        self._config.service = service
        return self

    def region(self, region: str) -> "SigningConfigBuilder":
        self._config.region = region
        return self

    def api_version(self, api_version: str) -> "SigningConfigBuilder":
        self._config.api_version = api_version
        return self

    def expires(self, seconds: int) -> "SigningConfigBuilder":
        """
        Set presigned URL lifetime.

        Args:
            seconds: Value of ``X-Amz-Expires`` (1 to 604800)

        Returns:
            SigningConfigBuilder: Self for method chaining
        """
        self._config.expires_seconds = seconds
        return self

    def unsigned_payload(self, unsigned: bool = True) -> "SigningConfigBuilder":
        self._config.sign_payload = not unsigned
        return self

    def require_action(self, require: bool = True) -> "SigningConfigBuilder":
        self._config.require_action = require
        return self

    def debug(self, log_canonical_strings: bool = True, log_timing: bool = False) -> "SigningConfigBuilder":
        self._config.debug = DebugConfig(log_canonical_strings, log_timing)
        return self

    def slow_signing_threshold(self, milliseconds: float) -> "SigningConfigBuilder":
        self._config.slow_signing_threshold_ms = milliseconds
        return self

    def profile(self, profile_name: str) -> "SigningConfigBuilder":
        """
        Apply signing profile.

        Args:
            profile_name: Name of signing profile ('aws', 'aws-presign', 'chef')

        Returns:
            SigningConfigBuilder: Self for method chaining

        Raises:
            ConfigurationError: If profile name is invalid
        """
        profile = get_signing_profile(profile_name)
        self._config.scheme = profile.scheme
        self._config.expires_seconds = profile.expires_seconds
        self._config.sign_payload = profile.sign_payload
        return self

    def build(self) -> SigningConfig:
        """
        Build the signing configuration.

        Returns:
            SigningConfig: Complete signing configuration

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config = SigningConfig(**{
            **self._config.to_dict(),
            "debug": DebugConfig(self._config.debug.log_canonical_strings, self._config.debug.log_timing),
        })
        validate_signing_config(config)
        return config


def create_signing_config() -> SigningConfigBuilder:
    """
    Create a new signing configuration builder.

    Returns:
        SigningConfigBuilder: New configuration builder
    """
    return SigningConfigBuilder()


def validate_signing_config(config: SigningConfig) -> None:
    """
    Validate signing configuration.

    Args:
        config: Signing configuration to validate

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not isinstance(config, SigningConfig):
        raise ConfigurationError("Configuration must be SigningConfig instance")

    if config.is_aws:
        if not config.endpoint and not (config.service and config.region):
            raise ConfigurationError(
                "AWS signing needs an endpoint, or both service and region",
                details={"scheme": config.scheme.value}
            )
        if bool(config.service) != bool(config.region):
            raise ConfigurationError(
                "service and region must be set together",
                details={"service": config.service, "region": config.region}
            )
        if not (config.service and config.region):
            try:
                AwsServiceAndRegion(config.endpoint)
            except CloudSignError as e:
                raise ConfigurationError(
                    f"Cannot resolve service from endpoint: {e.message}",
                    details={"endpoint": config.endpoint}
                )

    if config.expires_seconds is not None:
        if config.scheme != SigningScheme.AWS_V4_QUERY:
            raise ConfigurationError(
                "expires_seconds only applies to the aws-v4-query scheme",
                details={"scheme": config.scheme.value}
            )
        if not isinstance(config.expires_seconds, int) or not 1 <= config.expires_seconds <= MAX_EXPIRES_SECONDS:
            raise ConfigurationError(
                f"expires_seconds must be an integer between 1 and {MAX_EXPIRES_SECONDS}",
                details={"expires_seconds": config.expires_seconds}
            )

    if not isinstance(config.slow_signing_threshold_ms, (int, float)) or config.slow_signing_threshold_ms <= 0:
        raise ConfigurationError(
            "slow_signing_threshold_ms must be a positive number",
            details={"slow_signing_threshold_ms": config.slow_signing_threshold_ms}
        )


def resolve_service_and_region(config: SigningConfig) -> ServiceAndRegion:
    if config.service and config.region:
        return StaticServiceAndRegion(config.service, config.region)
    return AwsServiceAndRegion(config.endpoint)


def create_signer(
    config: SigningConfig,
    credentials: CredentialsLike,
    timestamp_provider: Optional[Callable[[], str]] = None,
    private_key_source: Optional[PrivateKeySource] = None,
):
    """
    Create the signer described by a configuration.

    Args:
        config: Signing configuration
        credentials: Credentials source (or snapshot, or callable)
        timestamp_provider: Overrides the scheme's default clock
        private_key_source: Chef only; supplies the RSA key directly

    Returns:
        AwsV4FormSigner, AwsV4QuerySigner or ChefRsaSigner

    Raises:
        ConfigurationError: If configuration is invalid
    """
    validate_signing_config(config)
    common = {
        "timestamp_provider": timestamp_provider,
        "log_canonical_strings": config.debug.log_canonical_strings,
        "log_timing": config.debug.log_timing,
        "slow_signing_threshold_ms": config.slow_signing_threshold_ms,
    }

    if config.scheme == SigningScheme.CHEF:
        return ChefRsaSigner(credentials, private_key_source=private_key_source, **common)

    resolver = resolve_service_and_region(config)
    if config.scheme == SigningScheme.AWS_V4_QUERY:
        return AwsV4QuerySigner(
            credentials,
            resolver,
            expires_seconds=config.expires_seconds,
            sign_payload=config.sign_payload,
            **common
        )
    return AwsV4FormSigner(
        credentials,
        resolver,
        api_version=config.api_version,
        require_action=config.require_action,
        **common
    )


_CONFIG_KEYS = {
    "scheme", "profile", "endpoint", "service", "region", "api_version", "expires_seconds",
    "sign_payload", "require_action", "debug", "slow_signing_threshold_ms",
}


def load_signing_config_from_dict(data: Mapping[str, Any]) -> SigningConfig:
    """
    Build a configuration from a plain mapping.

    A ``profile`` key is applied first; the other keys override it.

    Raises:
        ConfigurationError: On unknown keys or invalid values
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")

    unknown = sorted(set(data) - _CONFIG_KEYS)
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration keys: {', '.join(unknown)}",
            details={"unknown_keys": unknown}
        )

    builder = create_signing_config()
    if data.get("profile"):
        builder.profile(data["profile"])
    if data.get("scheme"):
        builder.scheme(data["scheme"])

    setters = {
        "endpoint": builder.endpoint,
        "service": builder.service,
        "region": builder.region,
        "api_version": builder.api_version,
        "expires_seconds": builder.expires,
    }
    for key, setter in setters.items():
        if data.get(key) is not None:
            setter(data[key])
    if "sign_payload" in data:
        builder.unsigned_payload(not data["sign_payload"])
    if "require_action" in data:
        builder.require_action(bool(data["require_action"]))
    if data.get("slow_signing_threshold_ms") is not None:
        builder.slow_signing_threshold(data["slow_signing_threshold_ms"])

    debug = data.get("debug") or {}
    if not isinstance(debug, Mapping):
        raise ConfigurationError("debug must be a mapping")
    unknown_debug = sorted(set(debug) - {"log_canonical_strings", "log_timing"})
    if unknown_debug:
        raise ConfigurationError(
            f"Unknown debug keys: {', '.join(unknown_debug)}",
            details={"unknown_keys": unknown_debug}
        )
    if debug:
        builder.debug(
            log_canonical_strings=bool(debug.get("log_canonical_strings", False)),
            log_timing=bool(debug.get("log_timing", False)),
        )

    return builder.build()


def load_signing_config_from_json(json_string: str) -> SigningConfig:
    try:
        data = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON configuration: {e}", details={"original_error": str(e)})
    return load_signing_config_from_dict(data)


def load_signing_config_from_file(file_path: Union[str, Path]) -> SigningConfig:
    """
    Load a JSON configuration file.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            json_string = f.read()
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file {file_path}: {e}",
            details={"path": str(file_path)}
        )
    logger.debug(f"Loaded signing configuration from {file_path}")
    return load_signing_config_from_json(json_string)


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}", details={"variable": name})


def _parse_number(name: str, value: str, convert: Callable) -> Any:
    try:
        return convert(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}", details={"variable": name})


def load_signing_config_from_env(
    prefix: str = DEFAULT_ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
) -> SigningConfig:
    """
    Build a configuration from environment variables.

    Recognised variables (with the default prefix): ``CLOUDSIGN_PROFILE``,
    ``CLOUDSIGN_SCHEME``, ``CLOUDSIGN_ENDPOINT``, ``CLOUDSIGN_SERVICE``,
    ``CLOUDSIGN_REGION``, ``CLOUDSIGN_API_VERSION``,
    ``CLOUDSIGN_EXPIRES_SECONDS``, ``CLOUDSIGN_SIGN_PAYLOAD``,
    ``CLOUDSIGN_REQUIRE_ACTION``, ``CLOUDSIGN_LOG_CANONICAL_STRINGS``,
    ``CLOUDSIGN_LOG_TIMING`` and ``CLOUDSIGN_SLOW_SIGNING_THRESHOLD_MS``.

    Args:
        prefix: Variable name prefix
        environ: Mapping to read instead of ``os.environ``

    Returns:
        SigningConfig: Validated configuration

    Raises:
        ConfigurationError: If a value is invalid
    """
    environ = os.environ if environ is None else environ

    def get(name: str) -> Optional[str]:
        value = environ.get(prefix + name)
        return value if value not in (None, "") else None

    data: Dict[str, Any] = {}
    for key in ("profile", "scheme", "endpoint", "service", "region", "api_version"):
        value = get(key.upper())
        if value is not None:
            data[key] = value

    if get("EXPIRES_SECONDS") is not None:
        data["expires_seconds"] = _parse_number(prefix + "EXPIRES_SECONDS", get("EXPIRES_SECONDS"), int)
    if get("SLOW_SIGNING_THRESHOLD_MS") is not None:
        data["slow_signing_threshold_ms"] = _parse_number(
            prefix + "SLOW_SIGNING_THRESHOLD_MS", get("SLOW_SIGNING_THRESHOLD_MS"), float
        )
    for key in ("sign_payload", "require_action"):
        value = get(key.upper())
        if value is not None:
            data[key] = _parse_bool(prefix + key.upper(), value)

    debug = {}
    for key in ("log_canonical_strings", "log_timing"):
        value = get(key.upper())
        if value is not None:
            debug[key] = _parse_bool(prefix + key.upper(), value)
    if debug:
        data["debug"] = debug

    return load_signing_config_from_dict(data)
