"""Hook configuration.

Values come from keyword arguments, from ``SCIM_*`` environment variables via
``HookConfig.from_env()``, or from CLI options that override either.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_BASE_URL = "https://scim-provisioning.service.newrelic.com/scim/v2"
DEFAULT_TOKEN_SECRET = "NR_DOMAIN_TOKEN"
DEFAULT_TIMEZONE = "Japan/Tokyo"

# The hook has always looked users up in the Groups collection.  Directories
# that only accept externalId filters on Users need "Users" here.
USER_LOOKUP_COLLECTIONS = ("Groups", "Users")


class ConfigError(Exception):
    """Invalid configuration or a missing secret."""


@dataclass
class HookConfig:
    base_url: str = DEFAULT_BASE_URL
    token_secret: str = DEFAULT_TOKEN_SECRET
    group_names: Dict[str, str] = field(default_factory=dict)
    timezone: str = DEFAULT_TIMEZONE
    timeout: float = 30
    max_retries: int = 3
    user_lookup_collection: str = "Groups"

    def __post_init__(self):
        if not self.base_url:
            raise ConfigError("base_url must not be empty")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.user_lookup_collection not in USER_LOOKUP_COLLECTIONS:
            raise ConfigError(
                f"user_lookup_collection must be one of {', '.join(USER_LOOKUP_COLLECTIONS)}, "
                f"got {self.user_lookup_collection!r}"
            )

    def group_name_for(self, connection_name: str) -> str:
        """Map a login connection to its directory group, defaulting to the connection name."""
        return self.group_names.get(connection_name, connection_name)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HookConfig":
        """Build a config from ``SCIM_*`` environment variables.

        Unset variables keep their defaults.  ``SCIM_GROUP_NAMES`` is a JSON
        object mapping connection names to group names.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get("SCIM_BASE_URL"):
            kwargs["base_url"] = env["SCIM_BASE_URL"]
        if env.get("SCIM_TOKEN_SECRET"):
            kwargs["token_secret"] = env["SCIM_TOKEN_SECRET"]
        if env.get("SCIM_USER_TIMEZONE"):
            kwargs["timezone"] = env["SCIM_USER_TIMEZONE"]
        if env.get("SCIM_USER_COLLECTION"):
            kwargs["user_lookup_collection"] = env["SCIM_USER_COLLECTION"]
        if env.get("SCIM_TIMEOUT"):
            kwargs["timeout"] = _parse_number(env["SCIM_TIMEOUT"], "SCIM_TIMEOUT", float)
        if env.get("SCIM_MAX_RETRIES"):
            kwargs["max_retries"] = _parse_number(env["SCIM_MAX_RETRIES"], "SCIM_MAX_RETRIES", int)
        if env.get("SCIM_GROUP_NAMES"):
            kwargs["group_names"] = parse_group_names(env["SCIM_GROUP_NAMES"])

        return cls(**kwargs)


def parse_group_names(raw: str) -> Dict[str, str]:
    """Parse a JSON object of ``{connection name: group name}``."""
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"SCIM_GROUP_NAMES is not valid JSON: {e}") from e
    if not isinstance(mapping, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
    ):
        raise ConfigError("SCIM_GROUP_NAMES must be a JSON object of strings")
    return mapping


def _parse_number(raw: str, name: str, kind):
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
