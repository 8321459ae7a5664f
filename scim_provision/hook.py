"""Post user-registration hook entrypoint.

The identity platform calls ``provision_user(user, context, callback)`` after
a user is created or updated.  The hook runs a fixed sequence against the
SCIM directory:

1. find or create the group for the login connection
2. derive the user's externalId from the email address
3. find the user; create it on a miss, refresh its given name on a hit
4. add the user to the group

and reports the outcome as a ``HookResult``.  When the platform passes a
completion callback it is invoked exactly once, with ``None`` on success or
the exception on failure.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from .config import ConfigError, HookConfig
from .http_client import SCIMClient, SCIMError
from .reconcile import add_group_to_user, derive_external_id, ensure_group, ensure_user

logger = logging.getLogger(__name__)

# Platform completion callback: called with the error, or None on success
Callback = Callable[[Optional[Exception]], Any]


class ProvisioningError(SCIMError):
    """The directory accepted a create request but returned no resource id."""


def _mapping(data: Mapping[str, Any], key: str, where: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{where} must be an object")
    return value


@dataclass(frozen=True)
class IdentityRecord:
    """The user the platform is reporting on.  Treated as read-only."""

    email: str
    name: str = ""
    user_id: Optional[str] = None
    tenant: Optional[str] = None
    username: Optional[str] = None
    email_verified: bool = False
    phone_number: Optional[str] = None
    phone_number_verified: bool = False
    user_metadata: Mapping[str, Any] = field(default_factory=dict)
    app_metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IdentityRecord":
        if not isinstance(data, Mapping):
            raise ValueError("user must be an object")
        email = data.get("email")
        if not email or not isinstance(email, str):
            raise ValueError("user.email is required")
        return cls(
            email=email,
            name=data.get("name") or "",
            user_id=data.get("id"),
            tenant=data.get("tenant"),
            username=data.get("username"),
            email_verified=bool(data.get("emailVerified", False)),
            phone_number=data.get("phoneNumber"),
            phone_number_verified=bool(data.get("phoneNumberVerified", False)),
            user_metadata=dict(_mapping(data, "user_metadata", "user.user_metadata")),
            app_metadata=dict(_mapping(data, "app_metadata", "user.app_metadata")),
        )


@dataclass(frozen=True)
class Connection:
    name: str
    id: Optional[str] = None
    tenant: Optional[str] = None


@dataclass
class HookContext:
    """Connection info, request locale and the platform's secrets."""

    connection: Connection
    request_language: Optional[str] = None
    secrets: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HookContext":
        if not isinstance(data, Mapping):
            raise ValueError("context must be an object")
        conn = _mapping(data, "connection", "context.connection")
        if not conn.get("name") or not isinstance(conn["name"], str):
            raise ValueError("context.connection.name is required")
        webtask = _mapping(data, "webtask", "context.webtask")
        secrets = webtask.get("secrets") or data.get("secrets") or {}
        if not isinstance(secrets, Mapping):
            raise ValueError("context secrets must be an object")
        return cls(
            connection=Connection(name=conn["name"], id=conn.get("id"), tenant=conn.get("tenant")),
            request_language=data.get("requestLanguage"),
            secrets=dict(secrets),
        )

    def secret(self, key: str) -> str:
        value = self.secrets.get(key)
        if not value:
            raise ConfigError(f"Secret {key!r} is not set")
        return value


@dataclass
class HookResult:
    """Outcome of one hook invocation."""

    success: bool
    user_id: Optional[str] = None
    group_id: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, user_id: str, group_id: str) -> "HookResult":
        return cls(True, user_id=user_id, group_id=group_id)

    @classmethod
    def fail(cls, error: Exception, user_id: Optional[str] = None,
             group_id: Optional[str] = None) -> "HookResult":
        return cls(False, user_id=user_id, group_id=group_id, error=error)


def provision_user(
    user: Union[IdentityRecord, Mapping[str, Any]],
    context: Union[HookContext, Mapping[str, Any]],
    callback: Optional[Callback] = None,
    config: Optional[HookConfig] = None,
    client: Optional[SCIMClient] = None,
) -> HookResult:
    """Run the provisioning sequence for one user event.

    Args:
        user:      The platform's user record (dict or ``IdentityRecord``).
        context:   The platform's context (dict or ``HookContext``).
        callback:  Optional completion callback, called once with the error or None.
        config:    Hook configuration; defaults to ``HookConfig.from_env()``.
        client:    Pre-built client, mostly for tests.  When omitted one is
                   built from ``config`` and the token in ``context`` secrets.
    """
    result = _run(user, context, config, client)
    if result.success:
        logger.info("Provisioned user %s into group %s", result.user_id, result.group_id)
    else:
        logger.error("Provisioning failed: %s", result.error)
    if callback is not None:
        callback(result.error)
    return result


def _run(user, context, config, client) -> HookResult:
    user_id = group_id = None
    try:
        if not isinstance(user, IdentityRecord):
            user = IdentityRecord.from_dict(user)
        if not isinstance(context, HookContext):
            context = HookContext.from_dict(context)
        if config is None:
            config = HookConfig.from_env()
        if client is None:
            client = SCIMClient(
                config.base_url,
                token=context.secret(config.token_secret),
                timeout=config.timeout,
                max_retries=config.max_retries,
            )

        group_name = config.group_name_for(context.connection.name)
        group_id = ensure_group(client, group_name)
        if not group_id:
            raise ProvisioningError(f"Directory returned no id for group {group_name!r}")

        external_id = derive_external_id(user.email)
        user_id = ensure_user(
            client,
            external_id,
            user.email,
            user.name,
            timezone=config.timezone,
            collection=config.user_lookup_collection,
        )
        if not user_id:
            raise ProvisioningError(f"Directory returned no id for user {user.email!r}")

        logger.info("userId: %s groupId: %s", user_id, group_id)
        add_group_to_user(client, user_id, group_id)
    except (SCIMError, ConfigError, ValueError) as e:
        return HookResult.fail(e, user_id=user_id, group_id=group_id)

    return HookResult.ok(user_id, group_id)
