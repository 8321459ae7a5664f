"""Find-or-create reconciliation of groups and users against the SCIM directory.

Every lookup is a filtered search; "nothing found" is ``None``, never an
exception.  Transport failures and non-2xx answers propagate as ``SCIMError``
subclasses from ``http_client``.
"""

import logging
import re
from typing import Optional
from urllib.parse import quote

from .config import DEFAULT_TIMEZONE
from .http_client import SCIMClient, SCIMResponseError
from .resources import (
    GroupResource,
    ListResponse,
    UserResource,
    equality_filter,
    make_add_member,
    make_group,
    make_name_update,
    make_user,
)

logger = logging.getLogger(__name__)

_EXTERNAL_ID_CHARS = re.compile(r"[+@.]")


def derive_external_id(email: str) -> str:
    """Turn an email address into the directory ``externalId``.

    The identity provider has no delete hook, so users are keyed by email
    rather than by the provider's own user id; that keeps them findable for
    manual cleanup.  ``+``, ``@`` and ``.`` become ``_``.
    """
    return _EXTERNAL_ID_CHARS.sub("_", email)


def _filter_query(attribute: str, value: str) -> str:
    return "?filter=" + quote(equality_filter(attribute, value), safe="")


def _search(client: SCIMClient, collection: str, attribute: str, value: str) -> Optional[str]:
    resp = client.get(collection, query=_filter_query(attribute, value)).raise_for_status()
    # A body that is not JSON at all propagates; only a wrongly shaped list is a miss
    data = resp.json()
    try:
        return ListResponse.from_dict(data).first_id()
    except SCIMResponseError as e:
        logger.warning("Treating malformed %s search response as a miss: %s", collection, e)
        return None


# -- Groups --------------------------------------------------------------------


def query_group(client: SCIMClient, group_name: str) -> Optional[str]:
    """Return the id of the group whose displayName is ``group_name``, or None."""
    return _search(client, "Groups", "displayName", group_name)


def create_group(client: SCIMClient, group_name: str) -> Optional[str]:
    """Create an empty group.  Returns its id, or None if the response carries none."""
    resp = client.post("Groups", make_group(group_name)).raise_for_status()
    group = GroupResource.from_dict(resp.json() or {})
    if group.id:
        logger.info("Created group %r (%s)", group_name, group.id)
    return group.id or None


def ensure_group(client: SCIMClient, group_name: str) -> Optional[str]:
    """Look the group up and create it only when it is missing."""
    group_id = query_group(client, group_name)
    if not group_id:
        group_id = create_group(client, group_name)
    return group_id


# -- Users ---------------------------------------------------------------------


def query_user(client: SCIMClient, external_id: str, collection: str = "Groups") -> Optional[str]:
    """Return the id of the resource whose externalId is ``external_id``, or None.

    ``collection`` defaults to Groups because that is where the hook has
    always searched; see ``HookConfig.user_lookup_collection``.
    """
    return _search(client, collection, "externalId", external_id)


def create_user(
    client: SCIMClient,
    external_id: str,
    email: str,
    given_name: str,
    timezone: str = DEFAULT_TIMEZONE,
) -> Optional[str]:
    """Create an active user.  Returns its id, or None if the response carries none."""
    payload = make_user(external_id, email, given_name, timezone)
    resp = client.post("Users", payload).raise_for_status()
    user = UserResource.from_dict(resp.json() or {})
    if user.id:
        logger.info("Created user %r (%s)", email, user.id)
    return user.id or None


def update_user(client: SCIMClient, user_id: str, given_name: str) -> None:
    """Replace the user's ``name``; the family name is reset to empty."""
    client.put(f"Users/{user_id}", make_name_update(given_name)).raise_for_status()


def ensure_user(
    client: SCIMClient,
    external_id: str,
    email: str,
    given_name: str,
    timezone: str = DEFAULT_TIMEZONE,
    collection: str = "Groups",
) -> Optional[str]:
    """Create the user on a lookup miss, otherwise refresh its given name."""
    user_id = query_user(client, external_id, collection)
    if not user_id:
        user_id = create_user(client, external_id, email, given_name, timezone)
    else:
        update_user(client, user_id, given_name)
    return user_id


# -- Membership ----------------------------------------------------------------


def add_group_to_user(client: SCIMClient, user_id: str, group_id: str) -> None:
    """Add ``user_id`` to the group's members.

    Sent unconditionally; the directory tolerates adding an existing member.
    """
    client.patch(f"Groups/{group_id}", make_add_member(user_id)).raise_for_status()
