"""SCIM 2.0 resource records and request payload builders (RFC 7643, 7644).

Requests sent to the directory are built by the ``make_*`` functions below.
Responses are parsed into small typed records with ``from_dict``; parsing
checks the type of every field the hook reads and raises
``SCIMResponseError`` when the directory sends something else.  Fields the
hook does not read are ignored.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import DEFAULT_TIMEZONE
from .http_client import SCIMResponseError

USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
GROUP_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Group"
PATCH_OP_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"
LIST_RESPONSE_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:ListResponse"


def _expect(data: Dict[str, Any], key: str, kind, where: str) -> Any:
    """Return ``data[key]`` if it is absent/None or an instance of ``kind``."""
    value = data.get(key)
    if value is not None and not isinstance(value, kind):
        raise SCIMResponseError(
            f"{where}.{key} should be {getattr(kind, '__name__', kind)}, "
            f"got {type(value).__name__}"
        )
    return value


def _expect_object(data: Any, where: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise SCIMResponseError(f"{where} should be a JSON object, got {type(data).__name__}")
    return data


# -- Response records ----------------------------------------------------------


@dataclass
class Name:
    given_name: str = ""
    family_name: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Name":
        data = _expect_object(data, "name")
        return cls(
            given_name=_expect(data, "givenName", str, "name") or "",
            family_name=_expect(data, "familyName", str, "name") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"familyName": self.family_name, "givenName": self.given_name}


@dataclass
class Member:
    """A ``members`` (Group) or ``groups`` (User) entry."""

    value: str
    display: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, where: str = "members") -> "Member":
        data = _expect_object(data, where)
        value = _expect(data, "value", str, where)
        if value is None:
            raise SCIMResponseError(f"{where}.value is required")
        return cls(value=value, display=_expect(data, "display", str, where))


@dataclass
class GroupResource:
    id: Optional[str]
    display_name: str = ""
    members: List[Member] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "GroupResource":
        data = _expect_object(data, "Group")
        members = _expect(data, "members", list, "Group") or []
        return cls(
            id=_expect(data, "id", str, "Group"),
            display_name=_expect(data, "displayName", str, "Group") or "",
            members=[Member.from_dict(m, "Group.members") for m in members],
        )


@dataclass
class UserResource:
    id: Optional[str]
    external_id: Optional[str] = None
    user_name: str = ""
    name: Name = field(default_factory=Name)
    emails: List[str] = field(default_factory=list)
    timezone: Optional[str] = None
    active: bool = True
    groups: List[Member] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "UserResource":
        data = _expect_object(data, "User")
        name = _expect(data, "name", dict, "User")
        emails = _expect(data, "emails", list, "User") or []
        groups = _expect(data, "groups", list, "User") or []
        active = _expect(data, "active", bool, "User")
        return cls(
            id=_expect(data, "id", str, "User"),
            external_id=_expect(data, "externalId", str, "User"),
            user_name=_expect(data, "userName", str, "User") or "",
            name=Name.from_dict(name) if name is not None else Name(),
            emails=[
                _expect_object(e, "User.emails").get("value", "") for e in emails
            ],
            timezone=_expect(data, "timezone", str, "User"),
            active=True if active is None else active,
            groups=[Member.from_dict(g, "User.groups") for g in groups],
        )


@dataclass
class ListResponse:
    """A search result.  Only the ids of the returned resources matter here."""

    total_results: int = 0
    resources: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ListResponse":
        # Some directories answer an empty search with no body at all
        if data is None:
            return cls()
        data = _expect_object(data, "ListResponse")
        resources = _expect(data, "Resources", list, "ListResponse") or []
        for i, r in enumerate(resources):
            _expect_object(r, f"ListResponse.Resources[{i}]")
        total = _expect(data, "totalResults", int, "ListResponse")
        return cls(
            total_results=len(resources) if total is None else total,
            resources=resources,
        )

    def first_id(self) -> Optional[str]:
        """Return the ``id`` of the first resource, or None if there is none."""
        if not self.resources:
            return None
        return _expect(self.resources[0], "id", str, "ListResponse.Resources[0]")


# -- Request payloads ----------------------------------------------------------


def make_group(display_name: str) -> Dict[str, Any]:
    """Build a Group creation payload with no members."""
    return {
        "schemas": [GROUP_SCHEMA],
        "displayName": display_name,
        "members": [],
    }


def make_user(
    external_id: str,
    email: str,
    given_name: str,
    timezone: str = DEFAULT_TIMEZONE,
) -> Dict[str, Any]:
    """Build a User creation payload.

    ``userName`` is the email address.  The family name is always empty
    because the identity provider only hands over a single display name.
    """
    return {
        "schemas": [USER_SCHEMA],
        "externalId": external_id,
        "userName": email,
        "name": Name(given_name=given_name).to_dict(),
        "emails": [{"value": email, "primary": True}],
        "timezone": timezone,
        "active": True,
        "groups": [],
    }


def make_name_update(given_name: str) -> Dict[str, Any]:
    """Build the PUT payload that replaces ``name`` on an existing user."""
    return {
        "schemas": [USER_SCHEMA],
        "name": Name(given_name=given_name).to_dict(),
    }


def make_patch(operations: list) -> Dict[str, Any]:
    """Generate a SCIM PatchOp payload wrapping the given operations list."""
    return {
        "schemas": [PATCH_OP_SCHEMA],
        "Operations": operations,
    }


def make_add_member(user_id: str) -> Dict[str, Any]:
    """PatchOp that adds one user to a group's ``members``."""
    return make_patch([{
        "op": "Add",
        "path": "members",
        "value": [{"value": user_id}],
    }])


def equality_filter(attribute: str, value: str) -> str:
    """Build a SCIM ``eq`` filter expression with the value quoted."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{attribute} eq "{escaped}"'
