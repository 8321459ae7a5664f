"""Tests for the SCIM resource records and payload builders."""

import pytest

from scim_provision.http_client import SCIMResponseError
from scim_provision.resources import (
    GROUP_SCHEMA,
    PATCH_OP_SCHEMA,
    USER_SCHEMA,
    GroupResource,
    ListResponse,
    UserResource,
    equality_filter,
    make_add_member,
    make_group,
    make_name_update,
    make_user,
)


def test_make_group():
    assert make_group("Auth0 User") == {
        "schemas": [GROUP_SCHEMA],
        "displayName": "Auth0 User",
        "members": [],
    }


def test_make_user():
    payload = make_user("jane_doe_example_com", "jane.doe@example.com", "Jane Doe")
    assert payload == {
        "schemas": [USER_SCHEMA],
        "externalId": "jane_doe_example_com",
        "userName": "jane.doe@example.com",
        "name": {"familyName": "", "givenName": "Jane Doe"},
        "emails": [{"value": "jane.doe@example.com", "primary": True}],
        "timezone": "Japan/Tokyo",
        "active": True,
        "groups": [],
    }


def test_make_user_custom_timezone():
    assert make_user("x", "x@example.com", "X", timezone="Europe/Berlin")["timezone"] == "Europe/Berlin"


def test_make_name_update_resets_family_name():
    assert make_name_update("Jane") == {
        "schemas": [USER_SCHEMA],
        "name": {"familyName": "", "givenName": "Jane"},
    }


def test_make_add_member():
    assert make_add_member("u-1") == {
        "schemas": [PATCH_OP_SCHEMA],
        "Operations": [{"op": "Add", "path": "members", "value": [{"value": "u-1"}]}],
    }


def test_equality_filter_quotes_value():
    assert equality_filter("displayName", "Auth0 User") == 'displayName eq "Auth0 User"'
    assert equality_filter("displayName", 'say "hi"') == 'displayName eq "say \\"hi\\""'


class TestListResponse:

    def test_first_id(self):
        lr = ListResponse.from_dict({"totalResults": 2, "Resources": [{"id": "a"}, {"id": "b"}]})
        assert lr.total_results == 2
        assert lr.first_id() == "a"

    def test_missing_resources(self):
        assert ListResponse.from_dict({"totalResults": 0}).first_id() is None

    def test_empty_resources(self):
        assert ListResponse.from_dict({"Resources": []}).first_id() is None

    def test_none_body(self):
        assert ListResponse.from_dict(None).first_id() is None

    def test_total_defaults_to_resource_count(self):
        assert ListResponse.from_dict({"Resources": [{"id": "a"}]}).total_results == 1

    def test_resources_not_a_list(self):
        with pytest.raises(SCIMResponseError):
            ListResponse.from_dict({"Resources": "nope"})

    def test_resource_not_an_object(self):
        with pytest.raises(SCIMResponseError):
            ListResponse.from_dict({"Resources": ["a"]})

    def test_body_not_an_object(self):
        with pytest.raises(SCIMResponseError):
            ListResponse.from_dict([{"id": "a"}])

    def test_first_resource_without_id(self):
        assert ListResponse.from_dict({"Resources": [{"displayName": "x"}]}).first_id() is None


class TestGroupResource:

    def test_parse(self):
        g = GroupResource.from_dict({
            "id": "g1",
            "displayName": "Admins",
            "members": [{"value": "u1", "display": "Jane"}],
        })
        assert g.id == "g1"
        assert g.display_name == "Admins"
        assert g.members[0].value == "u1"
        assert g.members[0].display == "Jane"

    def test_missing_id(self):
        assert GroupResource.from_dict({"displayName": "Admins"}).id is None

    def test_member_without_value(self):
        with pytest.raises(SCIMResponseError):
            GroupResource.from_dict({"id": "g1", "members": [{"display": "x"}]})

    def test_wrong_type(self):
        with pytest.raises(SCIMResponseError):
            GroupResource.from_dict({"id": 5})


class TestUserResource:

    def test_parse(self):
        u = UserResource.from_dict({
            "id": "u1",
            "externalId": "jane_doe_example_com",
            "userName": "jane.doe@example.com",
            "name": {"givenName": "Jane Doe", "familyName": ""},
            "emails": [{"value": "jane.doe@example.com", "primary": True}],
            "timezone": "Japan/Tokyo",
            "active": False,
            "groups": [{"value": "g1"}],
        })
        assert u.id == "u1"
        assert u.external_id == "jane_doe_example_com"
        assert u.name.given_name == "Jane Doe"
        assert u.emails == ["jane.doe@example.com"]
        assert u.active is False
        assert u.groups[0].value == "g1"

    def test_defaults(self):
        u = UserResource.from_dict({})
        assert u.id is None
        assert u.active is True
        assert u.name.given_name == ""

    def test_active_must_be_bool(self):
        with pytest.raises(SCIMResponseError):
            UserResource.from_dict({"id": "u1", "active": "yes"})
