"""Tests for relationship resolution: lookups, decomposition and regrouping."""

from __future__ import annotations

from typing import Any

import pytest

from docjoin.compiler.relationship import RelationshipResolver
from docjoin.models.errors import SchemaError
from docjoin.models.query import Limit, Operation, Operator, Order, Query
from docjoin.models.schema import Format
from docjoin.registry import SchemaBuilder

USER_VIEW = {"$project": {"_id": True, "name": True, "email": True}}


def lookup_match(foreign: str) -> dict[str, Any]:
    return {"$match": {"$expr": {"$eq": [f"${foreign}", "$$id"]}}}


def kinds(stages: list[dict[str, Any]]) -> list[str]:
    return [next(iter(stage)) for stage in stages]


class TestScalarEntities:
    def test_user_without_fields_projects_every_column(self) -> None:
        builder = SchemaBuilder()
        builder.entity("User").primary().column("name", Format.STRING)
        resolver = RelationshipResolver(builder.build())
        assert resolver.build("User", Query(), []) == [{"$project": {"_id": True, "name": True}}]

    def test_no_join_identity(self, resolver: RelationshipResolver) -> None:
        query = Query(
            pre={"name": Operation(operator=Operator.EQUAL, value="ann")},
            sort={"name": Order.ASCENDING},
            limit=Limit(start=10, count=5),
        )
        assert resolver.build("User", query) == [
            {"$match": {"name": {"$eq": "ann"}}},
            {"$sort": {"name": 1}},
            {"$skip": 10},
            {"$limit": 5},
            USER_VIEW,
        ]

    def test_zero_start_omits_skip(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("User", Query(limit=Limit(count=3)))
        assert kinds(stages) == ["$limit", "$project"]

    def test_post_filter_follows_relationship_stages(self, resolver: RelationshipResolver) -> None:
        query = Query(
            pre={"ownerId": Operation(operator=Operator.NOT_EQUAL, value=None)},
            post={"owner.name": Operation(operator=Operator.EQUAL, value="ann")},
        )
        stages = resolver.build("Account", query, ["owner.name"])
        assert kinds(stages) == ["$match", "$lookup", "$unwind", "$match", "$project"]
        assert stages[3] == {"$match": {"owner.name": {"$eq": "ann"}}}

    def test_primary_key_is_retained(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("User", None, ["email"])
        assert stages == [{"$project": {"email": True, "_id": True}}]

    def test_deterministic(self, resolver: RelationshipResolver) -> None:
        fields = ["owner.name", "settings.contact.name"]
        assert resolver.build("Account", Query(), fields) == resolver.build(
            "Account", Query(), fields
        )

    def test_root_without_primary_raises(self, resolver: RelationshipResolver) -> None:
        with pytest.raises(SchemaError, match="no primary column"):
            resolver.build("Settings")

    def test_unknown_field_path_in_filter_raises(self, resolver: RelationshipResolver) -> None:
        query = Query(pre={"owner.age": Operation(operator=Operator.EQUAL, value=1)})
        with pytest.raises(SchemaError):
            resolver.build("Account", query)


class TestView:
    def test_view_orders_primary_real_then_join_keys(self, resolver: RelationshipResolver) -> None:
        assert resolver.view("Mailbox", []) == [
            "_id",
            "created",
            "readerIds",
            "ownerName",
            "labels",
            "readers",
            "namesakes",
        ]

    def test_view_keeps_local_key_of_requested_join(self, resolver: RelationshipResolver) -> None:
        assert resolver.view("Account", ["owner.name"]) == ["_id", "ownerId", "owner"]

    def test_embedded_view_has_no_primary(self, resolver: RelationshipResolver) -> None:
        assert resolver.view("Settings", []) == ["contactId", "contact"]


class TestSingleJoins:
    def test_account_owner_and_nested_contact(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("Account", Query(), ["owner.name", "settings.contact.name"])
        name_only = {"$project": {"name": True, "_id": True}}
        assert stages == [
            {
                "$lookup": {
                    "from": "users",
                    "let": {"id": "$ownerId"},
                    "pipeline": [lookup_match("_id"), name_only],
                    "as": "owner",
                }
            },
            {"$unwind": {"path": "$owner", "preserveNullAndEmptyArrays": True}},
            {
                "$lookup": {
                    "from": "users",
                    "let": {"id": "$settings.contactId"},
                    "pipeline": [lookup_match("_id"), name_only],
                    "as": "settings.contact",
                }
            },
            {"$unwind": {"path": "$settings.contact", "preserveNullAndEmptyArrays": True}},
            {"$project": {"owner": True, "settings": {"contact": True}, "_id": True}},
        ]

    def test_path_prefix_is_retained(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("Account", Query(), ["settings.contact.name"])
        final = stages[-1]["$project"]
        assert final["settings"] == {"contact": True}
        assert "owner" not in final

    def test_unrestricted_build_uses_declared_join_fields(
        self, resolver: RelationshipResolver
    ) -> None:
        stages = resolver.build("Mailbox", Query(), [])
        lookup = next(s["$lookup"] for s in stages if "$lookup" in s)
        assert lookup["as"] == "readers"
        assert lookup["pipeline"][-1] == {"$project": {"name": True, "_id": True}}

    def test_selected_join_without_sub_fields_projects_whole_target(
        self, resolver: RelationshipResolver
    ) -> None:
        stages = resolver.build("Mailbox", Query(), ["readers"])
        lookup = next(s["$lookup"] for s in stages if "$lookup" in s)
        assert lookup["pipeline"][-1] == USER_VIEW

    def test_join_all_keeps_array(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("Mailbox", Query(), ["namesakes"])
        assert stages == [
            {
                "$lookup": {
                    "from": "users",
                    "let": {"id": "$ownerName"},
                    "pipeline": [lookup_match("name"), USER_VIEW],
                    "as": "namesakes",
                }
            },
            {"$project": {"namesakes": True, "_id": True}},
        ]

    def test_join_query_is_compiled_into_lookup(self) -> None:
        builder = SchemaBuilder()
        builder.entity("User", storage="users").primary().column("name", Format.STRING)
        (
            builder.entity("Post", storage="posts")
            .primary()
            .column("authorId", Format.ID)
            .join(
                "author",
                local="authorId",
                entity="User",
                query=Query(
                    pre={"name": Operation(operator=Operator.NOT_EQUAL, value="")},
                    limit=Limit(count=1),
                ),
            )
        )
        stages = RelationshipResolver(builder.build()).build("Post", Query(), ["author"])
        assert stages[0]["$lookup"]["pipeline"] == [
            lookup_match("_id"),
            {"$match": {"name": {"$ne": ""}}},
            {"$limit": 1},
            {"$project": {"_id": True, "name": True}},
        ]


class TestArrayDecomposition:
    def test_join_inside_array_records_index_and_regroups(
        self, resolver: RelationshipResolver
    ) -> None:
        stages = resolver.build("Feed", Query(), [])
        assert stages == [
            {
                "$unwind": {
                    "path": "$notifications",
                    "includeArrayIndex": "_notificationsIndex",
                    "preserveNullAndEmptyArrays": True,
                }
            },
            {
                "$lookup": {
                    "from": "users",
                    "let": {"id": "$notifications.userId"},
                    "pipeline": [lookup_match("_id"), USER_VIEW],
                    "as": "notifications.user",
                }
            },
            {"$unwind": {"path": "$notifications.user", "preserveNullAndEmptyArrays": True}},
            {"$group": {"_id": "$_id", "notifications": {"$push": "$notifications"}}},
            {
                "$project": {
                    "_id": {"$ifNull": ["$_id", "$$REMOVE"]},
                    "notifications": {"$ifNull": ["$notifications", "$$REMOVE"]},
                }
            },
            {
                "$project": {
                    "notifications": {"user": True, "message": True, "userId": True},
                    "_id": True,
                }
            },
        ]

    def test_decomposition_precedes_lookup(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("Feed", Query(), ["notifications.user.name"])
        assert kinds(stages)[:2] == ["$unwind", "$lookup"]
        assert stages[0]["$unwind"]["includeArrayIndex"] == "_notificationsIndex"

    def test_stacked_arrays_group_on_pending_index(self, resolver: RelationshipResolver) -> None:
        stages = resolver.build("Team", Query(), [])
        assert kinds(stages) == [
            "$unwind",
            "$unwind",
            "$lookup",
            "$unwind",
            "$group",
            "$project",
            "$group",
            "$project",
            "$project",
        ]
        assert stages[0]["$unwind"]["includeArrayIndex"] == "_groupsIndex"
        assert stages[1]["$unwind"]["path"] == "$groups.members"
        assert stages[1]["$unwind"]["includeArrayIndex"] == "_membersIndex"

        inner = stages[4]["$group"]
        assert inner["_id"] == {"_id": "$_id", "groups": "$_groupsIndex"}
        assert inner["_realId"] == {"$first": "$_id"}
        assert inner["_groupsIndex"] == {"$first": "$_groupsIndex"}
        assert inner["_members"] == {"$push": "$groups.members"}

        outer = stages[6]["$group"]
        assert outer["_id"] == "$_realId"
        assert outer["groups"] == {
            "$push": {"title": "$groups.title", "members": "$_members"}
        }
        assert stages[-1] == {
            "$project": {
                "groups": {"title": True, "members": {"user": True, "userId": True}},
                "_id": True,
            }
        }

    def test_many_valued_join_pushes_value_and_local_key(
        self, resolver: RelationshipResolver
    ) -> None:
        stages = resolver.build("Mailbox", Query(), ["readers.name"])
        assert stages[0] == {
            "$unwind": {
                "path": "$readerIds",
                "includeArrayIndex": "_readersIndex",
                "preserveNullAndEmptyArrays": True,
            }
        }
        group = stages[3]["$group"]
        assert group == {
            "_id": "$_id",
            "readerIds": {"$push": "$readerIds"},
            "readers": {"$push": "$readers"},
        }
        assert stages[4]["$project"] == {
            "_id": {"$ifNull": ["$_id", "$$REMOVE"]},
            "readerIds": {"$ifNull": ["$readerIds", "$$REMOVE"]},
            "readers": {"$ifNull": ["$readers", "$$REMOVE"]},
        }

    def test_single_embedded_object_is_unwound_after_regroup(self) -> None:
        builder = SchemaBuilder()
        builder.entity("User", storage="users").primary().column("name", Format.STRING)
        builder.entity("Tag").column("ownerId", Format.ID).join(
            "owner", local="ownerId", entity="User"
        )
        builder.entity("Profile").array("tags", entity="Tag")
        builder.entity("Page", storage="pages").primary().object("profile", "Profile")
        stages = RelationshipResolver(builder.build()).build("Page", Query(), [])
        assert stages[-2] == {"$unwind": {"path": "$profile"}}
        assert stages[-4]["$group"]["profile"] == {
            "$push": {"tags": "$_tags"}
        }
