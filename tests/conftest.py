"""Shared test fixtures for docjoin."""

from __future__ import annotations

import pytest

from docjoin.compiler.pipeline import CompilationPipeline
from docjoin.compiler.relationship import RelationshipResolver
from docjoin.models.schema import Format
from docjoin.parser.loader import TrackedLoader
from docjoin.parser.resolver import SchemaResolver
from docjoin.registry import SchemaBuilder, SchemaRegistry

USER_ID = "5f1d7c2e9b1e8a3d4c2b1a09"


def build_registry() -> SchemaRegistry:
    """Users, accounts with an embedded settings object, feeds of notifications, teams of groups."""
    builder = SchemaBuilder()
    (
        builder.entity("User", storage="users")
        .primary()
        .column("name", Format.STRING, required=True, maximum=64)
        .column("email", Format.STRING)
    )
    (
        builder.entity("Settings")
        .column("contactId", Format.ID)
        .join("contact", local="contactId", entity="User")
    )
    (
        builder.entity("Account", storage="accounts")
        .primary()
        .column("ownerId", Format.ID, required=True)
        .join("owner", local="ownerId", entity="User")
        .object("settings", "Settings")
    )
    (
        builder.entity("Notification")
        .column("message", Format.STRING)
        .column("userId", Format.ID)
        .join("user", local="userId", entity="User")
    )
    (
        builder.entity("Feed", storage="feeds")
        .primary()
        .array("notifications", entity="Notification")
    )
    (
        builder.entity("Member")
        .column("userId", Format.ID)
        .join("user", local="userId", entity="User")
    )
    (
        builder.entity("Group")
        .column("title", Format.STRING)
        .array("members", entity="Member")
    )
    builder.entity("Team", storage="teams").primary().array("groups", entity="Group")
    (
        builder.entity("Mailbox", storage="mailboxes")
        .primary()
        .column("created", Format.DATE)
        .array("readerIds", items=Format.ID)
        .join_many("readers", local="readerIds", entity="User", fields=["name"])
        .join_all("namesakes", local="ownerName", entity="User", foreign="name")
        .column("ownerName", Format.STRING)
        .map("labels", items=Format.STRING)
    )
    return builder.build()


@pytest.fixture
def registry() -> SchemaRegistry:
    return build_registry()


@pytest.fixture
def resolver(registry: SchemaRegistry) -> RelationshipResolver:
    return RelationshipResolver(registry)


@pytest.fixture
def pipeline(registry: SchemaRegistry) -> CompilationPipeline:
    return CompilationPipeline(registry)


@pytest.fixture
def loader() -> TrackedLoader:
    return TrackedLoader()


@pytest.fixture
def schema_resolver() -> SchemaResolver:
    return SchemaResolver()


SAMPLE_SCHEMA_YAML = """\
entities:
  User:
    storage: users
    primary: id
    columns:
      id:
        type: id
        alias: _id
        required: true
      name:
        type: string
        required: true
        maximum: 64
      email: string

  Settings:
    columns:
      contactId: id
      contact:
        join:
          entity: User
          local: contactId
          foreign: id

  Account:
    storage: accounts
    primary: id
    columns:
      id:
        type: id
        alias: _id
      ownerId:
        type: id
        required: true
      owner:
        join:
          entity: User
          local: ownerId
      settings:
        type: object
        entity: Settings
"""
