"""Shared schema fixtures: a small blog platform."""

from __future__ import annotations

import copy

import pytest
from schemagate.schema import load_schema

BLOG_SCHEMA: dict = {
    "enums": [
        {"name": "PostStatus", "values": ["DRAFT", "REVIEW", "PUBLISHED"]},
    ],
    "models": [
        {
            "name": "Post",
            "fields": [
                {"name": "title", "type": "string", "required": True},
                {"name": "content", "type": "string", "required": True},
                {"name": "authorId", "type": "string", "required": True},
                {"name": "published", "type": "boolean", "default": False},
                {"name": "publishedAt", "type": "datetime"},
                {"name": "status", "type": "PostStatus", "default": "DRAFT"},
                {"name": "tags", "type": "string", "array": True},
                {"name": "viewCount", "type": "integer", "default": 0},
                {"name": "comments", "type": "Comment", "relation": "hasMany", "references": "postId"},
            ],
            "authorization": [
                {"allow": "owner", "operations": ["create", "read", "update", "delete"]},
                {
                    "allow": "authenticated",
                    "operations": ["read"],
                    "when": {"field": "published", "operator": "eq", "value": True},
                },
                {"allow": "groups", "groups": ["admin"]},
            ],
            "secondaryIndexes": [
                {"name": "byAuthor", "partitionKey": "authorId", "sortKey": "createdAt"},
                {"name": "byPublished", "partitionKey": "published", "sortKey": "publishedAt"},
            ],
        },
        {
            "name": "Comment",
            "fields": [
                {"name": "postId", "type": "id", "required": True},
                {"name": "content", "type": "string", "required": True},
                {"name": "post", "type": "Post", "relation": "belongsTo", "references": "postId"},
            ],
            "authorization": [
                {"allow": "owner"},
                {"allow": "authenticated", "operations": ["read"]},
                {"allow": "public", "operations": ["read"]},
            ],
            "secondaryIndexes": [
                {"partitionKey": "postId", "sortKey": "createdAt"},
            ],
        },
        {
            "name": "Profile",
            "identifier": ["userId"],
            "fields": [
                {"name": "userId", "type": "string", "required": True},
                {"name": "email", "type": "email", "required": True},
                {"name": "website", "type": "url"},
            ],
            "authorization": [
                {"allow": "owner", "ownerField": "userId"},
                {"allow": "authenticated", "operations": ["read"]},
            ],
        },
    ],
    "customTypes": [
        {
            "name": "AuthorStats",
            "fields": [
                {"name": "postCount", "type": "integer", "required": True},
                {"name": "totalViews", "type": "integer"},
            ],
        },
    ],
    "operations": [
        {
            "name": "getAuthorStats",
            "kind": "query",
            "arguments": [
                {"name": "userId", "type": "string", "required": True},
                {"name": "includeDrafts", "type": "boolean", "default": False},
            ],
            "returns": "AuthorStats",
            "handler": "functions/getAuthorStats",
            "authorization": [{"allow": "authenticated"}],
        },
        {
            "name": "searchPosts",
            "kind": "query",
            "arguments": [
                {"name": "query", "type": "string", "required": True},
                {"name": "status", "type": "PostStatus"},
                {"name": "limit", "type": "integer", "default": 10},
            ],
            "returns": {"type": "Post", "array": True},
            "handler": "functions/searchPosts",
            "authorization": [{"allow": "authenticated"}, {"allow": "public"}],
        },
        {
            "name": "publishPost",
            "kind": "mutation",
            "arguments": [{"name": "postId", "type": "id", "required": True}],
            "returns": {"fields": [{"name": "success", "type": "boolean", "required": True}, {"name": "message", "type": "string"}]},
            "handler": "functions/publishPost",
            "authorization": [{"allow": "groups", "groups": ["editor", "admin"]}],
        },
        {
            "name": "internalReindex",
            "kind": "mutation",
            "returns": "boolean",
            "handler": "functions/internalReindex",
        },
    ],
}


@pytest.fixture
def blog_schema() -> dict:
    """A fresh, mutable copy of the blog schema document."""
    return copy.deepcopy(BLOG_SCHEMA)


@pytest.fixture
def registry(blog_schema):
    return load_schema(blog_schema)
