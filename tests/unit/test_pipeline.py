"""Tests for CompilationPipeline entry points and stage validation."""

from __future__ import annotations

import pytest
from bson import ObjectId

from docjoin.compiler.pipeline import CompilationPipeline, CompilationResult
from docjoin.compiler.relationship import RelationshipResolver
from docjoin.compiler.validator import validate_stages
from docjoin.models.errors import SchemaError
from docjoin.models.query import Limit, Operation, Operator, Query
from tests.conftest import USER_ID

USER_VIEW = {"$project": {"_id": True, "name": True, "email": True}}


class TestEntryPoints:
    def test_primary_id_match_uses_primary_column(self, pipeline: CompilationPipeline) -> None:
        match = pipeline.primary_id_match("User", USER_ID)
        assert list(match) == ["id"]
        assert match["id"].operator is Operator.EQUAL
        assert match["id"].value == USER_ID

    def test_find_by_id(self, pipeline: CompilationPipeline) -> None:
        assert pipeline.find_by_id("User", USER_ID) == [
            {"$match": {"_id": {"$eq": ObjectId(USER_ID)}}},
            USER_VIEW,
        ]

    def test_find_by_id_with_fields(self, pipeline: CompilationPipeline) -> None:
        stages = pipeline.find_by_id("User", USER_ID, ["name"])
        assert stages[-1] == {"$project": {"name": True, "_id": True}}

    def test_count_appends_count_stage(self, pipeline: CompilationPipeline) -> None:
        query = Query(pre={"name": Operation(operator=Operator.EQUAL, value="ann")})
        assert pipeline.count("User", query) == [
            {"$match": {"name": {"$eq": "ann"}}},
            USER_VIEW,
            {"$count": "records"},
        ]

    def test_build_matches_resolver(
        self, pipeline: CompilationPipeline, resolver: RelationshipResolver
    ) -> None:
        query = Query(limit=Limit(start=2, count=2))
        assert pipeline.build("Feed", query) == resolver.build("Feed", query)

    def test_unknown_entity_raises(self, pipeline: CompilationPipeline) -> None:
        with pytest.raises(SchemaError, match="Unknown entity"):
            pipeline.build("Nope")


class TestCompile:
    def test_result_carries_collection(self, pipeline: CompilationPipeline) -> None:
        result = pipeline.compile("Account", fields=["owner.name"])
        assert isinstance(result, CompilationResult)
        assert result.entity == "Account"
        assert result.collection == "accounts"
        assert result.stages_valid
        assert result.warnings == []

    def test_compile_count(self, pipeline: CompilationPipeline) -> None:
        result = pipeline.compile_count("Team")
        assert result.collection == "teams"
        assert result.stages[-1] == {"$count": "records"}
        assert result.stages_valid

    def test_nested_array_pipeline_is_valid(self, pipeline: CompilationPipeline) -> None:
        assert pipeline.compile("Mailbox").stages_valid


class TestValidateStages:
    def test_valid_stages(self) -> None:
        stages = [
            {"$match": {"a": 1}},
            {"$unwind": {"path": "$a"}},
            {"$group": {"_id": "$_id"}},
            {"$skip": 1},
            {"$limit": 0},
            {"$project": {"a": True}},
        ]
        assert validate_stages(stages) == []

    def test_multi_key_stage(self) -> None:
        errors = validate_stages([{"$match": {}, "$limit": 1}])
        assert errors == ["Stage [0] must be a single-key document"]

    def test_unknown_operator(self) -> None:
        assert "unknown operator '$merge'" in validate_stages([{"$merge": "x"}])[0]

    def test_lookup_is_checked_recursively(self) -> None:
        stages = [
            {
                "$lookup": {
                    "from": "users",
                    "let": {},
                    "pipeline": [{"$limit": -1}],
                    "as": "owner",
                }
            }
        ]
        assert validate_stages(stages) == [
            "Stage [0].pipeline[0] $limit must be a non-negative integer"
        ]

    def test_lookup_missing_keys(self) -> None:
        errors = validate_stages([{"$lookup": {"from": "users", "as": "x"}}])
        assert errors == ["Stage [0] $lookup is missing let, pipeline"]

    @pytest.mark.parametrize(
        ("stage", "fragment"),
        [
            ({"$unwind": {"path": "owner"}}, "$unwind path"),
            ({"$group": {"total": {"$sum": 1}}}, "$group has no _id"),
            ({"$skip": "1"}, "$skip must be"),
            ({"$project": {}}, "$project is empty"),
        ],
    )
    def test_malformed_stages(self, stage: dict, fragment: str) -> None:
        errors = validate_stages([stage])
        assert len(errors) == 1
        assert fragment in errors[0]
