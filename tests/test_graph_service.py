"""Tests for the Neo4j adapter against a mocked driver."""

from unittest.mock import MagicMock, patch

import pytest
from neo4j import RoutingControl

from cograph.config import settings
from cograph.exceptions import InvalidEntityTypeError
from cograph.graph.database import (
    INDEX_QUERIES,
    GraphService,
    _depth_pattern,
    _traversal_nodes_cypher,
)
from cograph.graph.setup_index import main, setup_graph_indexes
from cograph.models.graph import EntityNodeRecord, FileNodeRecord, ImportRelationshipRecord


class FakeNode(dict):
    def __init__(self, labels, **props):
        super().__init__(props)
        self.labels = frozenset(labels)


class FakeRel(dict):
    def __init__(self, rel_type, **props):
        super().__init__(props)
        self.type = rel_type


def _service(*results):
    """A connected service whose driver returns *results* in order."""
    svc = GraphService("neo4j://localhost", "neo4j", "secret", database="graphs")
    driver = MagicMock()
    driver.execute_query.side_effect = [(records, None, None) for records in results]
    svc._driver = driver
    return svc, driver


def _entity(label="Function"):
    return EntityNodeRecord(
        id="entity-r1-src/a.ts-run",
        file_id="file-r1-src/a.ts",
        name="run",
        type=label,
        start_line=1,
        end_line=4,
    )


class TestLifecycle:
    def test_requires_connection(self):
        svc = GraphService("neo4j://localhost", "neo4j", "secret")

        with pytest.raises(RuntimeError):
            svc.count_repository_files("r1")

    def test_ensure_indexes(self):
        svc, driver = _service(*[[] for _ in INDEX_QUERIES])

        svc.ensure_indexes()

        assert driver.execute_query.call_count == len(INDEX_QUERIES)
        assert all("IF NOT EXISTS" in c.args[0] for c in driver.execute_query.call_args_list)


class TestWrites:
    def test_bulk_file_nodes_are_chunked(self):
        svc, driver = _service([{"cnt": 2}], [{"cnt": 1}])
        records = [
            FileNodeRecord(
                id=f"file-r1-src/f{i}.ts",
                repository_id="r1",
                path=f"src/f{i}.ts",
                name=f"f{i}.ts",
                type="ts",
                lines_of_code=3,
            )
            for i in range(3)
        ]

        assert svc.bulk_create_file_nodes(records, batch_size=2) == 3

        first = driver.execute_query.call_args_list[0]
        assert first.kwargs["routing_"] == RoutingControl.WRITE
        assert first.kwargs["database_"] == "graphs"
        assert first.kwargs["parameters_"]["files"][0]["repositoryId"] == "r1"
        assert first.kwargs["parameters_"]["files"][0]["linesOfCode"] == 3

    def test_entity_label_is_interpolated(self):
        svc, driver = _service([{"e": {"id": "entity-r1-src/a.ts-run"}}])

        svc.create_entity_node(_entity("Class"))

        cypher = driver.execute_query.call_args.args[0]
        assert "CREATE (e:Class" in cypher
        assert "CONTAINS" in cypher

    def test_entity_label_outside_allow_list(self):
        svc, driver = _service()
        record = EntityNodeRecord.model_construct(**{**_entity().__dict__, "type": "Foo) DETACH DELETE (n"})

        with pytest.raises(InvalidEntityTypeError):
            svc.create_entity_node(record)
        driver.execute_query.assert_not_called()

    def test_entity_without_file(self):
        svc, _ = _service([])

        with pytest.raises(LookupError):
            svc.create_entity_node(_entity())

    def test_single_file_node(self):
        svc, driver = _service([{"f": {"id": "file-r1-src/a.ts", "path": "src/a.ts"}}])
        record = FileNodeRecord(
            id="file-r1-src/a.ts",
            repository_id="r1",
            path="src/a.ts",
            name="a.ts",
            type="ts",
            lines_of_code=1,
        )

        assert svc.create_file_node(record)["path"] == "src/a.ts"
        assert driver.execute_query.call_args.kwargs["parameters_"]["id"] == "file-r1-src/a.ts"

    def test_single_import_relationship(self):
        svc, driver = _service([{"r": {"specifiers": ["x"]}}], [])
        record = ImportRelationshipRecord(
            source_file_id="file-r1-src/a.ts", target_file_id="file-r1-src/b.ts", specifiers=["x"]
        )

        assert svc.create_import_relationship(record) == {"specifiers": ["x"]}
        params = driver.execute_query.call_args.kwargs["parameters_"]
        assert params == {
            "sourceFileId": "file-r1-src/a.ts",
            "targetFileId": "file-r1-src/b.ts",
            "specifiers": ["x"],
        }
        with pytest.raises(LookupError):
            svc.create_import_relationship(record)

    def test_single_export_relationship(self):
        svc, driver = _service([{"r": {}}])

        svc.create_export_relationship("file-1", "entity-1")

        assert driver.execute_query.call_args.kwargs["parameters_"] == {
            "fileId": "file-1",
            "entityId": "entity-1",
        }

    def test_delete_repository_graph(self):
        svc, driver = _service([{"cnt": 4}])

        assert svc.delete_repository_graph("r1") == 4
        assert driver.execute_query.call_args.kwargs["parameters_"] == {"repositoryId": "r1"}


class TestReads:
    def test_repository_files_are_normalised(self):
        file_node = FakeNode(["File"], id="file-r1-src/a.ts", path="src/a.ts")
        target = FakeNode(["File"], id="file-r1-src/b.ts", path="src/b.ts")
        entity = FakeNode(["Function"], id="entity-r1-src/a.ts-run", name="run")
        svc, driver = _service([
            {
                "f": file_node,
                "entities": [entity, None],
                "imports": [
                    {"rel": FakeRel("IMPORTS", specifiers=["b"]), "target": target},
                    {"rel": None, "target": None},
                ],
            }
        ])

        rows = svc.read_repository_files("r1", offset=0, limit=10, file_type="ts")

        assert rows == [
            {
                "file": {"labels": ["File"], "properties": dict(file_node)},
                "entities": [{"labels": ["Function"], "properties": dict(entity)}],
                "imports": [
                    {
                        "rel": {
                            "type": "IMPORTS",
                            "start": "file-r1-src/a.ts",
                            "end": "file-r1-src/b.ts",
                            "properties": {"specifiers": ["b"]},
                        },
                        "target": {"labels": ["File"], "properties": dict(target)},
                    }
                ],
            }
        ]
        call = driver.execute_query.call_args
        assert call.kwargs["routing_"] == RoutingControl.READ
        assert call.kwargs["parameters_"]["fileType"] == "ts"
        assert "f.type = $fileType" in call.args[0]

    def test_get_file_node(self):
        svc, _ = _service(
            [{"f": FakeNode(["File"], id="file-1"), "entities": [FakeNode(["Class"], id="e-1"), None]}],
            [],
        )

        assert svc.get_file_node("file-1") == {"id": "file-1", "entities": [{"id": "e-1"}]}
        assert svc.get_file_node("file-2") is None

    def test_read_cycles(self):
        svc, _ = _service([{"cycleIds": ["a", "b", "a"], "cyclePaths": ["x", "y", "x"], "cycleLength": 2}])

        assert svc.read_cycles("r1", 100) == [
            {"cycle_ids": ["a", "b", "a"], "cycle_paths": ["x", "y", "x"], "length": 2}
        ]

    def test_invalid_depth(self):
        svc, driver = _service()

        with pytest.raises(ValueError):
            svc.read_traversal_nodes("file-1", 5)
        driver.execute_query.assert_not_called()


class TestCypherTemplates:
    @pytest.mark.parametrize(
        "depth, pattern",
        [(1, "*1..1"), (2, "*1..2"), (3, "*1..3"), (-1, "*")],
    )
    def test_depth_pattern(self, depth, pattern):
        assert _depth_pattern(depth) == pattern

    def test_dependents_reverse_the_direction(self):
        cypher = _traversal_nodes_cypher(2, "dependents")

        assert "(other:File)-[:IMPORTS*1..2]->(f)" in cypher
        assert "other.id <> $fileId" in cypher


class TestSetupIndexes:
    def test_failure_is_reraised(self):
        svc = MagicMock()
        svc.ensure_indexes.side_effect = RuntimeError("unauthorised")

        with pytest.raises(RuntimeError):
            setup_graph_indexes(svc)

    def test_main_requires_credentials(self):
        with patch.object(settings, "neo4j_uri", ""):
            assert main() == 1
