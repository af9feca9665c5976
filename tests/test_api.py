"""Tests for the HTTP surface."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from cograph.api.app import create_app
from cograph.api.deps import Services
from cograph.db.models import AnalysisJob, AnalysisStatus
from cograph.exceptions import AnalysisConflictError, ForbiddenError, NotFoundError
from cograph.models.annotations import AnnotationAuthor, FileAnnotation
from cograph.models.graph import CircularDependency, DependencyGraph, GraphNode, GraphNodeData


@pytest.fixture
def services():
    return Services(
        orchestrator=MagicMock(
            start_analysis=AsyncMock(),
            get_analysis_job=AsyncMock(),
            get_repository_files=AsyncMock(),
        ),
        query_engine=MagicMock(
            get_repository_graph=AsyncMock(),
            get_files_by_type=AsyncMock(),
            get_file_dependencies=AsyncMock(),
            get_file_dependents=AsyncMock(),
            get_repository_node_count=AsyncMock(),
            find_circular_dependencies=AsyncMock(),
        ),
        summaries=MagicMock(generate_file_summary=AsyncMock()),
        annotations=MagicMock(
            get_annotations=AsyncMock(),
            create_annotation=AsyncMock(),
            update_annotation=AsyncMock(),
            delete_annotation=AsyncMock(),
        ),
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def _graph():
    return DependencyGraph(
        nodes=[
            GraphNode(
                id="file-r1-src/a.ts",
                label="a.ts",
                type="file",
                data=GraphNodeData(neo4j_node_id="file-r1-src/a.ts", path="src/a.ts"),
            )
        ]
    )


class TestAnalysisRoutes:
    def test_start_analysis(self, client, services):
        services.orchestrator.start_analysis.return_value = "job-1"

        response = client.post("/repositories/r1/analysis", json={"branch": "main"})

        assert response.status_code == 202
        assert response.json() == {"jobId": "job-1"}
        services.orchestrator.start_analysis.assert_awaited_once_with("r1", branch="main")

    def test_start_analysis_without_body(self, client, services):
        services.orchestrator.start_analysis.return_value = "job-1"

        response = client.post("/repositories/r1/analysis")

        assert response.status_code == 202
        services.orchestrator.start_analysis.assert_awaited_once_with("r1", branch=None)

    def test_unknown_repository(self, client, services):
        services.orchestrator.start_analysis.side_effect = NotFoundError("Repository", "r1")

        assert client.post("/repositories/r1/analysis").status_code == 404

    def test_cooldown_conflict_sets_retry_after(self, client, services):
        services.orchestrator.start_analysis.side_effect = AnalysisConflictError(
            "job-0", "COMPLETED", retry_after_seconds=120
        )

        response = client.post("/repositories/r1/analysis")

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "120"
        assert response.json()["jobId"] == "job-0"

    def test_active_conflict_has_no_retry_after(self, client, services):
        services.orchestrator.start_analysis.side_effect = AnalysisConflictError("job-0", "ANALYSING")

        response = client.post("/repositories/r1/analysis")

        assert response.status_code == 409
        assert "Retry-After" not in response.headers

    def test_get_job(self, client, services):
        services.orchestrator.get_analysis_job.return_value = AnalysisJob(
            id="11111111-1111-1111-1111-111111111111",
            repository_id="22222222-2222-2222-2222-222222222222",
            status=AnalysisStatus.ANALYSING,
            progress=40,
            files_analysed=4,
            total_files=10,
        )

        body = client.get("/analysis/jobs/11111111-1111-1111-1111-111111111111").json()

        assert body["status"] == "ANALYSING"
        assert body["progress"] == 40
        assert body["filesAnalysed"] == 4
        assert body["totalFiles"] == 10
        assert body["errorMessage"] is None

    def test_unknown_job(self, client, services):
        services.orchestrator.get_analysis_job.side_effect = NotFoundError("Analysis job", "x")

        assert client.get("/analysis/jobs/x").status_code == 404

    def test_summary_empty_content(self, client, services):
        services.summaries.generate_file_summary.side_effect = ValueError("File content must not be empty")

        response = client.post("/files/f1/summary", json={"content": ""})

        assert response.status_code == 400

    def test_summary(self, client, services):
        services.summaries.generate_file_summary.return_value = "Does things."

        response = client.post("/files/f1/summary", json={"content": "x"})

        assert response.json() == {"fileId": "f1", "summary": "Does things."}


class TestGraphRoutes:
    def test_repository_graph(self, client, services):
        services.query_engine.get_repository_graph.return_value = _graph()

        response = client.get("/repositories/r1/graph", params={"limit": 10, "offset": 20})

        assert response.status_code == 200
        node = response.json()["nodes"][0]
        assert node["data"] == {"neo4jNodeId": "file-r1-src/a.ts", "path": "src/a.ts"}
        options = services.query_engine.get_repository_graph.call_args.args[1]
        assert (options.limit, options.offset) == (10, 20)

    def test_negative_offset_rejected(self, client):
        assert client.get("/repositories/r1/graph", params={"offset": -1}).status_code == 422

    def test_files_by_type(self, client, services):
        services.query_engine.get_files_by_type.return_value = DependencyGraph()

        response = client.get("/repositories/r1/graph/files", params={"type": "ts"})

        assert response.json() == {"nodes": [], "edges": []}
        assert services.query_engine.get_files_by_type.call_args.args[1] == "ts"

    def test_node_count(self, client, services):
        services.query_engine.get_repository_node_count.return_value = 7

        assert client.get("/repositories/r1/graph/count").json() == {"repositoryId": "r1", "total": 7}

    def test_cycles(self, client, services):
        services.query_engine.find_circular_dependencies.return_value = [
            CircularDependency(cycle=["a", "b", "a"], paths=["x", "y", "x"], length=2)
        ]

        assert client.get("/repositories/r1/graph/cycles").json() == [
            {"cycle": ["a", "b", "a"], "paths": ["x", "y", "x"], "length": 2}
        ]

    def test_dependencies_with_depth(self, client, services):
        services.query_engine.get_file_dependencies.return_value = _graph()

        response = client.get("/graph/files/file-r1-src/b.ts/dependencies", params={"depth": -1})

        assert response.status_code == 200
        services.query_engine.get_file_dependencies.assert_awaited_once_with("file-r1-src/b.ts", -1)

    def test_invalid_depth(self, client, services):
        services.query_engine.get_file_dependents.side_effect = ValueError("Unsupported traversal depth: 7")

        assert client.get("/graph/files/f1/dependents", params={"depth": 7}).status_code == 400

    def test_graph_failure(self, client, services):
        services.query_engine.get_repository_graph.side_effect = RuntimeError("neo4j down")

        assert client.get("/repositories/r1/graph").status_code == 500


def _annotation():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    return FileAnnotation(
        id="a1",
        title="Entry point",
        content="Boots the app.",
        linked_entity_ids=["e1"],
        author=AnnotationAuthor(id="user-1", name="Ada"),
        created_at=now,
        updated_at=now,
    )


class TestAnnotationRoutes:
    def test_list(self, client, services):
        services.annotations.get_annotations.return_value = [_annotation()]

        response = client.get("/files/f1/annotations")

        assert response.status_code == 200
        assert response.json()[0]["linkedEntityIds"] == ["e1"]
        assert response.json()[0]["author"] == {"id": "user-1", "name": "Ada"}

    def test_create_uses_caller_identity(self, client, services):
        services.annotations.create_annotation.return_value = _annotation()

        response = client.post(
            "/files/f1/annotations",
            json={"title": "Entry point", "content": "Boots the app."},
            headers={"X-User-Id": "user-1", "X-User-Name": "Ada"},
        )

        assert response.status_code == 201
        file_id, data, author = services.annotations.create_annotation.call_args.args
        assert file_id == "f1"
        assert data.title == "Entry point"
        assert author == AnnotationAuthor(id="user-1", name="Ada")

    def test_create_requires_caller(self, client):
        response = client.post("/files/f1/annotations", json={"title": "t", "content": "c"})

        assert response.status_code == 422

    def test_create_rejects_empty_title(self, client):
        response = client.post(
            "/files/f1/annotations",
            json={"title": "", "content": "c"},
            headers={"X-User-Id": "user-1"},
        )

        assert response.status_code == 422

    def test_update_by_other_user(self, client, services):
        services.annotations.update_annotation.side_effect = ForbiddenError(
            "You can only edit your own annotations"
        )

        response = client.patch(
            "/files/f1/annotations/a1", json={"title": "x"}, headers={"X-User-Id": "user-2"}
        )

        assert response.status_code == 403

    def test_delete(self, client, services):
        services.annotations.delete_annotation.return_value = True

        response = client.delete("/files/f1/annotations/a1", headers={"X-User-Id": "user-1"})

        assert response.status_code == 204
        services.annotations.delete_annotation.assert_awaited_once_with("f1", "a1", "user-1")

    def test_delete_unknown_annotation(self, client, services):
        services.annotations.delete_annotation.side_effect = NotFoundError("Annotation", "a9")

        response = client.delete("/files/f1/annotations/a9", headers={"X-User-Id": "user-1"})

        assert response.status_code == 404
