"""Tests for the batch loop over the external analysis tool."""

from cograph.analysis.runner import ANALYSE_REPOSITORY_TOOL, RepositoryAnalysisRunner
from tests.fakes import FakeToolClient, failed_wire_file, wire_file

URL = "https://github.com/acme/webapp.git"


def _files(count):
    return [wire_file(f"src/f{i}.ts", lines=10) for i in range(count)]


class TestAnalyseRepository:
    async def test_walks_every_window(self):
        client = FakeToolClient(_files(12))
        runner = RepositoryAnalysisRunner(client, batch_size=5)
        seen = []

        async def on_batch(batch):
            seen.append(len(batch.files))

        result = await runner.analyse_repository(URL, "repo-1", on_batch=on_batch)

        assert [c["skipFiles"] for c in client.calls] == [0, 5, 10]
        assert all(c["maxFiles"] == 5 for c in client.calls)
        assert seen == [5, 5, 2]
        assert result.summary.total_files == 12
        assert result.summary.successful_analyses == 12
        assert result.summary.total_lines == 120
        assert len(result.files) == 12

    async def test_branch_is_forwarded(self):
        client = FakeToolClient(_files(1))
        runner = RepositoryAnalysisRunner(client, batch_size=5)

        await runner.analyse_repository(URL, "repo-1", branch="develop")

        assert client.calls[0]["branch"] == "develop"
        assert client.calls[0]["repositoryId"] == "repo-1"

    async def test_failed_window_is_skipped(self):
        client = FakeToolClient(_files(12), failing_skips={5})
        runner = RepositoryAnalysisRunner(client, batch_size=5)

        result = await runner.analyse_repository(URL, "repo-1")

        assert [c["skipFiles"] for c in client.calls] == [0, 5, 10]
        assert result.summary.successful_analyses == 7
        assert [f.relative_path for f in result.files][-1] == "src/f11.ts"

    async def test_gives_up_when_total_never_known(self):
        client = FakeToolClient(_files(12), failing_skips={0, 5, 10, 15})
        runner = RepositoryAnalysisRunner(client, batch_size=5, max_consecutive_failures=3)

        result = await runner.analyse_repository(URL, "repo-1")

        assert len(client.calls) == 3
        assert result.files == []
        assert result.summary.successful_analyses == 0

    async def test_unanalysed_files_are_counted(self):
        client = FakeToolClient([wire_file("src/a.ts"), failed_wire_file("src/b.ts")])
        runner = RepositoryAnalysisRunner(client, batch_size=5)

        result = await runner.analyse_repository(URL, "repo-1")

        assert result.summary.failed_analyses == 1
        assert [f.relative_path for f in result.successful_files()] == ["src/a.ts"]

    async def test_callback_errors_do_not_stop_the_loop(self):
        client = FakeToolClient(_files(7))
        runner = RepositoryAnalysisRunner(client, batch_size=5)

        async def on_batch(batch):
            raise RuntimeError("store down")

        result = await runner.analyse_repository(URL, "repo-1", on_batch=on_batch)

        assert len(client.calls) == 2
        assert len(result.files) == 7

    async def test_malformed_payload_is_a_failed_window(self):
        class BrokenClient:
            calls = 0

            def call_tool(self, name, arguments):
                assert name == ANALYSE_REPOSITORY_TOOL
                BrokenClient.calls += 1
                return {"summary": {"totalFiles": "many"}}

        runner = RepositoryAnalysisRunner(BrokenClient(), batch_size=5, max_consecutive_failures=2)

        result = await runner.analyse_repository(URL, "repo-1")

        assert BrokenClient.calls == 2
        assert result.files == []

    async def test_empty_repository(self):
        client = FakeToolClient([])
        runner = RepositoryAnalysisRunner(client, batch_size=5)

        result = await runner.analyse_repository(URL, "repo-1")

        assert len(client.calls) == 1
        assert result.summary.total_files == 0


    async def test_malformed_file_entry_drops_only_that_file(self):
        files = _files(5)
        files[2]["analysis"]["entities"] = [{"name": "x", "type": "function", "startLine": 1}]
        client = FakeToolClient(files)
        runner = RepositoryAnalysisRunner(client, batch_size=5, max_consecutive_failures=1)
        seen = []

        async def on_batch(batch):
            seen.append([f.relative_path for f in batch.files])

        result = await runner.analyse_repository(URL, "repo-1", on_batch=on_batch)

        assert len(client.calls) == 1
        assert [f.relative_path for f in result.files] == [
            "src/f0.ts",
            "src/f1.ts",
            "src/f3.ts",
            "src/f4.ts",
        ]
        assert seen == [["src/f0.ts", "src/f1.ts", "src/f3.ts", "src/f4.ts"]]
        assert result.summary.total_files == 5

    async def test_non_list_files_is_a_failed_window(self):
        class OddClient:
            def call_tool(self, name, arguments):
                return {"summary": {"totalFiles": 3}, "files": "none"}

        runner = RepositoryAnalysisRunner(OddClient(), batch_size=5, max_consecutive_failures=1)

        result = await runner.analyse_repository(URL, "repo-1")

        assert result.files == []
        assert result.summary.total_files == 0
