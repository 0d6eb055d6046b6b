"""
End-to-end conversation scenarios and CLI commands.
"""

import asyncio

import pytest
import yaml
from click.testing import CliRunner
from unittest.mock import Mock, AsyncMock

import main
from docchat.errors import ConfigError, ServiceError
from docchat.ingestion.ingestion_pipeline import IngestionPipeline
from docchat.rag.answer_generator import FALLBACK_ANSWER
from docchat.rag.models import Document, Role
from docchat.rag.pipeline import ChatSession, build_query_pipeline
from docchat.rag.vector_store import InMemoryVectorStore

from conftest import echo_generate


BST_TEXT = "Binary search trees have O(log n) average lookup time."


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.fixture
def config():
    return {
        "retrieval": {"top_k": 10},
        "rewriter": {"skip_when_empty": False},
        "generation": {"persona": "You have to behave like a Data Structure and Algorithm Expert."}
    }


@pytest.fixture
def session(config, llm_manager, embedding_client, store):
    return ChatSession(build_query_pipeline(config, llm_manager, embedding_client, store))


async def ingest_text(embedding_client, store, text, source_id="doc.txt"):
    pipeline = IngestionPipeline(embedding_client, store)
    return await pipeline.ingest(Document(text=text, source_id=source_id))


class TestConversation:
    """Full turns through rewrite, retrieval and generation."""

    @pytest.mark.asyncio
    async def test_single_turn_answer(self, session, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT, "bst.txt")

        result = await session.ask("What is the lookup time of a BST?")

        assert "O(log n)" in result.answer
        assert len(session.history) == 2
        assert result.retrieved[0].source_id == "bst.txt"
        assert result.metadata["chunk_count"] == 1

    @pytest.mark.asyncio
    async def test_history_grows_by_two_per_turn(self, session, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT)

        for n, question in enumerate(["What is a BST?", "How fast is lookup?", "Why?"], 1):
            await session.ask(question)
            assert len(session.history) == 2 * n

        roles = [turn.role for turn in session.history.turns]
        assert roles == [Role.USER, Role.MODEL] * 3

    @pytest.mark.asyncio
    async def test_history_records_standalone_query(self, session, llm_manager, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT)

        async def rewriting_generate(history, system_instruction, stage="generate", **kwargs):
            if stage == "rewrite":
                return "What is the average lookup time of a binary search tree?"
            return echo_generate(history, system_instruction, stage)

        llm_manager.generate = AsyncMock(side_effect=rewriting_generate)
        result = await session.ask("and its lookup time?")

        assert result.standalone_query == "What is the average lookup time of a binary search tree?"
        assert session.history.turns[0].text == result.standalone_query

    @pytest.mark.asyncio
    async def test_empty_index_yields_fallback(self, session, llm_manager, embedding_client, store):
        report = await ingest_text(embedding_client, store, "", "empty.txt")

        result = await session.ask("What is a trie?")

        assert report.chunk_count == 0
        assert result.answer == FALLBACK_ANSWER
        assert result.retrieved == []
        # Only the rewrite reached the model
        assert llm_manager.generate.await_count == 1
        assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_top_k_limits_retrieval(self, config, llm_manager, embedding_client, store):
        await ingest_text(embedding_client, store, "abcdefghij" * 300)
        config["retrieval"]["top_k"] = 2
        session = ChatSession(build_query_pipeline(config, llm_manager, embedding_client, store))

        result = await session.ask("letters")

        assert len(result.retrieved) == 2

    @pytest.mark.asyncio
    async def test_empty_utterance_rejected(self, session, llm_manager):
        with pytest.raises(ConfigError):
            await session.ask("   ")
        llm_manager.generate.assert_not_awaited()


class TestFailureRecovery:
    """A failed turn leaves the history as it was."""

    @pytest.mark.asyncio
    async def test_generation_failure_then_retry(self, session, llm_manager, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT)
        session.history.record_exchange("What is a BST?", "A binary search tree.")
        failures = {"remaining": 1}

        async def flaky_generate(history, system_instruction, stage="generate", **kwargs):
            if stage == "generate" and failures["remaining"]:
                failures["remaining"] -= 1
                raise ServiceError("generate", "rate limited")
            return echo_generate(history, system_instruction, stage)

        llm_manager.generate = AsyncMock(side_effect=flaky_generate)

        with pytest.raises(ServiceError) as exc_info:
            await session.ask("How fast is lookup?")
        assert exc_info.value.stage == "generate"
        assert len(session.history) == 2

        result = await session.ask("How fast is lookup?")
        assert "O(log n)" in result.answer
        assert len(session.history) == 4

    @pytest.mark.asyncio
    async def test_rewrite_failure(self, session, llm_manager):
        llm_manager.generate = AsyncMock(side_effect=ServiceError("rewrite", "timeout"))

        with pytest.raises(ServiceError) as exc_info:
            await session.ask("What is a heap?")

        assert exc_info.value.stage == "rewrite"
        assert len(session.history) == 0

    @pytest.mark.asyncio
    async def test_reset(self, session, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT)
        await session.ask("What is a BST?")

        session.reset()

        assert len(session.history) == 0


class TestChatSession:
    """Turns in one session are processed one at a time."""

    @pytest.mark.asyncio
    async def test_concurrent_asks_are_serialized(self, session, llm_manager, embedding_client, store):
        await ingest_text(embedding_client, store, BST_TEXT)

        await asyncio.gather(session.ask("What is a BST?"), session.ask("How fast is lookup?"))

        assert len(session.history) == 4
        assert [turn.role for turn in session.history.turns] == [Role.USER, Role.MODEL] * 2
        rewrite_calls = [
            call for call in llm_manager.generate.call_args_list
            if call.kwargs.get("stage") == "rewrite"
        ]
        assert [len(call.args[0]) for call in rewrite_calls] == [1, 3]


class TestCLI:
    """Test the command line interface with fake services."""

    @pytest.fixture
    def config_file(self, tmp_path):
        config = {
            "llm": {"default_provider": "openai", "openai": {"api_key": "test_key"}},
            "embeddings": {"provider": "openai"},
            "vector_store": {"provider": "memory", "storage_path": str(tmp_path / "index")},
            "ingestion": {"chunk_size": 1000, "chunk_overlap": 200},
            "retrieval": {"top_k": 10},
            "logging": {"level": "INFO", "file": str(tmp_path / "logs" / "docchat.log")}
        }
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(config))
        return path

    @pytest.fixture
    def runner(self, tmp_path, monkeypatch, make_embedding_client, llm_manager):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(main, "create_embedding_client", lambda config: make_embedding_client())
        monkeypatch.setattr(main, "LLMManager", Mock(return_value=llm_manager))
        return CliRunner()

    @pytest.fixture
    def document(self, tmp_path):
        path = tmp_path / "bst.txt"
        path.write_text(BST_TEXT)
        return path

    def test_ingest_then_ask(self, runner, config_file, document, llm_manager):
        ingest_result = runner.invoke(main.cli, ["--config", str(config_file), "ingest", str(document)])
        assert ingest_result.exit_code == 0, ingest_result.output
        assert "Success" in ingest_result.output

        ask_result = runner.invoke(main.cli, ["--config", str(config_file), "ask", "What is the lookup time of a BST?"])
        assert ask_result.exit_code == 0, ask_result.output
        assert "Binary" in ask_result.output
        assert llm_manager.generate.await_count == 2

    def test_ingest_failure_sets_exit_code(self, runner, config_file, tmp_path, monkeypatch, make_embedding_client):
        monkeypatch.setattr(main, "create_embedding_client", lambda config: make_embedding_client(fail_on="FAIL"))
        path = tmp_path / "broken.txt"
        path.write_text("This will FAIL.")

        result = runner.invoke(main.cli, ["--config", str(config_file), "ingest", str(path)])

        assert result.exit_code == 1
        assert "Failed" in result.output

    def test_invalid_chunking_fails_fast(self, runner, config_file, document):
        result = runner.invoke(main.cli, [
            "--config", str(config_file), "ingest", str(document),
            "--chunk-size", "100", "--chunk-overlap", "100"
        ])

        assert result.exit_code == 1
        assert "overlap" in result.output

    def test_stats(self, runner, config_file, document):
        runner.invoke(main.cli, ["--config", str(config_file), "ingest", str(document)])

        result = runner.invoke(main.cli, ["--config", str(config_file), "stats"])

        assert result.exit_code == 0, result.output
        assert "Total Vectors" in result.output

    def test_chat_session(self, runner, config_file, document, llm_manager):
        runner.invoke(main.cli, ["--config", str(config_file), "ingest", str(document)])

        result = runner.invoke(
            main.cli,
            ["--config", str(config_file), "chat"],
            input="What is the lookup time of a BST?\nhistory\nquit\n"
        )

        assert result.exit_code == 0, result.output
        assert "user:" in result.output
        assert "model:" in result.output
