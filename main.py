#!/usr/bin/env python3
"""
DocChat - conversational question answering over your documents.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from docchat.errors import ConfigError, DocChatError, ServiceError
from docchat.ingestion.chunker import validate_chunking
from docchat.ingestion.document_processor import DocumentProcessor
from docchat.ingestion.ingestion_pipeline import IngestionPipeline
from docchat.models.embeddings import create_embedding_client
from docchat.models.llm_manager import LLMManager, resolve_env_vars
from docchat.rag.models import IngestionReport, Role, TurnResult
from docchat.rag.pinecone_store import create_vector_store
from docchat.rag.pipeline import ChatSession, build_query_pipeline

# Setup logger
logger = logging.getLogger(__name__)


def load_env_file(env_file: Path = Path(".env")):
    """Load environment variables from .env file if it exists."""
    if env_file.exists():
        with open(env_file, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def _resolve(value):
    if isinstance(value, dict):
        return {key: _resolve(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve(item) for item in value]
    return resolve_env_vars(value)


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        return _resolve(config)
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {config_path}")
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"❌ Error parsing configuration file: {e}")
        sys.exit(1)


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    log_level = getattr(logging, log_config.get("level", "INFO"))
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Create logs directory if it doesn't exist
    log_file = log_config.get("file", "logs/docchat.log")
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True
    )


class DocChatSystem:
    """Owns the long-lived service clients and both pipelines."""

    def __init__(self, config: dict):
        self.config = config
        self.console = Console()

        ingestion_config = config.get("ingestion", {})
        self._ingestion_settings = dict(
            chunk_size=ingestion_config.get("chunk_size", 1000),
            chunk_overlap=ingestion_config.get("chunk_overlap", 200),
            max_concurrency=ingestion_config.get("max_concurrency", 5),
            batch_size=ingestion_config.get("batch_size", 32)
        )
        # Fail fast on bad chunking settings before any client is created
        validate_chunking(self._ingestion_settings["chunk_size"], self._ingestion_settings["chunk_overlap"])

        self.embedding_client = create_embedding_client(config.get("embeddings", {}))
        self.vector_store = create_vector_store(config.get("vector_store", {}))
        self._llm_manager: Optional[LLMManager] = None

        self.ingestion = IngestionPipeline(
            self.embedding_client,
            self.vector_store,
            document_processor=DocumentProcessor(ingestion_config),
            **self._ingestion_settings
        )

        self.debug_mode = config.get("debug", {}).get("enabled", False)

    @property
    def llm_manager(self) -> LLMManager:
        # Chat models are only needed for querying
        if self._llm_manager is None:
            self._llm_manager = LLMManager(self.config.get("llm", {}))
        return self._llm_manager

    def create_session(self) -> ChatSession:
        pipeline = build_query_pipeline(self.config, self.llm_manager, self.embedding_client, self.vector_store)
        return ChatSession(pipeline)

    async def ask(self, session: ChatSession, utterance: str) -> TurnResult:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True
        ) as progress:
            progress.add_task("Thinking...", total=None)
            return await session.ask(utterance)

    def display_result(self, result: TurnResult, debug: bool = False):
        """Display a completed turn."""
        self.console.print(Panel(
            result.answer,
            title="[bold blue]Answer[/bold blue]",
            border_style="blue"
        ))

        if debug:
            debug_table = Table(title="Debug Information")
            debug_table.add_column("Property", style="cyan")
            debug_table.add_column("Value", style="white")

            debug_table.add_row("Standalone Query", result.standalone_query)
            debug_table.add_row("Chunks Retrieved", str(len(result.retrieved)))
            for i, chunk in enumerate(result.retrieved, 1):
                debug_table.add_row(f"#{i} {chunk.source_id}", f"{chunk.score:.3f}  {chunk.text[:80]!r}")
            debug_table.add_row("Time (s)", f"{result.metadata.get('processing_time', 0.0):.2f}")

            self.console.print(debug_table)

    def display_ingestion_results(self, results: List[IngestionReport]):
        """Display ingestion results in a formatted table."""
        if not results:
            self.console.print("[yellow]No supported documents found.[/yellow]")
            return

        table = Table(title="Ingestion Results")
        table.add_column("Source", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Chunks", style="magenta")
        table.add_column("Time (s)", style="white")

        for result in results:
            table.add_row(
                Path(result.source_id).name,
                "✅ Success" if result.success else "❌ Failed",
                str(result.chunk_count),
                f"{result.processing_time:.2f}"
            )

        self.console.print(table)

        errors = [
            f"{Path(result.source_id).name}: {error}"
            for result in results
            for error in result.errors
        ]
        if errors:
            self.console.print("\n[red]Errors:[/red]")
            for error in errors:
                self.console.print(f"  • {error}")

    def display_history(self, session: ChatSession):
        if not session.history:
            self.console.print("[dim]No conversation yet.[/dim]")
            return
        for turn in session.history.turns:
            style = "cyan" if turn.role == Role.USER else "white"
            self.console.print(f"[{style}]{turn.role.value}:[/{style}] {turn.text}")

    def show_stats(self):
        """Display vector store and ingestion settings."""
        stats = self.vector_store.get_stats()

        table = Table(title="Vector Store Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        if "error" in stats:
            table.add_row("Status", f"Error: {stats['error']}")
        else:
            table.add_row("Backend", str(stats.get("backend")))
            table.add_row("Total Vectors", str(stats.get("total_vector_count", 0)))
            table.add_row("Dimension", str(stats.get("dimension")))
            table.add_row("Metric", str(stats.get("metric")))
            table.add_row("Embedding Model", self.embedding_client.model_name)

        settings_table = Table(title="Ingestion Settings")
        settings_table.add_column("Setting", style="cyan")
        settings_table.add_column("Value", style="white")
        for key, value in self.ingestion.get_processing_stats().items():
            settings_table.add_row(key, str(value))

        self.console.print(table)
        self.console.print(settings_table)

    async def interactive_mode(self):
        """Read-prompt / print-response loop; each line is one utterance."""
        self.console.print(Panel(
            "[bold blue]DocChat[/bold blue]\n"
            "Ask questions about your indexed documents.\n"
            "Type 'quit' to exit, 'reset' to start over, 'history' to review, 'stats' for statistics.",
            border_style="blue"
        ))

        session = self.create_session()

        while True:
            try:
                utterance = click.prompt("\nAsk me anything", prompt_suffix=" --> ")

                command = utterance.strip().lower()
                if command in ['quit', 'exit', 'q']:
                    break
                elif command == 'reset':
                    session.reset()
                    self.console.print("[green]Conversation reset.[/green]")
                    continue
                elif command == 'history':
                    self.display_history(session)
                    continue
                elif command == 'stats':
                    self.show_stats()
                    continue
                elif not command:
                    continue

                result = await self.ask(session, utterance)
                self.display_result(result, debug=self.debug_mode)

            except ServiceError as e:
                # The turn is dropped; history is unchanged so the user can re-ask
                self.console.print(f"[red]Could not answer ({e.stage}): {e.message}. Please try again.[/red]")
            except (KeyboardInterrupt, click.Abort):
                self.console.print("\n[yellow]Exiting...[/yellow]")
                break


@click.group()
@click.option('--config', '-c', default='config/config.yaml', help='Configuration file path')
@click.option('--debug', '-d', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """DocChat CLI."""
    # Load environment variables first
    load_env_file()

    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)
    ctx.obj['debug'] = debug

    # Setup logging
    setup_logging(ctx.obj['config'])

    # Enable debug mode in config
    if debug:
        ctx.obj['config'].setdefault('debug', {})['enabled'] = True


def _create_system(config: dict) -> DocChatSystem:
    try:
        return DocChatSystem(config)
    except DocChatError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument('path', type=click.Path(exists=True))
@click.option('--chunk-size', type=int, help='Characters per chunk')
@click.option('--chunk-overlap', type=int, help='Characters shared by consecutive chunks')
@click.option('--max-concurrency', type=int, help='Maximum in-flight embedding requests')
@click.pass_context
def ingest(ctx, path, chunk_size, chunk_overlap, max_concurrency):
    """Ingest a document or a directory of documents."""
    config = ctx.obj['config']
    ingestion_config = config.setdefault('ingestion', {})
    if chunk_size is not None:
        ingestion_config['chunk_size'] = chunk_size
    if chunk_overlap is not None:
        ingestion_config['chunk_overlap'] = chunk_overlap
    if max_concurrency is not None:
        ingestion_config['max_concurrency'] = max_concurrency

    system = _create_system(config)
    system.console.print(f"[yellow]Processing documents from {path}...[/yellow]")

    try:
        results = asyncio.run(system.ingestion.ingest_path(path))
    except ConfigError as e:
        raise click.ClickException(str(e))
    system.display_ingestion_results(results)

    if any(not result.success for result in results):
        ctx.exit(1)


@cli.command()
@click.argument('question')
@click.pass_context
def ask(ctx, question):
    """Ask a single question."""
    system = _create_system(ctx.obj['config'])

    async def run_query():
        session = system.create_session()
        result = await system.ask(session, question)
        system.display_result(result, debug=ctx.obj['debug'])

    try:
        asyncio.run(run_query())
    except DocChatError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.pass_context
def chat(ctx):
    """Start interactive chat mode."""
    system = _create_system(ctx.obj['config'])
    try:
        asyncio.run(system.interactive_mode())
    except ConfigError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.pass_context
def stats(ctx):
    """Show vector store statistics."""
    system = _create_system(ctx.obj['config'])
    system.show_stats()


if __name__ == "__main__":
    cli()
