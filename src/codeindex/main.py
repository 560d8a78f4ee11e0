#!/usr/bin/env python3
"""
codeindex command line

Index a project into a local vector store, search it, inspect what the
chunker and walker see, and stream a completion from the model server.

Exit codes: 0 on success, 1 on a systemic error (configuration, unreachable
project root, store failure, model server failure), 2 when an indexing run
finished but recorded per-file or per-chunk errors.
"""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from codeindex.errors import CodeIndexError, RequestCancelledError
from codeindex.indexing import CodebaseIndexer, CodeChunker, FileWalker, IndexerConfig
from codeindex.indexing.indexer import ProcessingStats
from codeindex.ollama import OllamaClient, format_size
from codeindex.progress_loader import network_progress, show_progress, streaming_progress

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_MODEL = "codellama:7b"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='codeindex',
        description='Semantic indexing and search for a project tree using a local Ollama server'
    )
    parser.add_argument('-r', '--root', type=str, help='Project root (default: $CODEINDEX_PROJECT_ROOT or the current directory)')
    parser.add_argument('--ollama-url', type=str, help='Ollama base URL (default: $OLLAMA_BASE_URL or http://localhost:11434)')
    parser.add_argument('-m', '--model', type=str, help='Embedding model (default: nomic-embed-text)')
    parser.add_argument('--store', type=str, help='Path of the SQLite store (default: <root>/.chunk_store/embeddings.sqlite)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    index_parser = subparsers.add_parser('index', help='Index new and changed files')
    index_parser.add_argument('--workers', type=int, help='Concurrent embedding requests')

    rebuild_parser = subparsers.add_parser('rebuild', help='Drop the index and index everything again')
    rebuild_parser.add_argument('--workers', type=int, help='Concurrent embedding requests')

    search_parser = subparsers.add_parser('search', help='Find the chunks most similar to a query')
    search_parser.add_argument('query', type=str, help='Search text')
    search_parser.add_argument('-k', '--limit', type=int, default=10, help='Number of results')

    subparsers.add_parser('stats', help='Show index statistics')

    forget_parser = subparsers.add_parser('forget', help='Remove every chunk of a file from the index')
    forget_parser.add_argument('path', type=str, help='File path relative to the project root')

    clear_parser = subparsers.add_parser('clear', help='Remove every chunk from the index')
    clear_parser.add_argument('-y', '--yes', action='store_true', help='Do not ask for confirmation')

    subparsers.add_parser('files', help='List the files that would be indexed')

    chunks_parser = subparsers.add_parser('chunks', help='Show how a file is chunked')
    chunks_parser.add_argument('file', type=str, help='File to chunk')

    generate_parser = subparsers.add_parser('generate', help='Stream a completion from the model server')
    generate_parser.add_argument('prompt', type=str, help='Prompt text')
    generate_parser.add_argument('--model', dest='generation_model', type=str,
                                 help=f'Generation model (default: $CODEINDEX_GENERATION_MODEL or {DEFAULT_GENERATION_MODEL})')

    subparsers.add_parser('models', help='List models installed on the model server')

    return parser


def load_config(args: argparse.Namespace) -> IndexerConfig:
    config = IndexerConfig.from_env(
        project_root=args.root,
        ollama_base_url=args.ollama_url,
        embedding_model=args.model,
        store_path=args.store,
        embed_workers=getattr(args, 'workers', None),
    )
    if not config.project_root:
        config.project_root = os.getcwd()
    return config


def print_processing_stats(stats: ProcessingStats) -> None:
    print()
    print("📊 Indexing results")
    print("=" * 50)
    print(f"📂 Files found:     {stats.total_files}")
    print(f"📝 Files indexed:   {stats.processed_files}")
    print(f"⏭️  Files unchanged: {stats.skipped_files}")
    print(f"🗑️  Files removed:   {stats.removed_files}")
    print(f"🧩 Chunks embedded: {stats.processed_chunks}/{stats.total_chunks}")
    print(f"⏱️  Time:            {stats.duration:.1f}s")
    if stats.cancelled:
        print("⏹️  Run was cancelled before all files were processed")
    if stats.errors:
        print(f"\n⚠️  {len(stats.errors)} errors:")
        for error in stats.errors:
            print(f"  • {error}")


def run_index(indexer: CodebaseIndexer, rebuild: bool = False) -> int:
    cancel_event = threading.Event()
    try:
        if rebuild:
            stats = indexer.rebuild(cancel_event)
        else:
            stats = indexer.process_codebase(cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        print("\n👋 Indexing interrupted")
        return EXIT_FAILURE

    print_processing_stats(stats)
    return EXIT_PARTIAL if stats.errors else EXIT_OK


def run_search(indexer: CodebaseIndexer, query: str, limit: int) -> int:
    with show_progress("🔍 Searching index"):
        results = indexer.search_similar(query, limit)

    if not results:
        print("⚠️ No matching chunks found")
        return EXIT_OK

    for result in results:
        record = result.record
        label = f" {record.chunk_type}" if record.chunk_type else ""
        if record.name:
            label += f" {record.name}"
        print(f"\n#{result.rank} {record.path}:{record.start_line}-{record.end_line}"
              f"{label} (similarity {result.similarity:.3f})")
        print("─" * 60)
        snippet = record.chunk if len(record.chunk) <= 600 else record.chunk[:600] + "..."
        print(snippet)
    return EXIT_OK


def run_stats(indexer: CodebaseIndexer) -> int:
    stats = indexer.get_stats()
    print("📚 Index statistics")
    print("=" * 50)
    print(f"🧩 Embeddings:  {stats.total_embeddings}")
    print(f"📁 Files:       {stats.unique_files}")
    print(f"💾 Store size:  {stats.store_size}")
    return EXIT_OK


def run_clear(indexer: CodebaseIndexer, assume_yes: bool) -> int:
    if not assume_yes:
        try:
            response = input("🗑️ Remove every chunk from the index? [y/N]: ").strip().lower()
        except (KeyboardInterrupt, EOFError):
            print()
            response = ""
        if response not in ['y', 'yes']:
            print("👋 Nothing removed")
            return EXIT_OK
    indexer.clear_all_embeddings()
    print("✅ Index cleared")
    return EXIT_OK


def run_files(config: IndexerConfig) -> int:
    walker = FileWalker()
    files = sorted(walker.walk(str(config.root), config.walk_options), key=lambda f: f.relative_path)
    for record in files:
        print(f"{record.relative_path}  ({record.size} bytes)")
    print(f"\n📂 {len(files)} files")
    return EXIT_OK


def run_chunks(config: IndexerConfig, file_path: str) -> int:
    path = Path(file_path)
    if not path.is_absolute():
        path = config.root / path
    try:
        content = FileWalker().read_file_content(str(path))
    except (OSError, UnicodeDecodeError) as e:
        print(f"❌ Could not read {file_path}: {e}")
        return EXIT_FAILURE

    chunks = CodeChunker(max_chunk_chars=config.chunk_size).chunk_file(str(path), content)
    for i, chunk in enumerate(chunks):
        name = f" {chunk.name}" if chunk.name else ""
        print(f"\n[{i}] {chunk.chunk_type.value}{name} lines {chunk.start_line}-{chunk.end_line}")
        print("─" * 60)
        print(chunk.content)
    print(f"\n🧩 {len(chunks)} chunks")
    return EXIT_OK


def run_generate(config: IndexerConfig, prompt: str, model: Optional[str]) -> int:
    model = model or os.getenv("CODEINDEX_GENERATION_MODEL") or DEFAULT_GENERATION_MODEL
    client = OllamaClient(config.ollama_base_url, timeout=config.request_timeout)
    cancel_event = threading.Event()

    try:
        with streaming_progress(model) as loader:
            client.stream_generate(model, prompt, on_chunk=loader.stream_text, cancel_event=cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        print("\n👋 Generation interrupted")
        return EXIT_FAILURE
    return EXIT_OK


def run_models(config: IndexerConfig) -> int:
    client = OllamaClient(config.ollama_base_url, timeout=config.request_timeout)
    with network_progress("Fetching models"):
        models = client.list_models()
    if not models:
        print("⚠️ No models installed")
    for model in models:
        print(f"  • {model.display_name}  [{model.name}, {format_size(model.size)}]")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables from .env file
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    try:
        config = load_config(args)

        if args.command == 'files':
            return run_files(config)
        if args.command == 'chunks':
            return run_chunks(config, args.file)
        if args.command == 'generate':
            return run_generate(config, args.prompt, args.generation_model)
        if args.command == 'models':
            return run_models(config)

        with CodebaseIndexer(config) as indexer:
            if args.command == 'index':
                return run_index(indexer)
            if args.command == 'rebuild':
                return run_index(indexer, rebuild=True)
            if args.command == 'search':
                return run_search(indexer, args.query, args.limit)
            if args.command == 'stats':
                return run_stats(indexer)
            if args.command == 'forget':
                removed = indexer.delete_embeddings_by_path(args.path)
                print(f"🗑️ Removed {removed} chunks for {args.path}")
                return EXIT_OK
            if args.command == 'clear':
                return run_clear(indexer, args.yes)

        parser.error(f"Unknown command: {args.command}")

    except RequestCancelledError as e:
        print(f"⏹️ {e}")
        return EXIT_FAILURE
    except CodeIndexError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"❌ {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
