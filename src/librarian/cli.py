"""Command line interface for building and querying the document index."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from librarian import __version__
from librarian.config import RetrievalToolConfig
from librarian.errors import LibrarianError
from librarian.logging_config import configure_logging
from librarian.retrieval import NO_RELEVANT_INFORMATION
from librarian.service import DocumentIndexService

LOGGER = logging.getLogger(__name__)

COMMANDS = ["build", "rebuild", "search", "ask", "cache-info", "clear-cache"]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="librarian",
        description="Build, cache and query the library assistant's document index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s build                         # Load the cache or ingest ./data and save it
    %(prog)s rebuild                       # Clear the cache and ingest everything again
    %(prog)s search "Simyacı"              # Ranked units with citations
    %(prog)s ask "Kütüphane kaçta açılıyor?" --chat-provider openai
    %(prog)s cache-info                    # Cache files, sizes and manifest
        """,
    )
    parser.add_argument("command", choices=COMMANDS, help="Command to execute")
    parser.add_argument("query", nargs="*", help="Query text (for search and ask)")

    parser.add_argument("--data-dir", help="Directory scanned for source files (default: ./data)")
    parser.add_argument("--cache-dir", help="Vector cache directory (default: ./vector_cache)")
    parser.add_argument("--embedding-provider", help="sentence-transformers, openai, gemini or hash")
    parser.add_argument("--embedding-model", help="Embedding model name")
    parser.add_argument("--chat-provider", help="openai, gemini or mock")
    parser.add_argument("--chat-model", help="Chat model name")
    parser.add_argument("--k-vec", type=int, help="Vector search results (default: 3)")
    parser.add_argument("--k-lex", type=int, help="Lexical search results (default: 3)")
    parser.add_argument("--min-score", type=float, help="Similarity floor (default: 0.1)")
    parser.add_argument("--search-type", choices=["similarity", "mmr"], help="Vector search mode")
    parser.add_argument("--no-cache", action="store_true", help="Neither read nor write the vector cache")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--log-dir", default="logs", help="Directory for the ingest audit log (default: ./logs)")
    parser.add_argument("--version", action="version", version=f"librarian {__version__}")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RetrievalToolConfig:
    overrides: Dict[str, Any] = {
        "data_dir": args.data_dir,
        "cache_dir": args.cache_dir,
        "embedding_provider": args.embedding_provider,
        "embedding_model": args.embedding_model,
        "chat_provider": args.chat_provider,
        "chat_model": args.chat_model,
        "k_vec": args.k_vec,
        "k_lex": args.k_lex,
        "min_score": args.min_score,
        "search_type": args.search_type,
    }
    if args.no_cache:
        overrides["use_cache"] = False
    return RetrievalToolConfig.from_env(**overrides)


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def run(args: argparse.Namespace, service: DocumentIndexService) -> int:
    query = " ".join(args.query).strip()
    if args.command in {"search", "ask"} and not query:
        LOGGER.error("The %s command needs a query", args.command)
        return 2

    if args.command == "cache-info":
        _print(service.cache_info())
        return 0
    if args.command == "clear-cache":
        _print({"removed": service.clear_cache()})
        return 0
    if args.command == "rebuild":
        report = service.rebuild()
        _print({"summary": report.summary(), "files": [item.to_dict() for item in report.files]})
        return 0

    startup = service.load_or_build()
    if args.command == "build":
        payload: Dict[str, Any] = {"fromCache": startup.from_cache, "units": startup.units, "saved": startup.saved}
        if startup.report is not None:
            payload["summary"] = startup.report.summary()
            payload["files"] = [item.to_dict() for item in startup.report.files]
        _print(payload)
        return 0

    if args.command == "search":
        result = service.search(query)
        if not result.found:
            _print({"result": NO_RELEVANT_INFORMATION})
            return 0
        _print(
            {
                "strategy": result.strategy.value,
                "citations": result.citations,
                "results": [dict(item.to_dict(), content=item.unit.content) for item in result.units],
            }
        )
        return 0

    answer = service.answer(query)
    print(answer.text)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(level=args.log_level, log_dir=args.log_dir)
    try:
        service = DocumentIndexService(build_config(args))
        return run(args, service)
    except ValidationError as error:
        LOGGER.error("Invalid configuration: %s", error)
        return 2
    except LibrarianError as error:
        LOGGER.error("%s failed: %s", args.command, error)
        return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
