"""CLI for building and querying the context index.

Usage:
    python -m codectx index [--force] [-w]
    python -m codectx update
    python -m codectx query "explain parseConfig" [--current src/app.ts]
    python -m codectx graph [--top N] [--cycles]
    python -m codectx stats
    python -m codectx watch [--debounce S]
"""

import argparse
import sys
import threading
import time
from datetime import datetime
from pathlib import Path

from .config import load_config
from .ignore import should_index_file
from .logging_config import get_logger, setup_logging
from .models import IndexingResult
from .service import IndexService

logger = get_logger(__name__)


def create_service(repo_root: Path, cfg: dict) -> IndexService:
    return IndexService(cfg, repo_root=repo_root)


def _add_repo_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--repo",
        type=str,
        default=".",
        help="Repository root directory (default: current directory)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codectx",
        description="Build and query the code context index"
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    index_parser = subparsers.add_parser("index", help="Index the repository")
    _add_repo_argument(index_parser)
    index_parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore saved state and re-embed every file"
    )
    index_parser.add_argument(
        "-w", "--watch",
        action="store_true",
        help="Watch for file changes and update the index automatically (10s debounce)"
    )

    update_parser = subparsers.add_parser("update", help="Update the index incrementally")
    _add_repo_argument(update_parser)

    query_parser = subparsers.add_parser("query", help="Print the context assembled for a query")
    _add_repo_argument(query_parser)
    query_parser.add_argument("text", help="Query text")
    query_parser.add_argument("--current", type=str, default=None, help="Active file (repository-relative)")
    query_parser.add_argument("--max-files", type=int, default=None, help="Maximum files in the context")
    query_parser.add_argument("--max-tokens", type=int, default=None, help="Token budget for the context")

    graph_parser = subparsers.add_parser("graph", help="Show dependency graph statistics")
    _add_repo_argument(graph_parser)
    graph_parser.add_argument("--top", type=int, default=10, help="Number of critical files to list (default: 10)")
    graph_parser.add_argument("--cycles", action="store_true", help="List circular imports")

    stats_parser = subparsers.add_parser("stats", help="Show index statistics")
    _add_repo_argument(stats_parser)

    watch_parser = subparsers.add_parser("watch", help="Watch for file changes and update the index")
    _add_repo_argument(watch_parser)
    watch_parser.add_argument(
        "--debounce",
        type=int,
        default=10,
        help="Debounce time in seconds (default: 10)"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the codectx CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    cfg = load_config(args.config)
    setup_logging(cfg["log_level"], cfg["log_file"])

    repo_root = Path(args.repo).resolve()
    service = create_service(repo_root, cfg)
    try:
        if args.command == "index":
            if args.force:
                service.cache.clear_all()
            else:
                service.load_state()
            print(f"Indexing: {repo_root}")
            result = service.index_project()
            if result.error is not None:
                print(f"\n❌ Indexing failed: {result.error}", file=sys.stderr)
                return 1
            service.save_state()
            _print_result("✓ Index built successfully!", result)

            if args.watch:
                print("\n👀 Watching for file changes (10s debounce)...")
                print("   Press Ctrl+C to stop")
                return watch_files(service, debounce_seconds=10)
            return 0

        elif args.command == "update":
            service.load_state()
            print(f"Updating index for: {repo_root}")
            result = service.index_project()
            if result.error is not None:
                print(f"\n❌ Update failed: {result.error}", file=sys.stderr)
                return 1
            service.save_state()
            _print_result("✓ Index updated!", result)
            return 0

        elif args.command == "query":
            if not service.load_state():
                service.index_project()
            options = service.default_options()
            if args.max_files is not None:
                options.max_files = args.max_files
            if args.max_tokens is not None:
                options.max_tokens = args.max_tokens
            entries = service.query(args.text, current_file=args.current, options=options)
            if not entries:
                print(f"No relevant code found for query: {args.text}")
                return 0
            for i, entry in enumerate(entries, 1):
                symbols = f" [{', '.join(entry.relevant_symbols)}]" if entry.relevant_symbols else ""
                print(f"{i:2}. {entry.score:.2f}  {entry.path}{symbols}  ({entry.reason})")
            quality = service.assembler.evaluate_context_quality(entries, service.graph)
            print(f"\n  Quality: {quality.score:.0f} ({quality.coverage})")
            for suggestion in quality.suggestions:
                print(f"  - {suggestion}")
            return 0

        elif args.command == "graph":
            if not service.load_state():
                service.index_project()
            graph = service.ensure_graph()
            stats = graph.stats()
            print("\n🔗 Dependency Graph")
            print("=" * 50)
            print(f"  Files: {stats['files']}")
            print(f"  Import edges: {stats['edges']}")
            print(f"  Symbols: {stats['symbols']}")
            print(f"  Lines of code: {stats['lines_of_code']}")
            print("\n  Most depended-on files:")
            for path, impact in graph.critical_files(args.top):
                print(f"    {impact:4}  {path}")
            if args.cycles:
                cycles = graph.detect_cycles()
                print(f"\n  Circular imports: {len(cycles)}")
                for cycle in cycles:
                    print("    " + " -> ".join(cycle + cycle[:1]))
            print("=" * 50)
            return 0

        elif args.command == "stats":
            service.load_state()
            stats = service.stats()
            cache_stats = stats["cache"]
            print("\n📊 Index Statistics")
            print("=" * 50)
            print(f"  Repository: {stats['repository']}")
            print(f"  Total files: {stats['files']}")
            print(f"  Embedding backend: {stats['embedding_backend']}")
            print(f"  Cached embeddings: {cache_stats['embeddings']}")
            print(f"  Tracked files: {cache_stats['metadata']}")
            last_update = max((r.last_modified for r in service.files), default=None)
            if last_update:
                print(f"  Newest file: {datetime.fromtimestamp(last_update).strftime('%Y-%m-%d %H:%M:%S')}")
            else:
                print("  Newest file: Never")
            print("=" * 50)
            return 0

        elif args.command == "watch":
            service.load_state()
            service.index_project()
            service.save_state()
            print(f"👀 Watching for file changes in: {repo_root}")
            print(f"   Debounce: {args.debounce}s")
            print("   Press Ctrl+C to stop")
            return watch_files(service, debounce_seconds=args.debounce)

    except KeyboardInterrupt:
        print("\n\n👋 Stopped")
        return 0
    except Exception as e:
        logger.exception("Command %s failed", args.command)
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.close()
    return 0


def _print_result(title: str, result: IndexingResult) -> None:
    print(f"\n{title}")
    print(f"  Files indexed: {result.indexed}")
    print(f"  Added: {result.added}  Updated: {result.updated}  Skipped: {result.skipped}")
    print(f"  Removed: {result.removed}  Failed: {result.failed}")
    print(f"  Time taken: {result.duration_ms / 1000:.2f}s")


def watch_files(service: IndexService, debounce_seconds: int = 10) -> int:
    """Watch for file changes and re-index changed files with debouncing.

    Args:
        service: Index service for the watched repository
        debounce_seconds: Time to wait before updating after last change

    Returns:
        Exit code
    """
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    repo_root = service.repo_root
    fs = service.fs
    pending_changes: dict[str, float] = {}
    lock = threading.Lock()
    last_change = time.time()

    class IndexUpdateHandler(FileSystemEventHandler):
        def on_any_event(self, event):
            nonlocal last_change
            if event.is_directory:
                return
            paths = [event.src_path, getattr(event, "dest_path", "")]
            for raw in paths:
                if not raw:
                    continue
                rel_path = fs.relative(raw)
                if rel_path is None or not should_index_file(rel_path) or fs.is_ignored(rel_path):
                    continue
                with lock:
                    pending_changes[rel_path] = time.time()
                    last_change = time.time()

    observer = Observer()
    observer.schedule(IndexUpdateHandler(), str(repo_root), recursive=True)
    observer.start()
    print("✓ Watching started")

    try:
        while True:
            time.sleep(1)
            with lock:
                if not pending_changes or time.time() - last_change < debounce_seconds:
                    continue
                changed = list(pending_changes)
                pending_changes.clear()

            print(f"\n🔄 Updating index ({len(changed)} file(s) changed)...")
            try:
                for path in changed:
                    service.index_file(path)
                service.save_state()
                print(f"✓ Index updated: {len(service.files)} files")
            except Exception as e:
                logger.exception("Index update failed")
                print(f"❌ Update failed: {e}")
    except KeyboardInterrupt:
        return 0
    finally:
        observer.stop()
        observer.join()


if __name__ == "__main__":
    sys.exit(main())
