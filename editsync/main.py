#!/usr/bin/env python3
"""
editsync - Command Line Interface

Usage:
    editsync login TOKEN                      # validate and store a token
    editsync repos add owner/repo             # or a GitHub URL
    editsync ls owner/repo [PATH]             # browse a directory
    editsync cat owner/repo PATH              # print a file (cache first)
    editsync save owner/repo PATH -f FILE     # save now, queue if it fails
    editsync new owner/repo NAME --dir docs   # create a file
    editsync cache clear [owner/repo]         # drop cached content
    editsync status                           # queue and auth status
    editsync drain [owner/repo]               # retry queued writes
    editsync watch                            # drain on reconnect / interval
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .app import editor_session, EditorApp
from .config import load_config
from .connectivity import ConnectivityProbe, ConnectivityState
from .errors import SyncError
from .models import FailureKind
from .validation import parse_repository


def _full_name(text: str) -> str:
    owner, name = parse_repository(text)
    return f"{owner}/{name}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="editsync",
        description="Edit GitHub-hosted files with offline sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to JSON config file")
    parser.add_argument("--offline", action="store_true", help="Treat the network as unavailable")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Validate and store an access token")
    login.add_argument("token")
    sub.add_parser("logout", help="Forget the stored token")

    repos = sub.add_parser("repos", help="Manage the repository list")
    repos_sub = repos.add_subparsers(dest="action", required=True)
    repos_add = repos_sub.add_parser("add")
    repos_add.add_argument("repository")
    repos_remove = repos_sub.add_parser("remove")
    repos_remove.add_argument("repository")
    repos_sub.add_parser("list")

    ls = sub.add_parser("ls", help="List a directory")
    ls.add_argument("repository")
    ls.add_argument("path", nargs="?", default="")

    cat = sub.add_parser("cat", help="Print a file")
    cat.add_argument("repository")
    cat.add_argument("path")
    cat.add_argument("--sha", default=None, help="Known remote sha (fetch on cache miss)")

    save = sub.add_parser("save", help="Write a file now, queueing it if that fails")
    save.add_argument("repository")
    save.add_argument("path")
    source = save.add_mutually_exclusive_group(required=True)
    source.add_argument("-f", "--file", type=Path, help="Read new content from a local file")
    source.add_argument("-c", "--content", help="New content")

    new = sub.add_parser("new", help="Create a file and save it")
    new.add_argument("repository")
    new.add_argument("name")
    new.add_argument("--dir", default="", help="Directory to create the file in")
    new_source = new.add_mutually_exclusive_group()
    new_source.add_argument("-f", "--file", type=Path, help="Read initial content from a local file")
    new_source.add_argument("-c", "--content", default="", help="Initial content")

    cache = sub.add_parser("cache", help="Inspect or clear the local file cache")
    cache_sub = cache.add_subparsers(dest="action", required=True)
    cache_list = cache_sub.add_parser("list")
    cache_list.add_argument("repository")
    cache_clear = cache_sub.add_parser("clear")
    cache_clear.add_argument("repository", nargs="?", default=None)

    sub.add_parser("status", help="Show sync status")

    drain = sub.add_parser("drain", help="Retry queued writes once")
    drain.add_argument("repository", nargs="?", default=None)

    sub.add_parser("watch", help="Keep draining the queue in the background")

    return parser


async def _remote_sha(app: EditorApp, repo: str, path: str) -> Optional[str]:
    """Look up the remote sha of path from its directory listing, if online."""
    if not app.connectivity.is_online:
        return None
    directory = path.rsplit("/", 1)[0] if "/" in path else ""
    for entry in await app.list_directory(repo, directory):
        if entry.path == path:
            return entry.sha
    return None


async def _watch(app: EditorApp) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    def report(r):
        print(f"Drain: {r.succeeded} synced, {r.permanently_failed} dropped, {r.retried} retried")
        for entry, outcome in app.take_failures():
            print(f"  gave up on {entry.repo}:{entry.path}: {outcome.detail}")

    app.monitor.on_drain = report
    app.monitor.start()
    await app.monitor.tick()
    print(f"Watching queue ({app.queue.count()} pending). Ctrl+C to stop.")
    await stop.wait()


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    connectivity = ConnectivityState(online=not args.offline)
    probe = None
    if not args.offline:
        probe = ConnectivityProbe(config.probe_url or config.api_base_url, timeout=config.probe_timeout)

    async with editor_session(config, connectivity=connectivity, probe=probe) as app:
        if args.command == "login":
            if await app.login(args.token):
                print("Login successful!")
                return 0
            print("Invalid token. Please check your token and try again.")
            return 1

        if args.command == "logout":
            app.logout()
            print("Logged out")
            return 0

        if args.command == "repos":
            if args.action == "add":
                repo = await app.add_repository(args.repository)
                print(f"Added {repo.full_name}")
            elif args.action == "remove":
                removed = app.remove_repository(_full_name(args.repository))
                print("Removed" if removed else "Not in list")
            else:
                for repo in app.list_repositories():
                    print(f"{repo.full_name}\tadded {repo.added_at:%Y-%m-%d}")
            return 0

        if args.command == "ls":
            for entry in await app.list_directory(_full_name(args.repository), args.path):
                if entry.is_dir:
                    print(f"{entry.name}/")
                else:
                    print(f"{entry.name}\t{entry.size / 1024:.1f} KB")
            return 0

        if args.command == "cat":
            repo = _full_name(args.repository)
            pending = app.queue.get(repo, args.path)
            if pending is not None:
                # Show what will reach the remote once the queue drains
                sys.stdout.write(pending.content)
                return 0
            sha = args.sha
            if sha is None and app.cache.get(repo, args.path) is None:
                sha = await _remote_sha(app, repo, args.path)
            session = await app.open_file(repo, args.path, remote_sha=sha)
            sys.stdout.write(session.live_content)
            return 0

        if args.command == "save":
            repo = _full_name(args.repository)
            content = args.file.read_text(encoding="utf-8") if args.file else args.content
            sha = None
            if app.cache.get(repo, args.path) is None:
                sha = await _remote_sha(app, repo, args.path)
            session = await app.open_file(repo, args.path, remote_sha=sha)
            session.edit(content)
            outcome = await session.commit_now()
            print(session.status.describe())
            return 0 if outcome.success or outcome.kind == FailureKind.OFFLINE else 1

        if args.command == "new":
            content = args.file.read_text(encoding="utf-8") if args.file else args.content
            session = await app.create_file(_full_name(args.repository), args.dir, args.name)
            session.edit(content)
            outcome = await session.commit_now()
            print(f"{session.path}: {session.status.describe()}")
            return 0 if outcome.success or outcome.kind == FailureKind.OFFLINE else 1

        if args.command == "cache":
            if args.action == "list":
                for cached in app.list_cached(_full_name(args.repository)):
                    print(f"{cached.path}\t{cached.sha or '<new>'}\t{cached.last_synced:%Y-%m-%d %H:%M}")
            else:
                repo = _full_name(args.repository) if args.repository else None
                print(f"Cleared {app.clear_cache(repo)} cached files")
            return 0

        if args.command == "status":
            status = app.get_sync_status()
            print("\n=== Sync Status ===")
            print(f"Online: {status['is_online']}")
            print(f"Authenticated: {status['is_authenticated']}")
            print(f"Queue: {status['queue_length']} pending")
            for item in status["pending"]:
                print(f"  - {item['repo']}:{item['path']} (retries {item['retries']})")
            print(f"Rate limits: {status['rate_limit_remaining']}")
            return 0

        if args.command == "drain":
            repo = _full_name(args.repository) if args.repository else None
            report = await app.drain(repo)
            print(
                f"\nDrain result: {report.succeeded} synced, "
                f"{report.permanently_failed} failed, {report.retried} retried"
            )
            if report.aborted_offline:
                print("Stopped early: offline")
            for error in report.errors:
                print(f"  - {error}")
            return 0 if report.permanently_failed == 0 else 1

        if args.command == "watch":
            await _watch(app)
            return 0

    return 2


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
