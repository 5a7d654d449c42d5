#!/usr/bin/env python3
"""devark - prompt co-pilot and session sync for AI coding assistants.

Entry point for the CLI application.
"""

import argparse
import sys
import time
from datetime import datetime

from . import config

HOOK_CHOICES = ("SessionStart", "PreCompact", "SessionEnd", "UserPromptSubmit", "Stop")


def cmd_dashboard(args):
    """Launch the TUI dashboard."""
    from .app import DevArkDashboard

    DevArkDashboard(days=args.days).run()


def cmd_watch(args):
    """Watch for prompts and print analysis as it completes."""
    from .runtime import Runtime

    runtime = Runtime()
    if args.no_analyze:
        runtime.set_auto_analyze(False)

    def on_change(state, action):
        if action.type == "ANALYSIS_COMPLETE" and state["current_analysis"]:
            analysis = state["current_analysis"]
            print(f"\n[{analysis.get('score', '?')}/10] {analysis.get('truncatedText', '')}")
            if analysis.get("improvedVersion"):
                print(f"  Improved ({analysis.get('improvedScore', '?')}/10): {analysis['improvedVersion'][:300]}")
        elif action.type == "GOAL_INFERENCE_READY" and (action.payload or {}).get("suggestedGoal"):
            print(f"  Goal: {action.payload['suggestedGoal']}")
        elif action.type == "SET_COACHING" and action.payload:
            for suggestion in action.payload.get("suggestions") or []:
                print(f"  > {suggestion.get('title')}: {suggestion.get('suggestedPrompt', '')[:200]}")

    runtime.bridge.store.subscribe(on_change)
    results = runtime.start()
    for source, ok in results.items():
        print(f"  {'✓' if ok else '✗'} {source}")
    print(f"Watching {config.HOOKS_DIR} (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print()
    finally:
        runtime.stop()


def cmd_sessions(args):
    """List recent sessions from every source."""
    from .adapters.base import get_source_display_name
    from .sessions.unified import UnifiedSessionService

    service = UnifiedSessionService.get_instance()
    sources = [args.source] if args.source else ["cursor", "claude_code"]
    result = service.get_sessions_for_days(args.days, sources=sources, limit=args.limit)
    if not result.sessions:
        print(f"No sessions in the last {args.days} day(s).")
        return

    print(f"Found {len(result.sessions)} sessions:\n")
    for s in result.sessions:
        first = s.highlights.first_user_message if s.highlights else None
        print(f"{s.start_time.astimezone():%Y-%m-%d %H:%M}  {get_source_display_name(s.source):<12} {s.workspace_name}")
        print(f"   {s.duration} min, {s.prompt_count} prompts - {(first or 'No preview')[:60]}")
        print(f"   ID: {s.id}")
        print()


def cmd_show(args):
    """Print the messages of one session."""
    from .sessions.unified import UnifiedSessionService

    details = UnifiedSessionService.get_instance().get_session_details(args.session_id)
    if details is None:
        print(f"Session not found: {args.session_id}")
        return 1
    for message in details.messages:
        stamp = f"{message.timestamp.astimezone():%H:%M:%S} " if message.timestamp else ""
        print(f"--- {stamp}{message.role} ---")
        print(message.content)
        print()
    return 0


def cmd_hooks(args):
    """Install, remove, or inspect the assistant hooks."""
    from .hooks.installer import HookConfig, get_installer

    tools = [args.tool] if args.tool else ["claude", "cursor"]
    status_code = 0
    for tool in tools:
        installer = get_installer(tool, sync_command=args.command_path)
        if args.action == "install":
            result = installer.install(HookConfig(hooks=args.hooks or list(HOOK_CHOICES), debug=args.hook_debug))
            print(f"{tool}: installed {', '.join(result.hooks_installed) or 'nothing'}")
            for warning in result.warnings:
                print(f"  warning: {warning}")
            for error in result.errors:
                print(f"  error: {error.hook}: {error.error}")
            if not result.success:
                status_code = 1
        elif args.action == "uninstall":
            result = installer.uninstall()
            print(f"{tool}: {'removed' if result.success else 'failed: ' + '; '.join(result.errors)}")
            if not result.success:
                status_code = 1
        else:
            status = installer.get_status()
            print(f"{tool}: {'installed' if status.installed else 'not installed'}")
            for hook in status.hooks:
                print(f"  {hook.type}: {'enabled' if hook.enabled else 'disabled'}")
    return status_code


def _build_sync_service():
    from .readers import ClaudeSessionReader, CursorSessionReader
    from .storage.tokens import FileTokenStorage
    from .sync.api_client import DevArkApiClient
    from .sync.auth import AuthService
    from .sync.service import SyncService

    client = DevArkApiClient()
    auth = AuthService(FileTokenStorage(), client)
    return SyncService([ClaudeSessionReader(), CursorSessionReader()], client, auth), client


def cmd_sync(args):
    """Upload eligible sessions to the devark backend."""
    service, client = _build_sync_service()
    since = datetime.fromisoformat(args.since).astimezone() if args.since else None

    def on_progress(current, total):
        print(f"\r  Uploading {current}/{total}...", end="", flush=True)

    with client:
        if args.status:
            summary = service.status()
            print(f"Local eligible sessions: {summary.local_sessions}")
            print(f"Uploaded so far: {summary.synced_sessions}")
            print(f"Pending: {summary.pending_uploads}")
            print(f"Last sync: {summary.last_synced.astimezone():%Y-%m-%d %H:%M}" if summary.last_synced else "Last sync: never")
            return 0
        result = service.sync(since=since, force=args.force, on_progress=on_progress)

    print()
    if not result.success:
        for issue in result.errors:
            print(f"Sync failed ({issue.code}): {issue.message}")
        if any(issue.code == "NOT_AUTHENTICATED" for issue in result.errors):
            print("Run `devark auth login` first.")
        return 1
    print(f"Uploaded {result.sessions_uploaded} sessions, skipped {result.sessions_skipped}")
    upload = result.upload_result
    if upload and upload.streak:
        print(f"Streak: {upload.streak.get('current', 0)} days")
    return 0


def cmd_auth(args):
    """Log in, log out, or show the current user."""
    from .storage.tokens import FileTokenStorage
    from .sync.api_client import DevArkApiClient
    from .sync.auth import AuthService

    with DevArkApiClient() as client:
        auth = AuthService(FileTokenStorage(), client)
        if args.action == "logout":
            auth.logout()
            print("Logged out.")
            return 0
        if args.action == "status":
            user = auth.current_user()
            print(f"Logged in as {user.get('email') or user.get('id')}" if user else "Not logged in.")
            return 0

        session = auth.start_login()
        print(f"Finish logging in at: {session.auth_url}")
        if auth.wait_for_completion():
            print("Logged in.")
            return 0
        print("Login did not complete.")
        return 1


def cmd_summary(args):
    """Summarize recent sessions."""
    from .sessions.summary import SummaryService

    summary = SummaryService().for_period(args.period, use_llm=not args.no_llm)
    print(f"{args.period.capitalize()} summary ({summary.start.astimezone():%Y-%m-%d} to {summary.end.astimezone():%Y-%m-%d})")
    print("-" * 60)
    print(f"Sessions: {summary.total_sessions}   Prompts: {summary.total_prompts}   Hours: {summary.coding_hours}")
    if summary.by_source:
        print("Sources: " + ", ".join(f"{source} {count}" for source, count in summary.by_source.items()))
    if summary.projects:
        print("\nProjects:")
        for project in summary.projects[:10]:
            print(f"  {project.name:<30} {project.sessions:>3} sessions {project.minutes:>5} min")
    if summary.accomplishments:
        print("\nAccomplishments:")
        for item in summary.accomplishments:
            print(f"  - {item}")
    if summary.insight:
        print(f"\n{summary.insight}")


def cmd_sources(args):
    """Show which assistant sources are available."""
    from .adapters import registered_sources
    from .adapters.detection import create_adapter

    print("Prompt sources:")
    for source_id in registered_sources():
        adapter = create_adapter(source_id)
        if adapter is None:
            continue
        available = adapter.is_available()
        print(f"  {'✓' if available else '✗'} {adapter.source.display_name} ({source_id}, {adapter.source.detection_method})")
    print(f"\nHook directory: {config.HOOKS_DIR}")


def main(argv=None):
    """Main entry point for the devark CLI."""
    parser = argparse.ArgumentParser(
        description="Prompt co-pilot and session sync for Claude Code and Cursor",
        prog="devark",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Show version")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    dashboard_parser = subparsers.add_parser("dashboard", help="Launch the TUI dashboard (default)")
    dashboard_parser.add_argument("--days", "-d", type=int, default=1, help="Days of sessions to list")

    watch_parser = subparsers.add_parser("watch", help="Watch prompts and print analysis")
    watch_parser.add_argument("--no-analyze", action="store_true", help="Record prompts without analysis")

    sessions_parser = subparsers.add_parser("sessions", help="List recent sessions")
    sessions_parser.add_argument("--days", "-d", type=int, default=1, help="Days to look back")
    sessions_parser.add_argument("--source", "-s", choices=["cursor", "claude_code"], help="Only one source")
    sessions_parser.add_argument("--limit", "-l", type=int, default=20, help="Max sessions to show")

    show_parser = subparsers.add_parser("show", help="Print one session")
    show_parser.add_argument("session_id", help="Prefixed id, e.g. claude-abc123 or cursor-abc123")

    hooks_parser = subparsers.add_parser("hooks", help="Manage assistant hooks")
    hooks_parser.add_argument("action", choices=["install", "uninstall", "status"], help="Hook action")
    hooks_parser.add_argument("--tool", "-t", choices=["claude", "cursor"], help="Only one tool")
    hooks_parser.add_argument("--hook", dest="hooks", action="append", choices=HOOK_CHOICES, help="Hook to install (repeatable)")
    hooks_parser.add_argument("--command-path", default="devark-sync", help="Command the hooks run")
    hooks_parser.add_argument("--hook-debug", action="store_true", help="Hooks write debug logs")

    sync_parser = subparsers.add_parser("sync", help="Upload sessions")
    sync_parser.add_argument("--force", "-f", action="store_true", help="Re-read all local sessions")
    sync_parser.add_argument("--since", help="ISO date to sync from")
    sync_parser.add_argument("--status", action="store_true", help="Show sync status only")

    auth_parser = subparsers.add_parser("auth", help="Manage the devark login")
    auth_parser.add_argument("action", choices=["login", "logout", "status"], help="Auth action")

    summary_parser = subparsers.add_parser("summary", help="Summarize recent sessions")
    summary_parser.add_argument("period", nargs="?", default="daily", choices=["daily", "weekly", "monthly"])
    summary_parser.add_argument("--no-llm", action="store_true", help="Counts only")

    subparsers.add_parser("sources", help="List prompt sources")

    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"devark {__version__}")
        return 0

    config.configure_logging(args.debug)

    commands = {
        "watch": cmd_watch,
        "sessions": cmd_sessions,
        "show": cmd_show,
        "hooks": cmd_hooks,
        "sync": cmd_sync,
        "auth": cmd_auth,
        "summary": cmd_summary,
        "sources": cmd_sources,
        "dashboard": cmd_dashboard,
    }
    if args.command is None:
        return cmd_dashboard(argparse.Namespace(days=1)) or 0
    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
