"""
CLI entry point for copany-credit. Wires the pipeline: read -> replay -> rank -> report
"""

import argparse
import json
import logging
import os
import sys
import webbrowser
from datetime import datetime, timezone

from errors import ContribError
from ingest.fixtures import FixtureStore
from ingest.supabase import SupabaseClient
from normalize.util import parse_timestamp
from report.renderer import render
from scoring.ranking import rank_contributors, contribution_records
from scoring.utils import load_weights
from storage.cache import Cache, configure_retry

log = logging.getLogger(__name__)

OUTPUT_EXTENSIONS = {"html": "html", "md": "md", "csv": "csv", "json": "json"}


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str))


def _confirm(prompt: str, force: bool) -> bool:
    if force:
        return True
    return input(prompt).strip().lower() in ("y", "yes")


def _print_cache_get(cache: Cache, key: str):
    entry = cache.get(key)
    if entry is None:
        print(f"Cache key not found: {key}")
    else:
        _print_json(entry)


def _remove_cache_key(cache: Cache, key: str, force: bool):
    if not _confirm(f"Are you sure you want to remove cache key '{key}' from {cache.path}? [y/N]: ", force):
        print("Aborted cache key removal.")
        return
    removed = cache.delete_key(key)
    if removed:
        print(f"Removed {removed} row(s) for key: {key}")
    else:
        print(f"Cache key not found: {key}")


def _clear_cache(cache: Cache, force: bool):
    if not _confirm(f"Are you sure you want to clear the cache at {cache.path}? This cannot be undone. [y/N]: ", force):
        print("Aborted cache clear.")
        return
    cache.clear()
    print(f"Cleared cache at {cache.path}")


def _cache_action_requested(args) -> bool:
    return bool(args.cache_info or args.cache_clear or args.cache_list or args.cache_get or args.cache_remove)


def _handle_cache_actions(args) -> bool:
    """Run the first requested cache inspection/management action. Returns True if one ran."""
    if not _cache_action_requested(args):
        return False
    with Cache(args.cache or "cache.db") as cache:
        flag_actions = [
            (args.cache_info, lambda: _print_json(cache.stats())),
            (args.cache_clear, lambda: _clear_cache(cache, args.force)),
            (args.cache_list, lambda: _print_json(cache.list_keys(limit=1000))),
            (bool(args.cache_get), lambda: _print_cache_get(cache, args.cache_get)),
            (bool(args.cache_remove), lambda: _remove_cache_key(cache, args.cache_remove, args.force)),
        ]
        for enabled, handler in flag_actions:
            if enabled:
                handler()
                break
    return True


def build_store(args, parser, cache=None):
    """Return the persistence collaborator selected by the arguments."""
    if args.issues_file:
        return FixtureStore.from_files(args.issues_file, args.activities_file or None)
    url = args.supabase_url or os.getenv("SUPABASE_URL")
    key = args.supabase_key or os.getenv("SUPABASE_KEY")
    if not url or not key:
        parser.error("No data source: pass --issues-file, or --supabase-url/--supabase-key (or env SUPABASE_URL/SUPABASE_KEY)")
    return SupabaseClient(url, key, cache=cache, max_age=args.cache_max_age)


def run_pipeline(args, store):
    """Compute and render the report. Returns (fmt, rendered)."""
    model = load_weights(path=args.weights or None, preset=args.preset or None, reviewer_share=args.reviewer_share)
    until = parse_timestamp(args.until, "until") if args.until else None
    options = {"max_workers": args.workers, "timeout": args.timeout, "limit": args.limit}
    fmt = (args.output or "text").lower()
    scope = f"until {until.isoformat()}" if until else "all activity"
    generated_at = datetime.now(timezone.utc).isoformat()

    if args.records:
        records = contribution_records(args.copany, store, store, model, until, **options)
        return fmt, render(fmt=fmt, records=records, copany_id=args.copany, generated_at=generated_at, scope=scope)
    contributions = rank_contributors(args.copany, store, store, model, until, **options)
    return fmt, render(contributions, fmt=fmt, copany_id=args.copany, generated_at=generated_at, scope=scope)


def _open_file_in_browser(path: str):
    """Open a file URL in the system default web browser."""
    webbrowser.open("file://" + os.path.abspath(path))


def _write_report_file(path_base: str, ext: str, content: str, open_html: bool = False) -> str:
    """Write the rendered content to a file and optionally open HTML in the browser."""
    out_path = path_base if path_base.lower().endswith(f".{ext}") else f"{path_base}.{ext}"
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    # newline='' keeps CSV rows intact on Windows
    with open(out_path, "w", encoding="utf-8", newline="") as fh:
        fh.write(content)
    print(f"Wrote report to {out_path}")
    if open_html:
        _open_file_in_browser(out_path)
    return out_path


def write_output(fmt: str, rendered: str, args):
    """Write file formats to disk (default name when --out-file is omitted); print text to stdout."""
    ext = OUTPUT_EXTENSIONS.get(fmt)
    if ext is None or (fmt == "json" and not args.out_file):
        print(rendered)
        return
    base = args.out_file.strip() or f"contrib_report_{args.copany}_{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"
    _write_report_file(base, ext, rendered, open_html=(args.open and fmt == "html"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="copany-credit", description="Rank copany contributors by credit replayed from issue activity")
    parser.add_argument("--copany", type=str, default="", help="Copany id to rank")
    parser.add_argument("--issues-file", type=str, default="", help="JSON document with issues and activities, or a JSON array of issues")
    parser.add_argument("--activities-file", type=str, default="", help="JSON array of activity records (when --issues-file holds issues only)")
    parser.add_argument("--supabase-url", type=str, default="", help="Supabase project URL (or env SUPABASE_URL)")
    parser.add_argument("--supabase-key", type=str, default="", help="Supabase API key (or env SUPABASE_KEY)")
    parser.add_argument("--weights", type=str, default="", help="Path to weights YAML (default config/weights.yaml or env COPANY_WEIGHTS_FILE)")
    parser.add_argument("--preset", type=str, default="", help="Named preset from the weights YAML")
    parser.add_argument("--reviewer-share", type=float, default=None, help="Override the reviewer share (0..1)")
    parser.add_argument("--until", type=str, default="", help="Only replay activity up to this ISO timestamp")
    parser.add_argument("--workers", type=int, default=None, help="Parallel issue replays (default env COPANY_MAX_WORKERS or 8)")
    parser.add_argument("--timeout", type=float, default=None, help="Overall deadline in seconds (default env COPANY_TIMEOUT, none)")
    parser.add_argument("--limit", type=int, default=None, help="Activity records read per issue (default env COPANY_ACTIVITY_LIMIT or 1000)")
    parser.add_argument("--records", action="store_true", help="Output per-closure contribution records instead of the leaderboard")
    parser.add_argument("--output", type=str, default="text", help="Output format (text, md, html, csv, json)")
    parser.add_argument("--out-file", type=str, default="", help="Output file path (for HTML/CSV/MD/JSON). If omitted a default name is used")
    parser.add_argument("--open", action="store_true", help="Open the generated HTML report in the default browser")
    # retry/backoff knobs: CLI flags override COPANY_MAX_RETRIES, COPANY_BACKOFF_BASE, COPANY_BACKOFF_JITTER, COPANY_MAX_BACKOFF
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum attempts per HTTP request")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds")
    parser.add_argument("--request-timeout", type=float, default=None, help="Per-request timeout in seconds")
    parser.add_argument("--cache", type=str, default="", help="Path to SQLite cache of REST responses (optional)")
    parser.add_argument("--cache-max-age", type=float, default=300.0, help="Seconds a cached REST response stays fresh")
    parser.add_argument("--cache-info", action="store_true", help="Show cache statistics")
    parser.add_argument("--cache-clear", action="store_true", help="Clear the cache")
    parser.add_argument("--cache-list", action="store_true", help="List cache keys")
    parser.add_argument("--cache-get", type=str, default="", help="Show a specific cache entry")
    parser.add_argument("--cache-remove", type=str, default="", help="Remove a specific cache key")
    parser.add_argument("--force", action="store_true", help="Skip confirmation for --cache-clear/--cache-remove")
    parser.add_argument("--verbose", action="store_true", help="Log debug details (skipped records, truncation)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    configure_retry(
        max_retries=args.max_retries,
        backoff_base=args.backoff_base,
        backoff_jitter=args.backoff_jitter,
        max_backoff=args.max_backoff,
        request_timeout=args.request_timeout,
    )

    if _handle_cache_actions(args):
        return 0
    if not args.copany:
        parser.error("--copany is required")

    cache = Cache(args.cache) if args.cache else None
    try:
        store = build_store(args, parser, cache)
        fmt, rendered = run_pipeline(args, store)
    except (ContribError, ValueError, OSError) as ex:
        log.debug("pipeline failed", exc_info=True)
        print(f"Error: {ex}", file=sys.stderr)
        return 1
    finally:
        if cache:
            cache.close()
    write_output(fmt, rendered, args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
