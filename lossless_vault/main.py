import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from . import config
from .core import VaultApp
from .events import (
    FileCopied,
    FileProcessed,
    FileRemoved,
    FileSkipped,
    PhaseComplete,
    SourceStart,
    TransferComplete,
    TransferStart,
)
from .exceptions import VaultError
from .reporting import ReportGenerator


def setup_logging(verbose: bool, log_file: Optional[Path] = None):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="lsvault", description="LosslessVault: photo deduplication engine")
    p.add_argument("--catalog", type=Path, default=config.DEFAULT_CATALOG_PATH,
                   help="Path to the catalog database")
    p.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Register a directory as a photo source")
    add.add_argument("path", type=Path)

    scan = sub.add_parser("scan", help="Scan all sources and find duplicates")
    scan.add_argument("--workers", type=int, default=config.DEFAULT_SCAN_WORKERS,
                      help="Parallel hashing workers")

    sub.add_parser("sources", help="List registered sources")
    status = sub.add_parser("status", help="Show catalog summary")
    status.add_argument("--files", action="store_true", help="Also list every cataloged file")
    sub.add_parser("groups", help="List all duplicate groups")

    group = sub.add_parser("group", help="Show one duplicate group")
    group.add_argument("id", type=int)

    report = sub.add_parser("report", help="Write every duplicate group to a CSV file")
    report.add_argument("output", type=Path)

    vault = sub.add_parser("vault", help="Manage the vault and export destinations")
    vault_sub = vault.add_subparsers(dest="action", required=True)
    vault_set = vault_sub.add_parser("set", help="Set the vault destination path")
    vault_set.add_argument("path", type=Path)
    vault_sub.add_parser("show", help="Show the vault path")
    vault_sub.add_parser("save", help="Copy deduplicated best-quality photos to the vault")
    export_set = vault_sub.add_parser("export-set", help="Set the HEIC export destination")
    export_set.add_argument("path", type=Path)
    vault_sub.add_parser("export-show", help="Show the export path")
    export = vault_sub.add_parser("export", help="Export deduplicated photos as HEIC (macOS)")
    export.add_argument("--quality", type=int, default=config.DEFAULT_HEIC_QUALITY, help="HEIC quality 0-100")

    return p.parse_args(argv)


class ProgressPrinter:
    """Turns app events into tqdm bars."""

    def __init__(self):
        self.bar: Optional[tqdm] = None

    def __call__(self, event):
        if isinstance(event, (SourceStart, TransferStart)):
            self.close()
            total = event.file_count if isinstance(event, SourceStart) else event.total
            desc = f"Scanning {event.source}" if isinstance(event, SourceStart) else "Transferring"
            self.bar = tqdm(total=total, desc=desc, unit="file")
        elif isinstance(event, (FileProcessed, FileCopied, FileSkipped)):
            if self.bar is not None:
                self.bar.update(1)
        elif isinstance(event, FileRemoved):
            logging.debug(f"Removed stale {event.path}")
        elif isinstance(event, TransferComplete):
            self.close()
        elif isinstance(event, PhaseComplete):
            self.close()
            logging.debug(f"Grouping phase '{event.phase}' complete ({event.group_count} groups)")

    def close(self):
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def _print_groups(app: VaultApp):
    records, groups = app.snapshot()
    if not groups:
        print("No duplicate groups found. Run `lsvault scan` first.")
        return

    by_id = {r.id: r for r in records}
    print(f"{'ID':<6} {'Confidence':<14} {'Members':<8} Source of Truth")
    print("-" * 80)
    for g in groups:
        print(f"{g.label:<6} {str(g.confidence):<14} {len(g):<8} {by_id[g.canonical_id].path}")


def _print_group(app: VaultApp, label: int):
    group, members = app.group(label)
    print(f"Group #{group.label} ({group.confidence})")
    print("-" * 60)
    for m in members:
        marker = " [SOURCE]" if m.id == group.canonical_id else ""
        print(f"  {m.path} ({m.format}, {m.size_bytes / 1024:.1f} KB){marker}")


def _print_sources(app: VaultApp):
    sources = app.sources()
    if not sources:
        print("No sources registered. Use `lsvault add <path>` to add one.")
        return
    print(f"{'ID':<4} {'Path':<60} Last Scanned")
    print("-" * 80)
    for s in sources:
        scanned = "never"
        if s.last_scanned:
            scanned = datetime.fromtimestamp(s.last_scanned).strftime("%Y-%m-%d %H:%M:%S")
        print(f"{s.id:<4} {str(s.path):<60} {scanned}")


def _print_files(app: VaultApp):
    photos = app.photos()
    if not photos:
        print("No files cataloged. Run `lsvault scan` first.")
        return

    sources = {s.id: s.path for s in app.sources()}
    print()
    print(f"{'ID':<6} {'Source':<30} {'Format':<7} {'Size (KB)':>10}  Path")
    print("-" * 100)
    for p in photos:
        source = str(sources.get(p.source_id, "?"))
        print(f"{p.id:<6} {source:<30} {str(p.format):<7} {p.size_bytes / 1024:>10.1f}  {p.path}")


def run(args) -> int:
    app = VaultApp(args.catalog)
    progress = ProgressPrinter()

    if args.command == "add":
        source = app.add_source(args.path)
        print(f"Added source: {source.path}")
    elif args.command == "scan":
        summary = app.scan(on_event=progress, max_workers=args.workers)
        progress.close()
        print(f"Scan complete: {summary.added} added, {summary.updated} updated, "
              f"{summary.unchanged} unchanged, {summary.removed} removed; {summary.groups} duplicate groups.")
    elif args.command == "sources":
        _print_sources(app)
    elif args.command == "status":
        stats = app.stats()
        print(f"Sources:    {stats.total_sources}")
        print(f"Photos:     {stats.total_photos}")
        print(f"Groups:     {stats.total_groups}")
        print(f"Duplicates: {stats.total_duplicates}")
        if args.files:
            _print_files(app)
    elif args.command == "groups":
        _print_groups(app)
    elif args.command == "group":
        _print_group(app, args.id)
    elif args.command == "report":
        records, groups = app.snapshot()
        ReportGenerator().write_groups_csv(groups, records, args.output)
    elif args.command == "vault":
        return _run_vault(app, args, progress)
    return 0


def _run_vault(app: VaultApp, args, progress: ProgressPrinter) -> int:
    if args.action == "set":
        print(f"Vault path set to: {app.set_vault_path(args.path)}")
    elif args.action == "show":
        vault = app.vault_path()
        print(f"Vault path: {vault}" if vault else "No vault path configured. Use `lsvault vault set <path>`.")
    elif args.action == "save":
        summary = app.save_vault(on_event=progress)
        print(f"Vault saved: {summary.done} copied, {summary.skipped} skipped, {summary.removed} removed.")
    elif args.action == "export-set":
        print(f"Export path set to: {app.set_export_path(args.path)}")
    elif args.action == "export-show":
        export_root = app.export_path()
        print(f"Export path: {export_root}" if export_root
              else "No export path configured. Use `lsvault vault export-set <path>`.")
    elif args.action == "export":
        summary = app.export(quality=args.quality, on_event=progress)
        print(f"Export complete: {summary.done} converted, {summary.skipped} skipped.")
    return 0


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except VaultError as e:
        logging.error(str(e))
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error.")
        sys.exit(1)


if __name__ == "__main__":
    main()
