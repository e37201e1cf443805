#!/usr/bin/env python3
"""
Music Library - Command Line Interface

Ingest audio files into the library and maintain stored songs: show, edit,
enrich, delete and fingerprint regeneration.
"""

import argparse
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..core.config_manager import MusicLibraryConfig, get_config_manager
from ..core.constants import LOG_LEVELS
from ..core.ingestion import IngestionError, SongIngestionService
from ..core.models import AudioBlob, IngestResult, SongRecord, TrackMetadata
from ..metadata.artist_parser import format_artists
from ..utils.error_handler import get_error_handler
from ..utils.tool_checker import ToolChecker

# Extensions whose MIME type the mimetypes module does not map to an accepted value
EXTENSION_MIME_TYPES = {
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.ogg': 'audio/ogg',
    '.flac': 'audio/flac',
    '.aac': 'audio/aac',
    '.m4a': 'audio/m4a',
}

SONG_ID_MODES = ("show", "edit", "enrich", "delete")

# Root handlers added by setup_logging
_installed_handlers: List[logging.Handler] = []


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper())

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    # Repeated calls replace the previous handlers instead of stacking them
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="music-library",
        description="Personal music library: ingestion, deduplication and metadata maintenance",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Music Library v{__version__}"
    )

    parser.add_argument(
        "targets",
        nargs="*",
        help="Audio files (ingest mode) or song ids (other modes)"
    )

    parser.add_argument(
        "--mode",
        choices=["ingest", "list", "show", "edit", "enrich", "delete", "regenerate", "tools"],
        default="ingest",
        help="Operation mode (default: ingest)"
    )

    # Configuration
    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Configuration file path (JSON format)"
    )

    parser.add_argument(
        "--db",
        type=str,
        help="Song database path (overrides storage.database_path)"
    )

    parser.add_argument(
        "--blob-root",
        type=str,
        help="Blob storage directory (overrides storage.blob_root)"
    )

    parser.add_argument(
        "--no-lookup",
        action="store_true",
        help="Disable online metadata lookup"
    )

    # Metadata for ingest and edit
    metadata = parser.add_argument_group("metadata")
    metadata.add_argument("--title", type=str, help="Song title")
    metadata.add_argument("--artist", type=str, help="Artist, e.g. 'A feat. B'")
    metadata.add_argument("--album", type=str, help="Album title")
    metadata.add_argument("--year", type=str, help="Release year")
    metadata.add_argument("--genre", type=str, help="Comma-separated genres")
    metadata.add_argument("--uploader", type=str, default="local", help="Uploader identity (default: local)")
    metadata.add_argument("--content-type", type=str, help="MIME type of the uploaded files")

    # Maintenance
    parser.add_argument(
        "--force",
        action="store_true",
        help="Enrich mode: overwrite existing album, year and cover art"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of songs to process or list (default: 10)"
    )

    # Output
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON"
    )

    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        help="Logging level (overrides ui.log_level, default: WARNING)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Log file path"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show technical error details (overrides ui.verbose_errors)"
    )

    return parser


def validate_arguments(args: argparse.Namespace) -> bool:
    """Validate command line arguments."""
    if args.mode == "ingest":
        if not args.targets:
            print("Error: At least one audio file is required for ingest mode", file=sys.stderr)
            return False
        for target in args.targets:
            if not Path(target).is_file():
                print(f"Error: File does not exist: {target}", file=sys.stderr)
                return False

    if args.mode in SONG_ID_MODES and not args.targets:
        print(f"Error: At least one song id is required for {args.mode} mode", file=sys.stderr)
        return False

    if args.limit < 1:
        print("Error: --limit must be at least 1", file=sys.stderr)
        return False

    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file does not exist: {args.config}", file=sys.stderr)
        return False

    return True


def _load_and_validate_config(args: argparse.Namespace) -> Optional[MusicLibraryConfig]:
    """Load configuration with CLI overrides; None when it is invalid"""
    cli_overrides: Dict[str, Any] = {}

    ui = {}
    if args.log_level:
        ui['log_level'] = args.log_level
    if args.verbose:
        ui['verbose_errors'] = True
    if ui:
        cli_overrides['ui'] = ui

    storage = {}
    if args.db:
        storage['database_path'] = args.db
    if args.blob_root:
        storage['blob_root'] = args.blob_root
    if storage:
        cli_overrides['storage'] = storage

    if args.no_lookup:
        cli_overrides['lookup'] = {'enabled': False}

    config_manager = get_config_manager()
    config = config_manager.load_config(config_file=args.config, cli_overrides=cli_overrides)

    issues = config_manager.validate_config(config)
    if issues:
        for issue in issues:
            print(f"Configuration issue: {issue}", file=sys.stderr)
        return None

    return config


def _user_metadata(args: argparse.Namespace) -> Dict[str, Any]:
    """Metadata options that were given on the command line"""
    values = {
        'title': args.title,
        'artist': args.artist,
        'album': args.album,
        'year': args.year,
        'genre': args.genre,
    }
    return {key: value for key, value in values.items() if value is not None}


def _guess_content_type(path: Path, override: Optional[str]) -> str:
    if override:
        return override
    suffix = path.suffix.lower()
    if suffix in EXTENSION_MIME_TYPES:
        return EXTENSION_MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or 'application/octet-stream'


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _song_table(songs: List[SongRecord], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Artists", style="yellow")
    table.add_column("Album")
    table.add_column("Year", justify="right")
    table.add_column("Genre")
    table.add_column("Fingerprint", style="dim")

    for song in songs:
        table.add_row(
            song.id or "",
            song.title,
            format_artists(song.artists) if song.artists else song.artist,
            song.album or "",
            str(song.year) if song.year else "",
            ", ".join(song.genre),
            "hash" if song.fingerprint.startswith("HASH:") else "acoustic",
        )
    return table


def run_ingest_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    """Ingest each file; a duplicate counts as handled, a rejection as failed"""
    user_supplied = TrackMetadata.from_mapping(_user_metadata(args))
    results: List[Dict[str, Any]] = []
    failures = 0

    for target in args.targets:
        path = Path(target)
        blob = AudioBlob(
            data=path.read_bytes(),
            content_type=_guess_content_type(path, args.content_type),
            filename=path.name,
        )

        try:
            result: IngestResult = service.ingest(blob, user_supplied, uploaded_by=args.uploader)
        except IngestionError as e:
            failures += 1
            results.append({'file': path.name, **e.to_dict()})
            continue

        results.append({'file': path.name, **result.to_dict()})

    if args.json:
        _print_json(results)
    else:
        table = Table(title="Ingestion Results", box=box.ROUNDED)
        table.add_column("File", style="cyan")
        table.add_column("Outcome", style="yellow")
        table.add_column("Song")
        table.add_column("Details")

        for entry in results:
            if 'error' in entry:
                error = entry['error']
                existing = (error.get('details') or {}).get('existingSong')
                song = f"{existing['artist']} - {existing['title']} ({existing['id']})" if existing else ""
                table.add_row(entry['file'], error['code'], song, error['message'])
            else:
                song = entry['song']
                table.add_row(
                    entry['file'],
                    entry['outcome'],
                    f"{song['artist']} - {song['title']} ({song['id']})",
                    ", ".join(entry['updatedFields']) or entry['fingerprintKind'],
                )
        console.print(table)

    return 1 if failures else 0


def run_list_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    songs = service.list_songs(limit=args.limit)
    if args.json:
        _print_json([song.to_dict() for song in songs])
    else:
        console.print(_song_table(songs, f"Library ({service.songs.count()} songs)"))
    return 0


def run_show_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    songs = [service.get_song(song_id) for song_id in args.targets]
    if args.json:
        _print_json([song.to_dict() for song in songs])
    else:
        console.print(_song_table(songs, "Songs"))
    return 0


def run_edit_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    updates = _user_metadata(args)
    if not updates:
        print("Error: Nothing to edit; pass --title, --artist, --album, --year or --genre", file=sys.stderr)
        return 1

    songs = [service.update_song_metadata(song_id, updates) for song_id in args.targets]
    if args.json:
        _print_json([song.to_dict() for song in songs])
    else:
        console.print(_song_table(songs, "Updated Songs"))
    return 0


def run_enrich_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    results = []
    for song_id in args.targets:
        song, fields = service.enrich_song(song_id, force=args.force)
        results.append({'song': song.to_dict(), 'enrichedFields': fields})

    if args.json:
        _print_json(results)
    else:
        table = Table(title="Enrichment", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Song")
        table.add_column("Enriched fields", style="yellow")
        for entry in results:
            song = entry['song']
            table.add_row(song['id'], f"{song['artist']} - {song['title']}",
                          ", ".join(entry['enrichedFields']) or "already up to date")
        console.print(table)
    return 0


def run_delete_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    deleted = [service.delete_song(song_id) for song_id in args.targets]
    if args.json:
        _print_json([{'id': song.id, 'deleted': True} for song in deleted])
    else:
        for song in deleted:
            console.print(f"[green]Deleted[/] {song.artist} - {song.title} ({song.id})")
    return 0


def run_regenerate_mode(args: argparse.Namespace, service: SongIngestionService, console: Console) -> int:
    summary = service.regenerate_fingerprints(limit=args.limit, song_ids=args.targets or None)

    if args.json:
        _print_json(summary)
    else:
        table = Table(title="Fingerprint Regeneration", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Details")
        for result in summary['results']:
            status = "[green]success[/]" if result['status'] == 'success' else "[red]failed[/]"
            table.add_row(result['id'], result['title'], status,
                          result.get('newFingerprint') or result.get('error', ''))
        console.print(table)
        console.print(f"Processed {summary['processed']} of {summary['total']}, {summary['failed']} failed")

    return 0


def run_tools_mode(args: argparse.Namespace, config: MusicLibraryConfig, console: Console) -> int:
    report = ToolChecker(config.fingerprint.fpcalc_candidates).check_fpcalc()

    if args.json:
        _print_json(report)
    elif report['path']:
        console.print(f"[green]fpcalc found:[/] {report['path']}")
    else:
        console.print("[yellow]fpcalc not found; uploads will use content-hash fingerprints[/]")
        console.print(f"Install with: {report['install_hint']}")

    return 0 if report['path'] else 1


MODE_HANDLERS = {
    "ingest": run_ingest_mode,
    "list": run_list_mode,
    "show": run_show_mode,
    "edit": run_edit_mode,
    "enrich": run_enrich_mode,
    "delete": run_delete_mode,
    "regenerate": run_regenerate_mode,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Reconfigured from ui.log_level once the configuration is loaded
    setup_logging(args.log_level or "WARNING", args.log_file)
    logger = logging.getLogger(__name__)

    if not validate_arguments(args):
        return 1

    logger.info(f"Music Library v{__version__} starting (mode: {args.mode})")

    config = None
    try:
        config = _load_and_validate_config(args)
        if config is None:
            return 1

        setup_logging(config.ui.log_level, args.log_file)

        console = Console(no_color=not config.ui.color_output)

        if args.mode == "tools":
            return run_tools_mode(args, config, console)

        service = SongIngestionService.from_config(config)
        return MODE_HANDLERS[args.mode](args, service, console)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except IngestionError as e:
        handler = get_error_handler(config.ui.verbose_errors if config else args.verbose)
        error = handler.handle_exception(e)
        handler.log_error(error, e)
        if args.json:
            _print_json(error.to_dict())
        else:
            print(handler.format_error_message(error), file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Unexpected error occurred")
        handler = get_error_handler(config.ui.verbose_errors if config else args.verbose)
        print(handler.format_error_message(handler.handle_exception(e)), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
