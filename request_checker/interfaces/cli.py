import argparse
import os
import sys
import logging
import signal
import time
from typing import List, Optional
from dotenv import load_dotenv

from request_checker.application.catalog import SORT_MODES, group_by_artist, group_by_genre, youtube_search_url
from request_checker.application.matching import SongMatcher
from request_checker.application.repository import SongRepository
from request_checker.application.session import OFFLINE, RequestCheckerSession
from request_checker.crosscutting.config import ConfigError, Settings, get_config_manager
from request_checker.crosscutting.logging import setup_logging
from request_checker.domain.entities import Song, SongStatus
from request_checker.domain.errors import RateLimited
from request_checker.domain.songlist import encode_songs, parse_bulk_songs, parse_songs_with_diagnostics
from request_checker.infrastructure.providers.gemini import PrintGakufuChecker
from request_checker.infrastructure.stores.factory import create_store

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


class CLI:
    """Command Line Interface for the piano request checker."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None
        self._session: Optional[RequestCheckerSession] = None
        self._metrics_file: Optional[str] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='request-checker',
            description='Check song requests against a pianist\'s repertoire'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        def add_log_level(sub):
            sub.add_argument(
                '--log-level',
                choices=LOG_LEVELS,
                help='Set logging level (default: WARNING, or LOG_LEVEL for serve)'
            )

        def add_metrics_file(sub):
            sub.add_argument(
                '--metrics-file',
                help='Write service metrics as JSON to this file on exit'
            )

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP API')
        serve_parser.add_argument('--host', help='Interface to bind (default from HTTP_HOST)')
        serve_parser.add_argument('--port', type=int, help='Port to bind (default from HTTP_PORT)')
        serve_parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
        add_log_level(serve_parser)

        search_parser = subparsers.add_parser('search', help='Check whether a song is in the repertoire')
        search_parser.add_argument('term', help='Song title or artist')
        add_log_level(search_parser)
        add_metrics_file(search_parser)

        ranking_parser = subparsers.add_parser('ranking', help='Show the most searched songs')
        ranking_parser.add_argument('--limit', type=int, default=None, help='Number of entries')
        add_log_level(ranking_parser)
        add_metrics_file(ranking_parser)

        requests_parser = subparsers.add_parser('requests', help='Show the most requested songs')
        requests_parser.add_argument('--limit', type=int, default=None, help='Number of entries')
        add_log_level(requests_parser)
        add_metrics_file(requests_parser)

        list_parser = subparsers.add_parser('list', help='Show the song list')
        list_parser.add_argument('--sort', choices=SORT_MODES, default='default', help='Sort order')
        list_parser.add_argument('--group', choices=['artist', 'genre'], help='Group songs by artist or genre')
        list_parser.add_argument('--playable', action='store_true', help='Leave out songs still being practiced')
        list_parser.add_argument('--links', action='store_true', help='Print a YouTube search link under each song')
        add_log_level(list_parser)
        add_metrics_file(list_parser)

        import_parser = subparsers.add_parser('import', help='Import songs from a text file')
        import_parser.add_argument('file', help='UTF-8 file, one song per line')
        import_parser.add_argument(
            '--bulk',
            action='store_true',
            help='Spreadsheet paste format: markers may appear in any trailing column'
        )
        import_parser.add_argument(
            '--replace',
            action='store_true',
            help='Replace the song list instead of appending to it'
        )
        add_log_level(import_parser)
        add_metrics_file(import_parser)

        export_parser = subparsers.add_parser('export', help='Write the song list')
        export_parser.add_argument('file', nargs='?', help='Output file (default: stdout)')
        add_log_level(export_parser)
        add_metrics_file(export_parser)

        validate_parser = subparsers.add_parser('validate', help='Report lines that would be skipped')
        validate_parser.add_argument('file', help='UTF-8 file, one song per line')
        add_log_level(validate_parser)

        check_parser = subparsers.add_parser('check', help='Ask the AI search about print-gakufu availability')
        check_parser.add_argument('query', help='Song title and/or artist')
        add_log_level(check_parser)

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down gracefully...")
            self._cleanup_resources()
            sys.exit(130)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Wait for pending counter events and stop background workers."""
        logger = logging.getLogger(__name__)
        if self._session is not None:
            self._session.close()
            if self._metrics_file:
                try:
                    self._session.metrics.save_to_file(self._metrics_file)
                except OSError as e:
                    logger.error(f"Failed to write metrics to {self._metrics_file}: {e}")
            self._session = None
        if self._start_time:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")

    def _setup_logging(self, level: str) -> None:
        """Setup logging configuration."""
        setup_logging(level)

    def _load_settings(self) -> Settings:
        return get_config_manager().get_settings()

    def _create_session(self, settings: Settings) -> RequestCheckerSession:
        """Create and load a session against the configured store."""
        matcher = SongMatcher(related_limit=settings.related_limit)
        repository = SongRepository(
            create_store(settings),
            matcher=matcher,
            catalog_url_template=settings.catalog_search_url_template,
        )
        self._session = RequestCheckerSession(
            repository,
            matcher=matcher,
            ranking_limit=settings.ranking_limit,
            admin_passkey=settings.admin_passkey,
        ).load()
        if self._session.connection_status == OFFLINE:
            print("Warning: store unavailable, showing the built-in song list", file=sys.stderr)
        return self._session

    def _read_file(self, path: str) -> str:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()

    def _format_song(self, song: Song) -> str:
        marks = []
        if song.is_new:
            marks.append('NEW')
        if song.status == SongStatus.PRACTICING:
            marks.append('練習中')
        suffix = f" [{', '.join(marks)}]" if marks else ''
        return f"{song.title} / {song.artist}{suffix}"

    def _search(self, args: argparse.Namespace) -> None:
        session = self._create_session(self._load_settings())
        outcome = session.search(args.term)
        if outcome is None:
            print("Please enter a song title or artist.")
            sys.exit(1)

        headers = {
            'found': 'In the repertoire:',
            'related': 'Not in the list, but these songs are related:',
            'notFound': 'Not in the list.',
        }
        print(headers[outcome.status.value])
        for song in outcome.songs:
            print(f"  {self._format_song(song)}")
        print(f"Sheet music: {session.catalog_url(outcome.search_term)}")

    def _ranking(self, args: argparse.Namespace) -> None:
        session = self._create_session(self._load_settings())
        entries = session.ranking(args.limit)
        if not entries:
            print("No ranking data yet.")
            return
        for position, entry in enumerate(entries, 1):
            artist = f" - {entry.artist}" if entry.artist else ''
            print(f"{position:>3}. {entry.id}{artist} ({entry.count})")

    def _requests(self, args: argparse.Namespace) -> None:
        session = self._create_session(self._load_settings())
        entries = session.request_ranking(args.limit)
        if not entries:
            print("No requests yet.")
            return
        for position, entry in enumerate(entries, 1):
            print(f"{position:>3}. {entry.id} ({entry.count})")

    def _list(self, args: argparse.Namespace) -> None:
        session = self._create_session(self._load_settings())
        songs = session.list_songs(args.sort, playable_only=args.playable)
        if not songs:
            print("No songs in the list.")
            return

        def print_song(song: Song, indent: str = '') -> None:
            print(f"{indent}{self._format_song(song)}")
            if args.links:
                print(f"{indent}    {youtube_search_url(song.title, song.artist)}")

        if not args.group:
            for song in songs:
                print_song(song)
            return

        grouper = group_by_artist if args.group == 'artist' else group_by_genre
        for name, members in grouper(songs):
            print(f"{name} ({len(members)})")
            for song in members:
                print_song(song, indent='  ')

    def _import(self, args: argparse.Namespace) -> None:
        text = self._read_file(args.file)
        if args.bulk:
            songs: List[Song] = parse_bulk_songs(text)
            skipped = []
        else:
            songs, skipped = parse_songs_with_diagnostics(text)

        for diag in skipped:
            print(f"Skipped line {diag.line_number}: {diag.reason}: {diag.line}", file=sys.stderr)
        if not songs:
            print("No songs found in file.")
            sys.exit(1)

        session = self._create_session(self._load_settings())
        if session.connection_status == OFFLINE:
            print("Refusing to import while the store is unavailable.", file=sys.stderr)
            sys.exit(1)

        collection = songs if args.replace else list(session.songs) + songs
        session.save_songs(collection)
        print(f"Imported {len(songs)} songs ({len(session.songs)} total).")

    def _export(self, args: argparse.Namespace) -> None:
        session = self._create_session(self._load_settings())
        blob = encode_songs(session.songs)
        if args.file:
            with open(args.file, 'w', encoding='utf-8') as f:
                f.write(blob + '\n')
            print(f"Exported {len(session.songs)} songs to {args.file}")
        else:
            print(blob)

    def _validate(self, args: argparse.Namespace) -> None:
        songs, skipped = parse_songs_with_diagnostics(self._read_file(args.file))
        for diag in skipped:
            print(f"Line {diag.line_number}: {diag.reason}: {diag.line}")
        print(f"{len(songs)} songs, {len(skipped)} skipped lines")
        if skipped:
            sys.exit(1)

    def _check(self, args: argparse.Namespace) -> None:
        settings = self._load_settings()
        if not settings.gemini_api_key:
            raise ConfigError("GEMINI_API_KEY is not configured")
        checker = PrintGakufuChecker(settings.gemini_api_key, model=settings.gemini_model)
        try:
            result = checker.check(args.query)
        except RateLimited:
            print("The AI search is rate limited, please try again later.", file=sys.stderr)
            sys.exit(1)
        print(f"Result: {result.result.value}")
        if result.details:
            print(result.details)

    def _serve(self, args: argparse.Namespace) -> None:
        # Imported here so the other commands do not need Flask loaded
        from request_checker.interfaces.http import HTTPServer

        settings = self._load_settings()
        if not args.log_level:
            self._setup_logging(settings.log_level)
        server = HTTPServer(
            host=args.host or settings.http_host,
            port=args.port or settings.http_port,
            debug=args.debug,
            settings=settings,
        )
        server.run()

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Run the CLI."""
        self._start_time = time.time()

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                sys.exit(1)

            self._setup_logging(args.log_level or 'WARNING')
            self._metrics_file = getattr(args, 'metrics_file', None)

            handlers = {
                'serve': self._serve,
                'search': self._search,
                'ranking': self._ranking,
                'requests': self._requests,
                'list': self._list,
                'import': self._import,
                'export': self._export,
                'validate': self._validate,
                'check': self._check,
            }
            handlers[args.command](args)

        except KeyboardInterrupt:
            logger = logging.getLogger(__name__)
            logger.warning("Operation cancelled by user")
            self._cleanup_resources()
            sys.exit(130)
        except (ConfigError, OSError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            self._cleanup_resources()
            sys.exit(1)
        except Exception as e:
            logger = logging.getLogger(__name__)
            logger.error(f"CLI error: {e}")
            self._cleanup_resources()
            sys.exit(1)
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv(os.path.join(os.getcwd(), '.env'))
    cli = CLI()
    cli.run()


if __name__ == '__main__':
    main()
