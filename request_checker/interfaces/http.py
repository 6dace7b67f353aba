import os
import logging
import uuid
from typing import Any, Dict, Optional
from datetime import datetime
from flask import Flask, Response, g, request, jsonify

from request_checker.application.blog import BlogService
from request_checker.application.catalog import (
    SORT_MODES, format_request_message, group_by_artist, group_by_genre, suggest_song, youtube_search_url
)
from request_checker.application.layout import LayoutService
from request_checker.application.matching import SongMatcher
from request_checker.application.repository import SongRepository
from request_checker.application.session import RequestCheckerSession
from request_checker.crosscutting.config import Settings, get_config_manager
from request_checker.crosscutting.logging import CorrelationContext, log_error
from request_checker.crosscutting.metrics import MetricsCollector
from request_checker.domain.entities import Song
from request_checker.domain.errors import (
    AdminAuthError, NotFound, PermanentFailure, RateLimited, TemporaryFailure
)
from request_checker.domain.ports import AvailabilityChecker, DocumentStore
from request_checker.infrastructure.providers.gemini import PrintGakufuChecker
from request_checker.infrastructure.stores.factory import create_store

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, X-Admin-Passkey',
}

ADMIN_HEADER = 'X-Admin-Passkey'

GROUPINGS = {
    'artist': group_by_artist,
    'genre': group_by_genre,
}

FALSE_VALUES = ('false', '0', 'no')


def _song_view(song: Song) -> Dict[str, Any]:
    data = song.to_dict()
    data['youtubeUrl'] = youtube_search_url(song.title, song.artist)
    return data


class HTTPServer:
    """HTTP server exposing the song checker, rankings, layout and blog APIs."""

    def __init__(self,
                 host: str = 'localhost',
                 port: int = 3000,
                 debug: bool = False,
                 settings: Optional[Settings] = None,
                 store: Optional[DocumentStore] = None,
                 checker: Optional[AvailabilityChecker] = None,
                 session: Optional[RequestCheckerSession] = None):
        """Initialize HTTP server.

        Args:
            host: Interface to bind
            port: Port to bind
            debug: Flask debug mode
            settings: Resolved settings; loaded from the environment when omitted
            store: Document store; created from settings when omitted
            checker: Availability checker; created from settings when a Gemini key is configured
            session: Pre-built session, mainly for tests
        """
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.app.json.ensure_ascii = False
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self.settings = settings or get_config_manager().get_settings()
        self.store = store or create_store(self.settings)
        self.metrics = session.metrics if session else MetricsCollector()

        if session is None:
            matcher = SongMatcher(related_limit=self.settings.related_limit)
            repository = SongRepository(
                self.store,
                matcher=matcher,
                catalog_url_template=self.settings.catalog_search_url_template,
            )
            session = RequestCheckerSession(
                repository,
                matcher=matcher,
                metrics=self.metrics,
                ranking_limit=self.settings.ranking_limit,
                admin_passkey=self.settings.admin_passkey,
            ).load()
        self.session = session

        self.layout = LayoutService(self.store)
        self.blog = BlogService(self.store)
        self.checker = checker
        if self.checker is None and self.settings.gemini_api_key:
            self.checker = PrintGakufuChecker(self.settings.gemini_api_key, model=self.settings.gemini_model)

        self._setup_hooks()
        self._setup_routes()

    def _is_admin(self) -> bool:
        passkey = self.settings.admin_passkey
        if not passkey:
            return True
        return request.headers.get(ADMIN_HEADER) == passkey

    def _require_admin(self) -> None:
        if not self._is_admin():
            raise AdminAuthError("Admin passkey required")

    def _song_list_view(self):
        """Sorted, optionally grouped songs with a YouTube search link each."""
        sort = request.args.get('sort', 'default')
        group = request.args.get('group')
        if sort not in SORT_MODES:
            return jsonify({'error': f"Unknown sort mode: {sort}"}), 400
        if group and group not in GROUPINGS:
            return jsonify({'error': f"Unknown grouping: {group}"}), 400

        if sort == 'popularity':
            self.session.refresh_search_counts()
        songs = self.session.list_songs(sort, playable_only=request.args.get('playable') == 'true')

        if not group:
            return jsonify({'songs': [_song_view(s) for s in songs]}), 200
        return jsonify({'groups': [
            {'name': name, 'songs': [_song_view(s) for s in members]}
            for name, members in GROUPINGS[group](songs)
        ]}), 200

    def _json_body(self) -> Dict[str, Any]:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}

    def _setup_hooks(self) -> None:
        """Setup request correlation and CORS handling."""

        @self.app.before_request
        def start_request():
            request_id = request.headers.get('X-Request-Id') or uuid.uuid4().hex[:12]
            g.correlation = CorrelationContext(request_id=request_id, endpoint=request.path)
            g.correlation.__enter__()
            if request.method == 'OPTIONS':
                return Response(status=204)
            return None

        @self.app.after_request
        def add_cors_headers(response):
            response.headers.update(CORS_HEADERS)
            return response

        @self.app.errorhandler(AdminAuthError)
        def admin_required(e):
            self.logger.warning(f"Rejected admin request to {request.path}")
            return jsonify({'error': str(e)}), 401

        @self.app.teardown_request
        def end_request(exc):
            correlation = g.pop('correlation', None)
            if correlation is not None:
                correlation.__exit__(None, None, None)

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'connection': self.session.connection_status,
                'songs': len(self.session.songs),
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'Piano Request Checker',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'metrics': '/api/metrics',
                    'songs': '/api/songs',
                    'search': '/api/search',
                    'log_search': '/api/log-search',
                    'log_request': '/api/log-request',
                    'ranking': '/api/get-ranking',
                    'request_ranking': '/api/get-request-ranking',
                    'layout_config': '/api/layout-config',
                    'blog': '/api/blog',
                    'check_availability': '/api/check-availability',
                    'suggest': '/api/suggest',
                }
            }), 200

        @self.app.route('/api/metrics', methods=['GET'])
        def metrics():
            return jsonify(self.metrics.to_dict()), 200

        @self.app.route('/api/songs', methods=['GET', 'POST'])
        def songs():
            """Read or replace the song-list blob."""
            try:
                if request.method == 'GET':
                    if request.args.get('view') == 'list':
                        return self._song_list_view()
                    return jsonify({'list': self.session.repository.load_song_blob()}), 200

                self._require_admin()
                song_list = self._json_body().get('list')
                if not isinstance(song_list, str):
                    return jsonify({'error': 'Invalid data format.'}), 400

                saved, skipped = self.session.save_blob(song_list)
                return jsonify({
                    'success': True,
                    'count': len(saved),
                    'skipped': [
                        {'line': d.line_number, 'text': d.line, 'reason': d.reason} for d in skipped
                    ],
                }), 200
            except TemporaryFailure as e:
                self.metrics.record_store_failure()
                log_error(self.logger, 'Song list operation failed', e)
                return jsonify({'error': 'Failed to communicate with the database.'}), 500

        @self.app.route('/api/search', methods=['GET'])
        def search():
            """Check a visitor query against the repertoire.

            The search is counted unless ``log=false`` is passed; clients that
            count through /api/log-search should pass it.
            """
            term = request.args.get('q', '')
            record = request.args.get('log', 'true').lower() not in FALSE_VALUES
            if self.session.is_admin_term(term):
                return jsonify({'result': None, 'admin': True}), 200

            outcome = self.session.search(term, record=record)
            if outcome is None:
                return jsonify({'result': None}), 200

            return jsonify({
                'result': outcome.to_dict(),
                'catalogUrl': self.session.catalog_url(outcome.search_term),
            }), 200

        @self.app.route('/api/log-search', methods=['POST'])
        def log_search_term():
            """Count a search; always answers success so logging never affects the visitor."""
            term = self._json_body().get('term')
            if not isinstance(term, str) or not term.strip():
                return jsonify({'success': True, 'message': 'No term provided'}), 200
            try:
                counted = self.session.repository.record_search_event(term)
            except Exception as e:
                self.metrics.record_event(False)
                log_error(self.logger, 'Logging search failed', e)
                return jsonify({'success': True, 'error': 'Internal logging error'}), 200

            self.metrics.record_event(True)
            if counted == 0:
                return jsonify({'success': True, 'message': 'No matching songs'}), 200
            return jsonify({'success': True}), 200

        @self.app.route('/api/log-request', methods=['POST'])
        def log_request_term():
            """Count a song request; always answers success."""
            term = self._json_body().get('term')
            if not isinstance(term, str) or not term.strip():
                return jsonify({'success': True, 'message': 'No term provided'}), 200
            try:
                self.session.repository.record_request_event(term)
            except Exception as e:
                self.metrics.record_event(False)
                log_error(self.logger, 'Logging request failed', e)
                return jsonify({'success': True, 'error': 'Internal logging error'}), 200

            self.metrics.record_event(True)
            return jsonify({'success': True}), 200

        @self.app.route('/api/get-ranking', methods=['GET'])
        def get_ranking():
            limit = request.args.get('limit', type=int)
            if not self.session.refresh_search_counts():
                return jsonify({'error': 'Failed to fetch rankings.'}), 500
            ranking = self.session.ranking(limit)
            response = jsonify([entry.to_dict() for entry in ranking])
            response.headers['Cache-Control'] = 'public, max-age=300'
            return response, 200

        @self.app.route('/api/get-request-ranking', methods=['GET'])
        def get_request_ranking():
            limit = request.args.get('limit', type=int)
            if not self.session.refresh_request_counts():
                return jsonify({'error': 'Failed to fetch request rankings.'}), 500
            ranking = self.session.request_ranking(limit)
            return jsonify([entry.to_dict() for entry in ranking]), 200

        @self.app.route('/api/layout-config', methods=['GET', 'POST'])
        def layout_config():
            try:
                if request.method == 'GET':
                    return jsonify(self.layout.get()), 200

                self._require_admin()
                config = request.get_json(silent=True)
                if not isinstance(config, dict):
                    return jsonify({'error': 'Invalid data format.'}), 400
                self.layout.save(config)
                return jsonify({'success': True}), 200
            except TemporaryFailure as e:
                self.metrics.record_store_failure()
                log_error(self.logger, 'Layout config operation failed', e)
                return jsonify({'error': 'Failed to communicate with the database.'}), 500

        @self.app.route('/api/blog', methods=['GET', 'POST', 'DELETE'])
        def blog():
            post_id = request.args.get('id')
            wants_drafts = request.args.get('admin') == 'true'
            try:
                if request.method == 'GET':
                    if post_id:
                        post = self.blog.get_post(post_id)
                        if not post.is_published and not self._is_admin():
                            return jsonify({'error': 'Not Found'}), 404
                        return jsonify(post.to_dict()), 200
                    if wants_drafts:
                        self._require_admin()
                    posts = self.blog.list_posts(include_drafts=wants_drafts)
                    return jsonify([p.to_dict() for p in posts]), 200

                self._require_admin()

                if request.method == 'POST':
                    saved_id = self.blog.save_post(self._json_body(), post_id=post_id)
                    return jsonify({'success': True, 'id': saved_id}), 200

                if not post_id:
                    return jsonify({'error': 'ID is required'}), 400
                self.blog.delete_post(post_id)
                return jsonify({'success': True}), 200
            except NotFound:
                return jsonify({'error': 'Not Found'}), 404
            except TemporaryFailure as e:
                self.metrics.record_store_failure()
                log_error(self.logger, 'Blog operation failed', e)
                return jsonify({'error': 'Database operation failed.'}), 500

        @self.app.route('/api/check-availability', methods=['POST'])
        def check_availability():
            """Ask the AI search whether the song is in the print-gakufu subscription."""
            query = self._json_body().get('query')
            if not isinstance(query, str) or not query.strip():
                return jsonify({'error': 'Query is required'}), 400
            if self.checker is None:
                return jsonify({'error': 'Availability check is not configured'}), 500

            try:
                result = self.checker.check(query)
            except RateLimited as e:
                self.metrics.record_availability_check(False)
                response = jsonify({'error': 'Rate limited, please try again later'})
                response.headers['Retry-After'] = str(max(1, e.retry_after_ms // 1000))
                return response, 429
            except (TemporaryFailure, PermanentFailure) as e:
                self.metrics.record_availability_check(False)
                log_error(self.logger, 'Availability check failed', e)
                return jsonify({'error': 'Availability check failed'}), 502

            self.metrics.record_availability_check(True)
            return jsonify(result.to_dict()), 200

        @self.app.route('/api/suggest', methods=['GET'])
        def suggest():
            song = suggest_song(self.session.songs)
            if song is None:
                return jsonify({'error': 'No playable songs'}), 404
            return jsonify({
                'song': song.to_dict(),
                'message': format_request_message(song),
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting request checker HTTP server on {self.host}:{self.port}")
        try:
            self.app.run(
                host=self.host,
                port=self.port,
                debug=self.debug
            )
        finally:
            self.session.close()


def create_app(settings: Optional[Settings] = None,
               store: Optional[DocumentStore] = None) -> Flask:
    """Create Flask app, e.g. for a WSGI server."""
    server = HTTPServer(settings=settings, store=store)
    return server.app


if __name__ == '__main__':
    settings = get_config_manager().get_settings()
    server = HTTPServer(host=settings.http_host, port=settings.http_port, settings=settings)
    server.run()
