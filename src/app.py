"""
App - Flask routes for the Stremio addon endpoints and diagnostics
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

import config_codec
from config_codec import DecodeError, UserConfig
from id_resolver import IdResolver, ResolutionError
from overseerr_requester import (
    INTENT_SEASON,
    INTENT_WHOLE_SERIES,
    OverseerrRequester,
    RequestIntent,
)
from placeholder_stream import PlaceholderResponder, is_initial_fetch
from request_dispatcher import PendingRequestTable, RequestDispatcher
from stream_listing import build_response, build_streams
from tmdb_client import MetadataLookupError, TmdbClient

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
HEALTH_SAMPLE_SIZE = 10


def build_dispatcher(config: Dict[str, Any]) -> RequestDispatcher:
    """Create the process-wide pending table and dispatcher from settings"""
    timeouts = config["timeouts"]
    tmdb_base_url = config["tmdb"]["base_url"]

    def requester_factory(user_config: UserConfig) -> OverseerrRequester:
        tmdb = TmdbClient(user_config.tmdb_key, tmdb_base_url, timeouts["metadata_seconds"])
        return OverseerrRequester(
            user_config.overseerr_url,
            user_config.overseerr_api_key,
            season_lookup=tmdb.get_season_numbers,
            timeout=timeouts["request_seconds"],
        )

    table = PendingRequestTable(ttl_seconds=config["dedup"]["ttl_minutes"] * 60)
    return RequestDispatcher(table, requester_factory, max_workers=config["dedup"]["max_workers"])


def resolve_intent(media_kind: str, request_type: Optional[str], season: Optional[int]) -> RequestIntent:
    """Work out what a trigger asks for

    Series triggers default to the season they carry; without a regular
    season (1 or above) the whole series is requested.
    """
    if media_kind == "movie":
        return RequestIntent.movie()
    if request_type == INTENT_WHOLE_SERIES:
        return RequestIntent.whole_series()
    if request_type not in (None, "", INTENT_SEASON):
        logger.warning(f"Unknown request_type {request_type}, treating as season request")
    if season is not None and season >= 1:
        return RequestIntent.for_season(season)
    return RequestIntent.whole_series()


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name} parameter: {raw}")
        return None


def create_app(config: Dict[str, Any], dispatcher: Optional[RequestDispatcher] = None) -> Flask:
    """Build the Flask app

    Args:
        config: settings from ConfigManager.load_config()
        dispatcher: shared dispatcher; one is built from config if omitted
    """
    app = Flask(__name__)
    dispatcher = dispatcher or build_dispatcher(config)
    placeholder_config = config["placeholder"]
    placeholder = PlaceholderResponder(
        mode=placeholder_config["mode"],
        urls=placeholder_config.get("urls"),
        file_path=placeholder_config.get("file_path"),
        timeout=config["timeouts"]["request_seconds"],
    )

    def make_resolver(user_config: UserConfig) -> IdResolver:
        tmdb = TmdbClient(user_config.tmdb_key, config["tmdb"]["base_url"],
                          config["timeouts"]["metadata_seconds"])
        return IdResolver(tmdb)

    def base_url() -> str:
        return config["server"].get("public_url") or request.host_url

    def trigger_request(token: str, media_kind: str, media_id: str) -> None:
        try:
            user_config = config_codec.decode(token)
        except DecodeError as e:
            logger.warning(f"Invalid configuration in request trigger ({e.kind}): {str(e)}")
            return

        title = request.args.get("title") or None
        try:
            media = make_resolver(user_config).resolve(media_id, media_kind, title)
        except (ResolutionError, MetadataLookupError) as e:
            logger.warning(f"Could not resolve {media_kind} {media_id}: {str(e)}")
            return

        season = _int_arg("season")
        if season is None or season < 1:
            season = media.season
        intent = resolve_intent(media_kind, request.args.get("request_type"), season)
        dispatcher.dispatch(user_config, media.canonical.id, media.title, media_kind, intent)

    @app.route("/configured/<token>/request/<media_kind>/<media_id>", methods=["GET", "HEAD"])
    def request_trigger(token, media_kind, media_id):
        range_header = request.headers.get("Range")
        logger.info(f"Stream selected for {media_kind} {media_id} (Range: {range_header or 'none'})")

        if request.method == "GET" and is_initial_fetch(range_header):
            try:
                trigger_request(token, media_kind, media_id)
            except Exception as e:
                logger.exception(f"Error handling request trigger for {media_kind} {media_id}: {str(e)}")
        else:
            logger.debug(f"Not a request trigger: {request.method} with Range {range_header}")

        return placeholder.respond(f"{media_kind}/{media_id}", range_header)

    @app.route("/configured/<token>/stream/<media_kind>/<media_id>.json")
    def stream_list(token, media_kind, media_id):
        try:
            user_config = config_codec.decode(token)
        except DecodeError as e:
            logger.warning(f"Invalid configuration in stream request ({e.kind}): {str(e)}")
            return jsonify(build_response([]))

        try:
            media = make_resolver(user_config).resolve(media_id, media_kind)
        except (ResolutionError, MetadataLookupError) as e:
            logger.info(f"No streams for {media_kind} {media_id}: {str(e)}")
            return jsonify(build_response([]))

        streams = build_streams(base_url(), token, media)
        logger.info(f"Returning {len(streams)} stream(s) for {media.title}")
        return jsonify(build_response(streams))

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "pending_requests": len(dispatcher.table),
            "dedup_ttl_seconds": dispatcher.table.ttl_seconds,
            "entries": dispatcher.table.snapshot(HEALTH_SAMPLE_SIZE),
            "dispatch": dispatcher.stats(),
        })

    @app.route("/api/cleanup", methods=["GET", "POST"])
    def cleanup():
        removed, remaining = dispatcher.cleanup()
        return jsonify({"success": True, "removed": removed, "remaining": remaining})

    @app.route("/api/test-configuration", methods=["POST"])
    def test_configuration():
        body = request.get_json(silent=True) or {}
        tmdb_key = body.get("tmdbKey")
        overseerr_url = body.get("overseerrUrl")
        overseerr_api = body.get("overseerrApi")

        if not tmdb_key or not overseerr_url or not overseerr_api:
            return jsonify({"success": False, "error": "Missing required fields"})

        results = []

        tmdb = TmdbClient(tmdb_key, config["tmdb"]["base_url"], config["timeouts"]["metadata_seconds"])
        if tmdb.check_api_key():
            results.append({"service": "TMDB", "status": "success", "message": "API key is valid"})
        else:
            results.append({"service": "TMDB", "status": "error", "message": "API key invalid or TMDB unreachable"})

        requester = OverseerrRequester(overseerr_url, overseerr_api, timeout=config["timeouts"]["request_seconds"])
        results.append({"service": "Overseerr", **requester.check_connection()})

        return jsonify({
            "success": all(r["status"] == "success" for r in results),
            "results": results,
        })

    @app.errorhandler(Exception)
    def handle_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"Unhandled error serving {request.path}: {str(e)}")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app
