"""
Stream Listing - Stremio stream entries that point at the request trigger
"""

from typing import Dict, List, Any, Optional
from urllib.parse import quote, urlencode

from id_resolver import ResolvedMedia
from overseerr_requester import INTENT_MOVIE, INTENT_SEASON, INTENT_WHOLE_SERIES

ADDON_NAME = "Overseerr"
STREAM_CACHE_MAX_AGE = 3600
STREAM_STALE_ERROR = 86400


def build_streams(base_url: str, token: str, media: ResolvedMedia) -> List[Dict[str, Any]]:
    """Stream options for a resolved title

    Movies get a single entry. An episode page offers its season and the
    whole series, a series page only the whole series.
    """
    if media.media_kind == "movie":
        return [_stream(base_url, token, media, INTENT_MOVIE)]

    streams = []
    if media.season is not None and media.season >= 1:
        streams.append(_stream(base_url, token, media, INTENT_SEASON, media.season, media.episode))
    streams.append(_stream(base_url, token, media, INTENT_WHOLE_SERIES))
    return streams


def build_response(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not streams:
        return {"streams": []}
    return {
        "streams": streams,
        "cacheMaxAge": STREAM_CACHE_MAX_AGE,
        "staleRevalidate": STREAM_CACHE_MAX_AGE,
        "staleError": STREAM_STALE_ERROR,
    }


def trigger_url(base_url: str, token: str, media: ResolvedMedia, request_type: str,
                season: Optional[int] = None, episode: Optional[int] = None) -> str:
    """URL of the trigger endpoint for one request option"""
    params = {"title": media.title, "request_type": request_type}
    if season is not None:
        params["season"] = season
    if episode is not None:
        params["episode"] = episode

    path = f"/configured/{quote(token, safe='')}/request/{media.media_kind}/{media.canonical.id}"
    return f"{base_url.rstrip('/')}{path}?{urlencode(params)}"


def _stream(base_url: str, token: str, media: ResolvedMedia, request_type: str,
            season: Optional[int] = None, episode: Optional[int] = None) -> Dict[str, Any]:
    if request_type == INTENT_SEASON:
        title = f"📥 Request Season {season} of \"{media.title}\" in Overseerr"
    elif request_type == INTENT_WHOLE_SERIES:
        title = f"📥 Request all seasons of \"{media.title}\" in Overseerr"
    else:
        title = f"📥 Request \"{media.title}\" in Overseerr"

    return {
        "name": ADDON_NAME,
        "title": title,
        "url": trigger_url(base_url, token, media, request_type, season, episode),
        "behaviorHints": {
            "notWebReady": False,
            "bingeGroup": f"overseerr-{media.media_kind}-{media.canonical.id}-{request_type}",
        },
    }
