"""
Placeholder Stream - Filler video answered to the player while a request is submitted

Three modes are supported:
    file      serve a local mp4, honoring Range
    proxy     relay a public sample video, forwarding Range
    redirect  302 to a public sample video
"""

import logging
import os
import re
import zlib
import requests
from typing import List, Optional

from flask import Response, redirect, send_file, stream_with_context

logger = logging.getLogger(__name__)

MODE_FILE = "file"
MODE_PROXY = "proxy"
MODE_REDIRECT = "redirect"
PLACEHOLDER_MODES = (MODE_FILE, MODE_PROXY, MODE_REDIRECT)

DEFAULT_PLACEHOLDER_URLS = [
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ElephantsDream.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ForBiggerEscapes.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/Sintel.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/TearsOfSteel.mp4",
]

PROXY_CHUNK_SIZE = 64 * 1024
PROXY_TIMEOUT = 15
# Upstream headers relayed to the player
PASSTHROUGH_HEADERS = ("Content-Type", "Content-Length", "Content-Range", "Accept-Ranges",
                       "Last-Modified", "ETag")

_RANGE_START = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-")


def parse_range_start(range_header: Optional[str]) -> Optional[int]:
    """Start offset of the first range in a Range header

    Returns None when there is no header or it cannot be parsed. Suffix
    ranges (bytes=-500) count from the end of the file, so they return -1.
    """
    if not range_header:
        return None
    match = _RANGE_START.match(range_header)
    if not match:
        return None
    start = match.group(1)
    if start == "":
        return -1
    return int(start)


def is_initial_fetch(range_header: Optional[str]) -> bool:
    """True when the player is loading the stream from the start

    Only these fetches count as a request trigger. A Range with a nonzero
    start offset is the player seeking or probing an already open stream,
    and a Range that cannot be parsed is never taken for a first load.
    """
    if not range_header:
        return True
    return parse_range_start(range_header) == 0


class PlaceholderResponder:
    """Builds the placeholder video response for the trigger endpoint"""

    def __init__(self, mode: str = MODE_REDIRECT, urls: Optional[List[str]] = None,
                 file_path: Optional[str] = None, timeout: float = PROXY_TIMEOUT):
        if mode not in PLACEHOLDER_MODES:
            raise ValueError(f"Unknown placeholder mode: {mode}")
        self.mode = mode
        self.urls = list(urls or DEFAULT_PLACEHOLDER_URLS)
        self.file_path = file_path
        self.timeout = timeout

    def choose_url(self, key: str) -> str:
        """Pick a sample video, stable for a given key so range fetches line up"""
        return self.urls[zlib.crc32(key.encode("utf-8")) % len(self.urls)]

    def respond(self, key: str, range_header: Optional[str] = None) -> Response:
        """Answer with playable bytes; must be called inside a request context"""
        if self.mode == MODE_FILE:
            if self.file_path and os.path.isfile(self.file_path):
                return send_file(self.file_path, mimetype="video/mp4", conditional=True)
            logger.warning(f"Placeholder file {self.file_path} not found, redirecting instead")
            return self._redirect(key)

        if self.mode == MODE_PROXY:
            return self._proxy(key, range_header)

        return self._redirect(key)

    def _redirect(self, key: str) -> Response:
        return redirect(self.choose_url(key), code=302)

    def _proxy(self, key: str, range_header: Optional[str]) -> Response:
        url = self.choose_url(key)
        headers = {"Range": range_header} if range_header else {}

        try:
            upstream = requests.get(url, headers=headers, stream=True, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Placeholder upstream unreachable ({str(e)}), redirecting instead")
            return self._redirect(key)

        if upstream.status_code >= 400:
            logger.warning(f"Placeholder upstream returned {upstream.status_code}, redirecting instead")
            upstream.close()
            return self._redirect(key)

        def generate():
            try:
                for chunk in upstream.iter_content(chunk_size=PROXY_CHUNK_SIZE):
                    if chunk:
                        yield chunk
            finally:
                upstream.close()

        response_headers = {name: upstream.headers[name]
                            for name in PASSTHROUGH_HEADERS if name in upstream.headers}
        response_headers.setdefault("Accept-Ranges", "bytes")
        response_headers.setdefault("Content-Type", "video/mp4")

        return Response(
            stream_with_context(generate()),
            status=upstream.status_code,
            headers=response_headers,
            direct_passthrough=True,
        )
