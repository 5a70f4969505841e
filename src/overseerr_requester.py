"""
Overseerr Requester - Handles requests to Overseerr API
Submits movie, single season and whole series requests
"""

import logging
import requests
from dataclasses import dataclass
from typing import Dict, Any, Callable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 15

INTENT_MOVIE = "movie"
INTENT_SEASON = "season"
INTENT_WHOLE_SERIES = "series"


class RequestError(Exception):
    """Base class for failed Overseerr submissions"""


class RequestRejected(RequestError):
    """Overseerr answered with a non-2xx status"""

    def __init__(self, status: int, body: str):
        super().__init__(f"Overseerr rejected request: {status} - {body}")
        self.status = status
        self.body = body


class RequestNetworkError(RequestError):
    """Overseerr could not be reached or timed out"""


@dataclass(frozen=True)
class RequestIntent:
    """What a trigger asks Overseerr for: a movie, one season or every season"""

    kind: str
    season: Optional[int] = None

    @classmethod
    def movie(cls) -> "RequestIntent":
        return cls(INTENT_MOVIE)

    @classmethod
    def for_season(cls, season: int) -> "RequestIntent":
        return cls(INTENT_SEASON, season)

    @classmethod
    def whole_series(cls) -> "RequestIntent":
        return cls(INTENT_WHOLE_SERIES)

    def describe(self) -> str:
        if self.kind == INTENT_SEASON:
            return f"season {self.season}"
        return self.kind


class OverseerrRequester:
    """Handles requests to Overseerr API"""

    def __init__(self, api_url: str, api_key: str,
                 season_lookup: Optional[Callable[[int], List[int]]] = None,
                 timeout: float = DEFAULT_REQUEST_TIMEOUT):
        """Initialize Overseerr requester

        Args:
            api_url: Overseerr base URL, trailing slash allowed
            api_key: Overseerr API key
            season_lookup: returns the season numbers of a TMDB series,
                used for whole series requests
            timeout: seconds before a call counts as a network failure
        """
        self.api_url = (api_url or "").rstrip("/")
        self.api_key = api_key
        self.season_lookup = season_lookup
        self.timeout = timeout

        if not self.api_key:
            raise ValueError("Overseerr API key is required")

    def submit(self, tmdb_id: int, media_kind: str, intent: RequestIntent) -> Optional[int]:
        """Create a request in Overseerr

        Returns:
            The Overseerr request id, if the response carried one

        Raises:
            RequestRejected: Overseerr answered with a non-2xx status
            RequestNetworkError: connection failure or timeout
        """
        payload = self.build_payload(tmdb_id, media_kind, intent)
        endpoint = f"{self.api_url}/api/v1/request"
        headers = {
            "X-Api-Key": self.api_key,
            "Content-Type": "application/json"
        }

        logger.debug(f"Sending request to Overseerr: {endpoint}")
        logger.debug(f"Payload: {payload}")

        try:
            response = requests.post(endpoint, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RequestNetworkError(f"Network error requesting TMDB {tmdb_id}: {str(e)}")

        if not 200 <= response.status_code < 300:
            raise RequestRejected(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            data = {}

        request_id = data.get("id") if isinstance(data, dict) else None
        logger.info(f"Overseerr accepted {intent.describe()} request for TMDB {tmdb_id} (request {request_id})")
        return request_id

    def build_payload(self, tmdb_id: int, media_kind: str, intent: RequestIntent) -> Dict[str, Any]:
        """Build the JSON body for POST /api/v1/request"""
        payload: Dict[str, Any] = {
            "mediaId": int(tmdb_id),
            "mediaType": "movie" if media_kind == "movie" else "tv"
        }

        if payload["mediaType"] == "tv":
            if intent.kind == INTENT_SEASON and intent.season is not None:
                payload["seasons"] = [intent.season]
            elif intent.kind == INTENT_WHOLE_SERIES:
                payload["seasons"] = self._all_seasons(tmdb_id)

        return payload

    def check_connection(self) -> Dict[str, Any]:
        """Verify the URL and API key against the current user endpoint"""
        try:
            response = requests.get(
                f"{self.api_url}/api/v1/user",
                headers={"X-Api-Key": self.api_key},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            return {"status": "error", "message": f"Connection failed: {str(e)}"}

        if response.status_code == 200:
            return {"status": "success", "message": "URL and API key are valid"}
        return {"status": "error", "message": f"Connection failed (HTTP {response.status_code})"}

    def _all_seasons(self, tmdb_id: int) -> List[int]:
        """Every regular season of a series, or season 1 if the lookup fails"""
        seasons: List[int] = []
        if self.season_lookup:
            try:
                seasons = [s for s in self.season_lookup(tmdb_id) if s > 0]
            except Exception as e:
                logger.warning(f"Season lookup failed for TMDB {tmdb_id}: {str(e)}")

        if not seasons:
            logger.warning(f"No season list for TMDB {tmdb_id}, requesting season 1 only")
            return [1]
        return seasons
