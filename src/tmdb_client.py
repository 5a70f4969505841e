"""
TMDB Client - Metadata lookups used to resolve Stremio IDs and season lists
"""

import logging
import requests
from typing import Dict, List, Any, Optional

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
DEFAULT_METADATA_TIMEOUT = 10

# Sample title used to validate an API key
TMDB_KEY_CHECK_MOVIE_ID = 550


class MetadataLookupError(Exception):
    """TMDB could not be reached or answered with an error status"""


class TmdbClient:
    """Thin wrapper over the TMDB v3 endpoints this service needs"""

    def __init__(self, api_key: str, base_url: str = TMDB_BASE_URL,
                 timeout: float = DEFAULT_METADATA_TIMEOUT):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def find_by_external_id(self, external_id: str, media_kind: str) -> Optional[Dict[str, Any]]:
        """Look up an IMDb id and return the first match for the media kind

        Args:
            external_id: IMDb id such as tt0133093
            media_kind: 'movie' or 'series'

        Returns:
            dict with tmdb_id and title, or None when TMDB has no match

        Raises:
            MetadataLookupError: on network failure, timeout or error status
        """
        data = self._get(f"/find/{external_id}", {"external_source": "imdb_id"})
        results_key = "movie_results" if media_kind == "movie" else "tv_results"
        results = data.get(results_key) or []

        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            logger.info(f"No TMDB {results_key} for {external_id}")
            return None

        match = results[0]
        return {
            "tmdb_id": match.get("id"),
            "title": match.get("title") or match.get("name"),
        }

    def get_details(self, tmdb_id: int, media_kind: str) -> Dict[str, Any]:
        """Fetch the movie or tv details document for a TMDB id"""
        path = f"/movie/{tmdb_id}" if media_kind == "movie" else f"/tv/{tmdb_id}"
        return self._get(path)

    def get_title(self, tmdb_id: int, media_kind: str) -> Optional[str]:
        """Best effort display title; None if TMDB cannot provide one"""
        try:
            details = self.get_details(tmdb_id, media_kind)
        except MetadataLookupError as e:
            logger.warning(f"Could not fetch title for TMDB {tmdb_id}: {str(e)}")
            return None
        return details.get("title") or details.get("name")

    def get_season_numbers(self, tmdb_id: int) -> List[int]:
        """Return the regular season numbers of a series, specials excluded"""
        details = self.get_details(tmdb_id, "series")
        numbers = set()
        for season in details.get("seasons") or []:
            number = season.get("season_number") if isinstance(season, dict) else None
            if isinstance(number, int) and number > 0:
                numbers.add(number)
        return sorted(numbers)

    def check_api_key(self) -> bool:
        """Check the API key by fetching a well-known movie"""
        try:
            self._get(f"/movie/{TMDB_KEY_CHECK_MOVIE_ID}")
            return True
        except MetadataLookupError as e:
            logger.warning(f"TMDB API key check failed: {str(e)}")
            return False

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query = {"api_key": self.api_key}
        if params:
            query.update(params)

        try:
            response = requests.get(f"{self.base_url}{path}", params=query, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise MetadataLookupError(f"Network error calling TMDB {path}: {str(e)}")

        if response.status_code != 200:
            raise MetadataLookupError(f"TMDB {path} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise MetadataLookupError(f"TMDB {path} returned invalid JSON")

        if not isinstance(data, dict):
            raise MetadataLookupError(f"TMDB {path} returned {type(data).__name__} instead of an object")
        return data
