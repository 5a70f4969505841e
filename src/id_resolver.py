"""
ID Resolver - Turns Stremio content IDs into TMDB ids Overseerr understands
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from tmdb_client import MetadataLookupError, TmdbClient

logger = logging.getLogger(__name__)

IMDB_PREFIX = "tt"
MEDIA_KINDS = ("movie", "series")


class ResolutionError(Exception):
    """Base class for failures turning a Stremio ID into a TMDB id"""


class UnsupportedIdentifierFormat(ResolutionError):
    """The ID string does not match any known Stremio format"""


class NoMetadataMatch(ResolutionError):
    """TMDB has no entry for the external id"""


@dataclass(frozen=True)
class ExternalId:
    """IMDb id, optionally scoped to an episode"""

    id: str
    season: Optional[int] = None
    episode: Optional[int] = None


@dataclass(frozen=True)
class CanonicalId:
    """TMDB id, already in Overseerr's numbering"""

    id: int


ContentIdentifier = Union[ExternalId, CanonicalId]


@dataclass(frozen=True)
class ResolvedMedia:
    canonical: CanonicalId
    title: str
    media_kind: str
    season: Optional[int] = None
    episode: Optional[int] = None


def parse_stremio_id(raw_id: str, media_kind: str) -> ContentIdentifier:
    """Parse a Stremio ID

    Movies use a bare IMDb id, episodes use ``tt1234567:<season>:<episode>``
    and plain digits are taken to be TMDB ids already.

    Raises:
        UnsupportedIdentifierFormat: for anything else, including episode
            ids whose season or episode is not an integer
    """
    if media_kind == "movie" and raw_id.startswith(IMDB_PREFIX):
        return ExternalId(raw_id)

    if media_kind == "series":
        if ":" in raw_id:
            parts = raw_id.split(":")
            if len(parts) != 3:
                raise UnsupportedIdentifierFormat(f"Unsupported episode ID format: {raw_id}")
            try:
                season = int(parts[1])
                episode = int(parts[2])
            except ValueError:
                raise UnsupportedIdentifierFormat(f"Season and episode must be integers: {raw_id}")
            return ExternalId(parts[0], season=season, episode=episode)

        if raw_id.startswith(IMDB_PREFIX):
            return ExternalId(raw_id)

    if raw_id.isdigit() and raw_id.isascii():
        return CanonicalId(int(raw_id))

    raise UnsupportedIdentifierFormat(f"Unsupported ID format: {raw_id}")


class IdResolver:
    """Resolves Stremio IDs against TMDB"""

    def __init__(self, tmdb: TmdbClient):
        self.tmdb = tmdb

    def resolve(self, raw_id: str, media_kind: str, title: Optional[str] = None) -> ResolvedMedia:
        """Resolve a Stremio ID to a TMDB id plus display title

        Args:
            raw_id: ID as it appears in the Stremio request path
            media_kind: 'movie' or 'series'
            title: display title already known to the caller, if any

        Raises:
            UnsupportedIdentifierFormat: the ID cannot be parsed
            NoMetadataMatch: TMDB does not know the IMDb id
            MetadataLookupError: TMDB could not be queried
        """
        if media_kind not in MEDIA_KINDS:
            raise UnsupportedIdentifierFormat(f"Unsupported media type: {media_kind}")

        identifier = parse_stremio_id(raw_id, media_kind)
        logger.debug(f"Parsed {raw_id} ({media_kind}) as {identifier}")

        if isinstance(identifier, CanonicalId):
            display_title = title or self.tmdb.get_title(identifier.id, media_kind) or f"ID: {raw_id}"
            return ResolvedMedia(identifier, display_title, media_kind)

        match = self.tmdb.find_by_external_id(identifier.id, media_kind)
        if not match or not match.get("tmdb_id"):
            raise NoMetadataMatch(f"No TMDB match for {identifier.id}")

        canonical = CanonicalId(int(match["tmdb_id"]))
        display_title = title or match.get("title") or f"ID: {raw_id}"
        logger.info(f"Converted IMDb {identifier.id} to TMDB {canonical.id} - {display_title}")

        return ResolvedMedia(
            canonical,
            display_title,
            media_kind,
            season=identifier.season,
            episode=identifier.episode,
        )


__all__ = [
    "CanonicalId",
    "ContentIdentifier",
    "ExternalId",
    "IdResolver",
    "MetadataLookupError",
    "NoMetadataMatch",
    "ResolutionError",
    "ResolvedMedia",
    "UnsupportedIdentifierFormat",
    "parse_stremio_id",
]
