"""
Config Codec - Packs the per-user addon configuration into a URL path token

The token is base64 of a small JSON object. It only keeps the keys out of
plain sight in the addon URL, it is not encryption.
"""

import base64
import binascii
import json
from dataclasses import dataclass

# Wire keys used inside the token
FIELD_TMDB_KEY = "tmdbKey"
FIELD_OVERSEERR_URL = "overseerrUrl"
FIELD_OVERSEERR_API = "overseerrApi"


class DecodeError(Exception):
    """Raised when a config token cannot be turned back into a UserConfig"""

    MALFORMED = "malformed"
    INVALID_JSON = "invalid_json"
    MISSING_FIELD = "missing_field"

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class UserConfig:
    """Credentials for one user's TMDB key and Overseerr instance"""

    tmdb_key: str
    overseerr_url: str
    overseerr_api_key: str


def encode(config: UserConfig) -> str:
    """Serialize a UserConfig to an unpadded URL-safe token"""
    payload = json.dumps(
        {
            FIELD_TMDB_KEY: config.tmdb_key,
            FIELD_OVERSEERR_URL: config.overseerr_url,
            FIELD_OVERSEERR_API: config.overseerr_api_key,
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    token = base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    return token.rstrip("=")


def decode(token: str) -> UserConfig:
    """Reverse encode()

    Tokens produced by browsers with btoa() use the standard alphabet and
    carry padding, so both alphabets are accepted and padding is optional.

    Raises:
        DecodeError: for every failure, with kind set to one of
            MALFORMED, INVALID_JSON or MISSING_FIELD
    """
    if not isinstance(token, str) or not token.strip():
        raise DecodeError(DecodeError.MALFORMED, "Empty configuration token")

    normalized = token.strip().rstrip("=").replace("+", "-").replace("/", "_")
    normalized += "=" * (-len(normalized) % 4)

    try:
        raw = base64.b64decode(normalized, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(DecodeError.MALFORMED, f"Token is not valid base64: {str(e)}")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(DecodeError.INVALID_JSON, f"Token does not contain JSON: {str(e)}")

    if not isinstance(data, dict):
        raise DecodeError(DecodeError.INVALID_JSON, "Token JSON is not an object")

    values = {}
    for field in (FIELD_TMDB_KEY, FIELD_OVERSEERR_URL, FIELD_OVERSEERR_API):
        value = data.get(field)
        if not isinstance(value, str) or not value:
            raise DecodeError(DecodeError.MISSING_FIELD, f"Missing required configuration field: {field}")
        values[field] = value

    return UserConfig(
        tmdb_key=values[FIELD_TMDB_KEY],
        overseerr_url=values[FIELD_OVERSEERR_URL],
        overseerr_api_key=values[FIELD_OVERSEERR_API],
    )
