"""
Failure kinds surfaced by the nearby pipeline.

Every fatal error derives from NearbyError and carries the HTTP status the
request boundary should answer with. Adapters translate library exceptions
into these types; the exception handler in app.main renders them as a
failure envelope.
"""


class NearbyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationFailure(NearbyError):
    """Missing, malformed or rejected bearer credential."""

    status_code = 401


class UpstreamQueryFailure(NearbyError):
    """Proximity query or another persistence call failed."""

    status_code = 502


class MetadataResolutionFailure(NearbyError):
    """Track lookup (current track or history) failed."""

    status_code = 502


class DataCoercionWarning(UserWarning):
    """A source value was malformed and corrected in place."""


class InvalidRequest(NearbyError):
    """Caller sent parameters the pipeline cannot work with."""

    status_code = 400
