# --------------------------------------------------
# DISTANCE BANDS (kilometres)
# --------------------------------------------------

DEFAULT_RADIUS_CLOSE_KM = 1.0
DEFAULT_RADIUS_MEDIUM_KM = 5.0
DEFAULT_RADIUS_FAR_KM = 10.0

# --------------------------------------------------
# LOCATION
# --------------------------------------------------

# Locations older than this are not reported as nearby
LOCATION_EXPIRY_MINUTES = 30

# --------------------------------------------------
# PLAY HISTORY
# --------------------------------------------------

HISTORY_LIMIT = 10

# --------------------------------------------------
# SPOTIFY
# --------------------------------------------------

# /v1/tracks accepts at most 50 ids per request
SPOTIFY_BATCH_SIZE = 50

# Refresh the access token this long before Spotify says it expires
SPOTIFY_TOKEN_LEEWAY_SECONDS = 60
