from enum import Enum


class ProximityBand(str, Enum):
    close = "close"
    medium = "medium"
    far = "far"


class PlayStatus(str, Enum):
    play = "PLAY"
    stop = "STOP"
