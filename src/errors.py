"""Error taxonomy shared by the checks and the request boundary."""


class AntiVirusError(Exception):
    """Base class for all scanner errors"""


class UnreadableFile(AntiVirusError):
    """A file vanished or could not be read since it was enumerated"""


class RemoteUnavailable(AntiVirusError):
    """Network error, timeout or unexpected HTTP status from a remote API"""


class MalformedResponse(AntiVirusError):
    """A remote API answered with a payload of unexpected shape"""


class InvalidFingerprint(AntiVirusError):
    pass


class InvalidPath(AntiVirusError):
    pass


class NoActiveTheme(AntiVirusError):
    pass


class AccessDenied(AntiVirusError):
    """Unauthenticated, unauthorized or forged request"""
