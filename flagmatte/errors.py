class MatteError(Exception):
    """Base error for the matting pipeline"""


class ModelUnavailableError(MatteError):
    """Model or processor not initialized, or initialization failed"""


class DecodeError(MatteError, ValueError):
    """Input bytes are not a decodable image"""


class DimensionMismatchError(MatteError, ValueError):
    """Mask and image sizes differ"""


class EncodeError(MatteError):
    """Could not produce an output buffer"""


class BackgroundFetchError(MatteError):
    """Background image unreachable, unknown or undecodable"""


class SessionStateError(MatteError):
    """Operation not allowed in the session's current state"""
