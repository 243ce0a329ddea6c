"""
Custom Application Exceptions
"""


class SteelTrackException(Exception):
    """Base exception for SteelTrack application"""
    pass


class ValidationError(SteelTrackException):
    """Raised when data validation fails"""
    pass


class NotFoundError(SteelTrackException):
    """Raised when a requested record does not exist"""
    pass


class BusinessLogicError(SteelTrackException):
    """Raised when business rules are violated"""
    pass


class AuthenticationError(SteelTrackException):
    """Raised when the access code is missing, wrong or expired"""
    pass


class ImportFormatError(SteelTrackException):
    """Raised when a CSV file cannot be imported at all"""
    pass


class MigrationError(SteelTrackException):
    """Raised when a critical schema migration fails"""
    pass


class DecryptFailure(SteelTrackException):
    """Raised when a ciphertext blob cannot be decrypted"""
    pass
