"""
Tailor Ops Exceptions

Exception classes raised inside services and translated to result dicts at
their boundaries.
"""

from typing import Optional


class TailorOpsError(Exception):
    """Base exception for tailor ops errors"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class AuthError(TailorOpsError):
    """Exception for sign-up, sign-in and role errors"""
    pass


class OrderValidationError(TailorOpsError):
    """Exception for order data rejected before it reaches the backend"""
    pass


class PhotoUploadError(TailorOpsError):
    """Exception for inspiration photo upload errors"""
    pass


class EmailDeliveryError(TailorOpsError):
    """Exception for status email errors"""
    pass
