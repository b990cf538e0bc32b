class DonationError(Exception):
    pass


class DonationValidationError(DonationError):
    """Rejected input. ``str(exc)`` is safe to show to the donor."""


class DonationNotFound(DonationError):
    pass


class DonationNotPending(DonationError):
    pass


class ReceiptUnavailable(DonationError):
    pass


class ReceiptError(DonationError):
    pass


class OtpError(Exception):
    pass


class InvalidMobile(OtpError):
    pass


class OtpRateLimited(OtpError):
    def __init__(self, message, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class OtpDeliveryFailed(OtpError):
    pass


class OtpInvalid(OtpError):
    pass


class OtpExpired(OtpError):
    pass
