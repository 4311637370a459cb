class BookingError(Exception):
    """Base for booking orchestration failures surfaced to the API layer."""


class BookingNotFoundError(BookingError):
    pass


class SlotUnavailableError(BookingError):
    pass


class NotCancellableError(BookingError):
    pass


class PaymentError(BookingError):
    pass
