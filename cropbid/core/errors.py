"""Error taxonomy of the bidding engine.

Every failure a caller can act on is a ``BiddingError`` subclass with a stable
``code`` and the HTTP status the API layer answers with.
"""

from fastapi import status


class BiddingError(Exception):
    code = "bidding_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.code.replace("_", " ").capitalize()


class InvalidInput(BiddingError):
    code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST


class SessionAlreadyActive(InvalidInput):
    code = "session_already_active"
    status_code = status.HTTP_409_CONFLICT


class NotFound(BiddingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class BidRejected(BiddingError):
    """Base class for validation failures of a candidate bid amount."""


class SessionClosed(BidRejected):
    code = "session_closed"
    status_code = status.HTTP_409_CONFLICT

    def default_message(self) -> str:
        return "Bidding session has been stopped"


class SessionExpired(BidRejected):
    code = "session_expired"
    status_code = status.HTTP_409_CONFLICT

    def default_message(self) -> str:
        return "Bidding session has ended"


class BelowMinimum(BidRejected):
    code = "below_minimum"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class BelowCurrentHighest(BidRejected):
    code = "below_current_highest"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class BidNotFound(BiddingError):
    code = "bid_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(BiddingError):
    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN


class StoreUnavailable(BiddingError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
