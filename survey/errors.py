# survey/errors.py
from typing import Optional


class SurveyError(Exception):
    pass


class ValidationError(SurveyError):
    """
    Rater input or requested transition is not acceptable.
    Raised before any state is touched.
    """


class TransientDeliveryError(SurveyError):
    """
    Network failure or non-success response from the item store / sink.
    Never shown to the rater as a blocking error.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorageUnavailable(SurveyError):
    """
    Historical judgments could not be read from the sink.
    """
