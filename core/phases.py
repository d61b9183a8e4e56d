# core/phases.py
from enum import Enum


class RecognitionPhase(str, Enum):
    """
    Lifecycle of one speech-recognition activation.
    """

    IDLE = "IDLE"
    INITIALIZING = "INITIALIZING"
    LISTENING = "LISTENING"

    def is_active(self) -> bool:
        return self is not RecognitionPhase.IDLE


class ReviewPhase(str, Enum):
    """
    Lifecycle of one capture attempt, from free text to a committed draft.
    """

    INPUT = "INPUT"
    PROCESSING = "PROCESSING"
    REVIEW = "REVIEW"
    SUCCESS = "SUCCESS"
