from enum import Enum

class ResponseState(str, Enum):
    PENDING = "PENDING"
    FINISHED = "FINISHED"
    ERRORED = "ERRORED"
    CLOSED = "CLOSED"
    CLEANED = "CLEANED"
