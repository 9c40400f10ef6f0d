"""
Errors raised while shifting messages between queues.

Every failure of a run maps to exactly one of the classes below. ``fatal``
decides whether the command line tool exits with a non-zero status or only
reports a warning.
"""
from typing import List


class QueueShiftError(Exception):
    """
    Base class for all queue-shift failures
    """

    fatal = True
    description = "Queue shift failed"

    def __init__(self, description=None):
        super().__init__(description or self.description)


class ParameterParseFailed(QueueShiftError):
    """
    Invalid or missing startup configuration, nothing was sent to the queues
    """

    description = "Failed to parse parameters"


class MessagePullFailed(QueueShiftError):
    """
    Receiving from the source queue failed or there was nothing to receive
    """

    fatal = False
    description = (
        "Failed to retrieve messages from source queue. "
        "There might not have been any messages on the queue"
    )


class NothingAfterFilter(QueueShiftError):
    fatal = False
    description = "No messages matched the filter"


class FailedToPushMessages(QueueShiftError):
    description = "Failed to push messages to destination queue"


class FailedToDeleteMessages(QueueShiftError):
    """
    Messages were sent to the destination but could not be removed from
    the source, so they may now be present on both queues.
    """

    description = (
        "Unable to delete messages. "
        "Messages may be present both source and destination queues"
    )

    def __init__(self, messages: List, description=None):
        super().__init__(description)
        self.messages = list(messages)


class FailedToChangeMessageVisibility(QueueShiftError):
    fatal = False
    description = "Failed to reset the visibility of rejected messages"
