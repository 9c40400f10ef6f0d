"""
Move messages from one queue to another.

A run repeatedly pulls a batch from the source, splits it with the filter,
sends the matching messages to the destination and deletes them from the
source once the send went through. Messages that did not match are kept
aside and, however the run ends, are made visible again on the source with a
short timeout so other consumers do not have to wait out the long pull
timeout.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from toolz import partition_all

from .errors import (
    FailedToChangeMessageVisibility,
    FailedToDeleteMessages,
    FailedToPushMessages,
    MessagePullFailed,
    NothingAfterFilter,
)
from .filter import Filter, partition
from .queue import (
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME,
    MAX_BATCH_SIZE,
    RESET_VISIBILITY_TIMEOUT,
    Message,
    QueueClient,
    QueueClientError,
)

log = logging.getLogger(__name__)


class FilterPolicy(Enum):
    """What a pull cycle with no matching messages means for the run"""

    # Keep pulling, fail only if nothing matched by the time the source is empty
    DRAIN = "drain"
    # Stop the run at the first cycle where nothing matched
    STOP_ON_EMPTY = "stop-on-empty"


@dataclass
class TransferResult:
    pulled: int = 0
    moved: int = 0
    rejected: int = 0
    cycles: int = 0


def reset_visibility(
    client: QueueClient,
    queue: str,
    messages: Sequence[Message],
    timeout: int = RESET_VISIBILITY_TIMEOUT,
) -> int:
    """
    Set visibility timeout of ``messages`` to ``timeout`` seconds, at most
    ``MAX_BATCH_SIZE`` messages per call.

    Stops at the first failing call, chunks already sent stay applied.

    :return: Number of calls made
    """
    calls = 0
    for chunk in partition_all(MAX_BATCH_SIZE, messages):
        try:
            client.change_visibility_batch(queue, list(chunk), timeout)
        except QueueClientError as e:
            raise FailedToChangeMessageVisibility(
                f"Failed to reset visibility of {len(chunk)} messages "
                f"after {calls} successful calls: {e}"
            ) from e
        calls += 1
        log.debug("Reset visibility of %d messages to %ds", len(chunk), timeout)

    return calls


class MessageTransfer:
    """
    One run of moving messages from ``source`` to ``destination``.

    Calls are made one at a time: a batch is only deleted from the source
    after it was sent, and rejected messages are only made visible again
    once no more pulls will happen.
    """

    def __init__(
        self,
        client: QueueClient,
        source: str,
        destination: str,
        flt: Optional[Filter] = None,
        policy: FilterPolicy = FilterPolicy.DRAIN,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        wait_time: int = DEFAULT_WAIT_TIME,
        reset_timeout: int = RESET_VISIBILITY_TIMEOUT,
    ):
        self.client = client
        self.source = source
        self.destination = destination
        self.filter = flt
        self.policy = policy
        self.visibility_timeout = visibility_timeout
        self.wait_time = wait_time
        self.reset_timeout = reset_timeout

        self.result = TransferResult()
        self.rejected: Dict[str, Message] = {}
        self.reset_error: Optional[FailedToChangeMessageVisibility] = None
        self._log = log

    def run(self) -> TransferResult:
        """
        Move everything there is to move.

        Raises one of the queue_shift.errors on failure. Rejected messages
        have their visibility reset before returning or raising, a failure
        to do so is logged and kept in ``reset_error``.
        """
        self.result = TransferResult()
        self.rejected = {}
        self.reset_error = None

        try:
            self._drain()
        finally:
            self._reset_rejected()

        return self.result

    def _drain(self):
        _log = self._log

        while True:
            messages = self._pull()
            if len(messages) == 0:
                if self.result.pulled == 0:
                    raise MessagePullFailed()
                _log.info("Source queue is empty after %d cycles", self.result.cycles)
                break

            self.result.cycles += 1
            self.result.pulled += len(messages)

            seen_before = all(m.message_id in self.rejected for m in messages)
            matched, rejected = partition(self.filter, messages)
            self._reject(rejected)

            # Rejects outlived their visibility timeout, nothing new is left
            if seen_before:
                _log.info(
                    "Only previously rejected messages came back from %s after %d cycles",
                    self.source,
                    self.result.cycles,
                )
                break

            if len(matched) == 0:
                _log.info("None of %d messages matched the filter", len(messages))
                if self.policy is FilterPolicy.STOP_ON_EMPTY:
                    raise NothingAfterFilter()
                continue

            self._push(matched)
            self._delete(matched)
            self.result.moved += len(matched)
            _log.info(
                "Moved %d messages, %d rejected this cycle", len(matched), len(rejected)
            )

        if self.result.moved == 0:
            raise NothingAfterFilter()

    def _pull(self) -> List[Message]:
        try:
            return self.client.receive(
                self.source,
                max_messages=MAX_BATCH_SIZE,
                visibility_timeout=self.visibility_timeout,
                wait_time=self.wait_time,
            )
        except QueueClientError as e:
            self._log.warning("Failed to receive from %s: %s", self.source, e)
            raise MessagePullFailed() from e

    def _reject(self, messages: Sequence[Message]):
        # A message seen again after its visibility expired only keeps its newest receipt
        for message in messages:
            self.rejected[message.message_id] = message
        self.result.rejected = len(self.rejected)

    def _push(self, messages: Sequence[Message]):
        try:
            self.client.send_batch(self.destination, messages)
        except QueueClientError as e:
            self._log.error(
                "Failed to send %d messages to %s: %s", len(messages), self.destination, e
            )
            raise FailedToPushMessages() from e

    def _delete(self, messages: Sequence[Message]):
        try:
            self.client.delete_batch(self.source, messages)
        except QueueClientError as e:
            self._log.error(
                "Failed to delete messages from %s, possible duplicates: %s",
                self.source,
                ", ".join(m.message_id for m in messages),
            )
            raise FailedToDeleteMessages(messages) from e

    def _reset_rejected(self):
        messages = list(self.rejected.values())
        try:
            calls = reset_visibility(
                self.client, self.source, messages, timeout=self.reset_timeout
            )
        except FailedToChangeMessageVisibility as e:
            self._log.warning("%s", e)
            self.reset_error = e
            return

        if calls > 0:
            self._log.info("Made %d rejected messages visible again", len(messages))
