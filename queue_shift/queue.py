import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

log = logging.getLogger(__name__)

# Limit imposed by SQS on every batch call and on a single receive
MAX_BATCH_SIZE = 10

# Long enough to push and delete one batch before anybody else sees it
DEFAULT_VISIBILITY_TIMEOUT = 60 * 10
DEFAULT_WAIT_TIME = 1

# Rejected messages become receivable again almost straight away
RESET_VISIBILITY_TIMEOUT = 1

_SEND_ATTRIBUTE_KEYS = ("DataType", "StringValue", "BinaryValue")


class QueueClientError(Exception):
    """
    A remote queue operation failed
    """

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} failed: {reason}")
        self.operation = operation
        self.reason = reason


@dataclass(frozen=True)
class Message:
    """
    One receipt of a message from a queue.

    ``receipt_handle`` belongs to this receipt only, it stops being valid
    once the message is deleted or its visibility is changed.
    """

    message_id: str
    receipt_handle: str
    body: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_sqs(cls, entry: Mapping[str, Any]) -> "Message":
        return cls(
            message_id=entry["MessageId"],
            receipt_handle=entry["ReceiptHandle"],
            body=entry["Body"],
            attributes=entry.get("MessageAttributes") or {},
        )

    def forwardable_attributes(self) -> Dict[str, Dict[str, Any]]:
        """Message attributes in the shape ``SendMessageBatch`` accepts"""
        forwarded = {}
        for name, value in self.attributes.items():
            if not isinstance(value, Mapping):
                continue
            forwarded[name] = {
                key: value[key] for key in _SEND_ATTRIBUTE_KEYS if key in value
            }
        return forwarded


class QueueClient(ABC):
    """
    The four remote operations a transfer needs.

    Each method is a single remote call with no retry. Failures are raised
    as :class:`QueueClientError`.
    """

    @abstractmethod
    def receive(
        self,
        queue: str,
        max_messages: int = MAX_BATCH_SIZE,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        wait_time: int = DEFAULT_WAIT_TIME,
    ) -> List[Message]:
        """Long poll ``queue``, an empty list means nothing turned up in time"""

    @abstractmethod
    def send_batch(self, queue: str, messages: Sequence[Message]) -> None:
        pass

    @abstractmethod
    def delete_batch(self, queue: str, messages: Sequence[Message]) -> None:
        pass

    @abstractmethod
    def change_visibility_batch(
        self, queue: str, messages: Sequence[Message], timeout: int
    ) -> None:
        pass


def _check_batch(operation: str, entries: Sequence):
    if len(entries) > MAX_BATCH_SIZE:
        raise ValueError(
            f"{operation} accepts at most {MAX_BATCH_SIZE} entries, got {len(entries)}"
        )


def _raise_on_failed_entries(operation: str, response: Mapping[str, Any]):
    failed = response.get("Failed", [])
    if len(failed) > 0:
        for failure in failed:
            log.warning(
                "%s failed for %s: %s %s",
                operation,
                failure.get("Id"),
                failure.get("Code"),
                failure.get("Message", ""),
            )
        raise QueueClientError(operation, f"{len(failed)} entries failed")


class SqsQueueClient(QueueClient):
    """
    QueueClient over a low level botocore SQS client, see make_sqs_client()
    """

    def __init__(self, sqs):
        self.sqs = sqs

    def _call(self, operation: str, **kwargs) -> Mapping[str, Any]:
        try:
            return getattr(self.sqs, operation)(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise QueueClientError(operation, str(e)) from e

    def receive(
        self,
        queue: str,
        max_messages: int = MAX_BATCH_SIZE,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        wait_time: int = DEFAULT_WAIT_TIME,
    ) -> List[Message]:
        if not 1 <= max_messages <= MAX_BATCH_SIZE:
            raise ValueError(f"Can not receive {max_messages} messages at once")

        response = self._call(
            "receive_message",
            QueueUrl=queue,
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
            MaxNumberOfMessages=max_messages,
            VisibilityTimeout=visibility_timeout,
            WaitTimeSeconds=wait_time,
        )
        return [Message.from_sqs(entry) for entry in response.get("Messages", [])]

    def send_batch(self, queue: str, messages: Sequence[Message]) -> None:
        _check_batch("send_message_batch", messages)
        entries = []
        for message in messages:
            entry = {
                "Id": message.message_id,
                "MessageBody": message.body,
                "DelaySeconds": 0,
            }
            attributes = message.forwardable_attributes()
            if attributes:
                entry["MessageAttributes"] = attributes
            entries.append(entry)

        response = self._call("send_message_batch", QueueUrl=queue, Entries=entries)
        _raise_on_failed_entries("send_message_batch", response)

    def delete_batch(self, queue: str, messages: Sequence[Message]) -> None:
        _check_batch("delete_message_batch", messages)
        entries = [
            {"Id": message.message_id, "ReceiptHandle": message.receipt_handle}
            for message in messages
        ]
        response = self._call("delete_message_batch", QueueUrl=queue, Entries=entries)
        _raise_on_failed_entries("delete_message_batch", response)

    def change_visibility_batch(
        self, queue: str, messages: Sequence[Message], timeout: int
    ) -> None:
        _check_batch("change_message_visibility_batch", messages)
        entries = [
            {
                "Id": message.message_id,
                "ReceiptHandle": message.receipt_handle,
                "VisibilityTimeout": timeout,
            }
            for message in messages
        ]
        response = self._call(
            "change_message_visibility_batch", QueueUrl=queue, Entries=entries
        )
        _raise_on_failed_entries("change_message_visibility_batch", response)

    def approximate_message_count(self, queue: str) -> Optional[int]:
        """
        Approximate number of visible messages on ``queue``, None when SQS
        does not report it
        """
        response = self._call(
            "get_queue_attributes",
            QueueUrl=queue,
            AttributeNames=["ApproximateNumberOfMessages"],
        )
        approx_n_messages = response.get("Attributes", {}).get(
            "ApproximateNumberOfMessages"
        )
        try:
            return int(approx_n_messages)
        except TypeError:
            log.warning("Couldn't get approximate number of messages for %s", queue)
            return None
