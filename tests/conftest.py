from typing import Dict, List, Sequence

import pytest

from queue_shift.queue import (
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_TIME,
    MAX_BATCH_SIZE,
    Message,
    QueueClient,
    QueueClientError,
)

SOURCE = "https://sqs.us-west-2.amazonaws.com/123456789012/source"
DESTINATION = "https://sqs.us-west-2.amazonaws.com/123456789012/destination"


def string_attribute(value):
    return {"DataType": "String", "StringValue": value}


def make_message(n: int, **attributes) -> Message:
    return Message(
        message_id=f"msg-{n}",
        receipt_handle="",
        body=f"body {n}",
        attributes={k: string_attribute(v) for k, v in attributes.items()},
    )


class FakeQueueClient(QueueClient):
    """
    In memory queues with visibility tracking.

    Every receive hands out a fresh receipt handle, deleting or changing
    visibility with any other handle fails the test.
    """

    def __init__(self):
        self.visible: Dict[str, List[Message]] = {}
        self.in_flight: Dict[str, Dict[str, Message]] = {}
        self.visibility: Dict[str, int] = {}
        self.calls: List[tuple] = []
        self.fail: Dict[str, int] = {}
        self._receipts = 0

    def put(self, queue: str, messages: Sequence[Message]):
        self.visible.setdefault(queue, []).extend(messages)

    def fail_on(self, operation: str, after: int = 0):
        """Make ``operation`` fail once it has succeeded ``after`` times"""
        self.fail[operation] = after

    def expire(self, queue: str):
        """Visibility timeout of everything in flight runs out"""
        in_flight = self.in_flight.pop(queue, {})
        self.put(queue, list(in_flight.values()))

    def ids(self, queue: str) -> List[str]:
        """Ids of every message still on ``queue``, received or not"""
        visible = [m.message_id for m in self.visible.get(queue, [])]
        return sorted(visible + list(self.in_flight.get(queue, {})))

    def calls_to(self, operation: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def _maybe_fail(self, operation: str):
        if operation not in self.fail:
            return
        if self.fail[operation] == 0:
            raise QueueClientError(operation, "simulated transport error")
        self.fail[operation] -= 1

    def _take_receipt(self, queue: str, message: Message):
        current = self.in_flight.get(queue, {}).get(message.message_id)
        assert current is not None, f"{message.message_id} is not in flight"
        assert current.receipt_handle == message.receipt_handle, "stale receipt handle"
        del self.in_flight[queue][message.message_id]

    def receive(
        self,
        queue: str,
        max_messages: int = MAX_BATCH_SIZE,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
        wait_time: int = DEFAULT_WAIT_TIME,
    ) -> List[Message]:
        self._maybe_fail("receive")
        visible = self.visible.get(queue, [])
        batch, self.visible[queue] = visible[:max_messages], visible[max_messages:]

        received = []
        for message in batch:
            self._receipts += 1
            message = Message(
                message.message_id,
                f"receipt-{self._receipts}",
                message.body,
                message.attributes,
            )
            self.in_flight.setdefault(queue, {})[message.message_id] = message
            self.visibility[message.message_id] = visibility_timeout
            received.append(message)

        self.calls.append(("receive", queue, [m.message_id for m in received]))
        return received

    def send_batch(self, queue: str, messages: Sequence[Message]) -> None:
        assert len(messages) <= MAX_BATCH_SIZE
        self._maybe_fail("send_batch")
        self.calls.append(("send_batch", queue, [m.message_id for m in messages]))
        self.put(
            queue,
            [Message(m.message_id, "", m.body, dict(m.attributes)) for m in messages],
        )

    def delete_batch(self, queue: str, messages: Sequence[Message]) -> None:
        assert len(messages) <= MAX_BATCH_SIZE
        self._maybe_fail("delete_batch")
        self.calls.append(("delete_batch", queue, [m.message_id for m in messages]))
        for message in messages:
            self._take_receipt(queue, message)

    def change_visibility_batch(
        self, queue: str, messages: Sequence[Message], timeout: int
    ) -> None:
        assert len(messages) <= MAX_BATCH_SIZE
        self._maybe_fail("change_visibility_batch")
        self.calls.append(
            ("change_visibility_batch", queue, [m.message_id for m in messages])
        )
        for message in messages:
            self._take_receipt(queue, message)
            self.visibility[message.message_id] = timeout
        self.put(queue, list(messages))


@pytest.fixture
def fake_client():
    return FakeQueueClient()


@pytest.fixture
def aws_env(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-west-2")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")


@pytest.fixture
def aws_profile(tmp_path, monkeypatch, aws_env):
    """
    Named profile ``testing`` in throw-away AWS config files
    """
    config = tmp_path / "config"
    config.write_text("[profile testing]\nregion = us-west-2\n")
    credentials = tmp_path / "credentials"
    credentials.write_text(
        "[testing]\naws_access_key_id = testing\naws_secret_access_key = testing\n"
    )
    monkeypatch.setenv("AWS_CONFIG_FILE", str(config))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(credentials))
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    return "testing"
