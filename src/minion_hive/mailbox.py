"""Inter-minion messaging.

Each recipient owns a namespace ``network/<name>/`` holding one JSON record
per message, keyed by the message id. Ids start with a zero-padded,
strictly increasing nanosecond clock so that sorting keys sorts messages in
send order. Any minion may write into any mailbox; only the owner reads it.

Known race: a clear() running concurrently with a send() to the same
recipient may or may not remove the new message.
"""

from datetime import UTC, datetime
import threading
import time
import uuid

import structlog

from minion_hive.errors import RecipientNotFoundError, SenderNotFoundError
from minion_hive.metadata import MetadataStore
from minion_hive.models import ClearResult, Message
from minion_hive.storage import RecordStore, join_key

logger = structlog.get_logger()

NETWORK_NAMESPACE = "network"
MESSAGE_SUFFIX = ".json"
CLOCK_WIDTH = 20

_clock_lock = threading.Lock()
_last_tick = 0


def next_tick() -> int:
    """Nanosecond wall clock, bumped so that it never repeats or goes back."""
    global _last_tick
    with _clock_lock:
        _last_tick = max(time.time_ns(), _last_tick + 1)
        return _last_tick


def new_message_id(sender: str) -> str:
    return f"{next_tick():0{CLOCK_WIDTH}d}-{sender}-{uuid.uuid4().hex[:4]}"


class Mailbox:
    """Durable per-recipient message queues."""

    def __init__(
        self,
        store: RecordStore,
        minions: MetadataStore,
        namespace: str = NETWORK_NAMESPACE,
    ):
        self.store = store
        self.minions = minions
        self.namespace = namespace

    def _inbox(self, name: str) -> str:
        return join_key(self.namespace, name)

    def send(self, sender: str, recipient: str, body: str) -> Message:
        """Append one message to the recipient's mailbox."""
        if not self.minions.exists(sender):
            raise SenderNotFoundError(f"Sender minion '{sender}' not found", name=sender)
        if not self.minions.exists(recipient):
            raise RecipientNotFoundError(
                f"Recipient minion '{recipient}' not found", name=recipient
            )
        return self._deliver(sender, recipient, body)

    def _deliver(self, sender: str, recipient: str, body: str) -> Message:
        message = Message(
            id=new_message_id(sender),
            sender=sender,
            to=recipient,
            body=body,
            timestamp=datetime.now(UTC),
        )
        self.store.put(
            join_key(self._inbox(recipient), f"{message.id}{MESSAGE_SUFFIX}"),
            message.model_dump_json(by_alias=True, indent=2),
        )
        logger.debug("message_sent", sender=sender, recipient=recipient, message_id=message.id)
        return message

    def inbox(self, name: str) -> list[Message]:
        """All messages for name, oldest first."""
        if not self.minions.exists(name):
            raise RecipientNotFoundError(f"Minion '{name}' not found", name=name)

        messages = []
        for key in self._message_keys(name):
            raw = self.store.get(join_key(self._inbox(name), key))
            if raw is None:
                # cleared between listing and reading
                continue
            messages.append(Message.model_validate_json(raw))
        return messages

    def broadcast(self, sender: str, body: str) -> list[Message]:
        """Send body to every other registered minion."""
        if not self.minions.exists(sender):
            raise SenderNotFoundError(f"Sender minion '{sender}' not found", name=sender)

        sent = [
            self._deliver(sender, recipient, body)
            for recipient in self.minions.names()
            if recipient != sender
        ]
        logger.info("message_broadcast", sender=sender, recipients=len(sent))
        return sent

    def clear(self, name: str) -> ClearResult:
        """Delete all messages for name."""
        if not self.minions.exists(name):
            raise RecipientNotFoundError(f"Minion '{name}' not found", name=name)

        cleared = 0
        for key in self._message_keys(name):
            if self.store.delete(join_key(self._inbox(name), key)):
                cleared += 1
        logger.info("inbox_cleared", minion=name, cleared=cleared)
        return ClearResult(name=name, cleared=cleared)

    def count(self, name: str) -> int:
        return len(self._message_keys(name))

    def copy(self, source: str, target: str) -> None:
        if self.store.exists(self._inbox(source)):
            self.store.copy(self._inbox(source), self._inbox(target))

    def move(self, source: str, target: str) -> None:
        if self.store.exists(self._inbox(source)):
            self.store.move(self._inbox(source), self._inbox(target))

    def drop(self, name: str) -> None:
        self.store.drop(self._inbox(name))

    def _message_keys(self, name: str) -> list[str]:
        return sorted(
            key
            for key in self.store.keys(self._inbox(name))
            if key.endswith(MESSAGE_SUFFIX) and "/" not in key
        )
