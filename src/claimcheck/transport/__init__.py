"""Queue transports for the claim-check client.

Provides:
- QueueTransport interface with Service Bus and in-memory implementations
- RetryingTransport, which runs every transport call under a RetryPolicy
"""

from claimcheck.transport.base import MessageBatch, QueueTransport, SubQueue
from claimcheck.transport.memory import InMemoryMessageBatch, InMemoryQueueTransport
from claimcheck.transport.retrying import RetryingTransport
from claimcheck.transport.servicebus import ServiceBusMessageBatch, ServiceBusTransport

__all__ = [
    "QueueTransport",
    "MessageBatch",
    "SubQueue",
    "InMemoryQueueTransport",
    "InMemoryMessageBatch",
    "RetryingTransport",
    "ServiceBusTransport",
    "ServiceBusMessageBatch",
]
