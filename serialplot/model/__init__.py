from .sample import Sample, Batch
from .session import ProtocolName, SessionConfig, SimConfig, Source
from .subscription import MAX_SUBSCRIPTIONS, Subscription, SubscriptionSet

__all__ = ["Sample",
           "Batch",
           "ProtocolName",
           "SessionConfig",
           "SimConfig",
           "Source",
           "MAX_SUBSCRIPTIONS",
           "Subscription",
           "SubscriptionSet"]
