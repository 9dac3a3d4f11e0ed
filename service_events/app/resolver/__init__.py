from .base import ActorProfile, ActorProfileLookup, GroupRecipients, RecipientResolver
from .mongo import MongoRecipientResolver

__all__ = [
    "ActorProfile",
    "ActorProfileLookup",
    "GroupRecipients",
    "RecipientResolver",
    "MongoRecipientResolver",
]
