from .user import User
from .session import SessionRecord
from .post import Post, PostLike, PostComment
from .event import Event, FeaturedEvent, Rsvp
from .donation import Donation, Pledge, BankingDetails
from .poll import Poll, PollOption, PollVote
from .community_exit import CommunityExit

__all__ = [
    "User",
    "SessionRecord",
    "Post",
    "PostLike",
    "PostComment",
    "Event",
    "FeaturedEvent",
    "Rsvp",
    "Donation",
    "Pledge",
    "BankingDetails",
    "Poll",
    "PollOption",
    "PollVote",
    "CommunityExit",
]
