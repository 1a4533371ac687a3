from .auth import router as auth_router
from .profile import router as profile_router
from .admin import router as admin_router
from .posts import router as posts_router
from .events import router as events_router
from .donations import router as donations_router
from .polls import router as polls_router
from .stats import router as stats_router

__all__ = [
    "auth_router",
    "profile_router",
    "admin_router",
    "posts_router",
    "events_router",
    "donations_router",
    "polls_router",
    "stats_router",
]
