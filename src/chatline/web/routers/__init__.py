from chatline.web.routers.auth import router as auth_router
from chatline.web.routers.events import router as events_router
from chatline.web.routers.messages import router as messages_router
from chatline.web.routers.profile import router as profile_router
from chatline.web.routers.realtime import router as realtime_router
from chatline.web.routers.users import router as users_router

__all__ = [
    "auth_router",
    "events_router",
    "messages_router",
    "profile_router",
    "realtime_router",
    "users_router",
]
