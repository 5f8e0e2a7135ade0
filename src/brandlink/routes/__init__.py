from brandlink.routes.admin import router as admin_router
from brandlink.routes.auth import router as auth_router
from brandlink.routes.brands import router as brands_router
from brandlink.routes.certificates import router as certificates_router
from brandlink.routes.health import router as health_router
from brandlink.routes.manufacturers import router as manufacturers_router
from brandlink.routes.media import router as media_router
from brandlink.routes.notifications import router as notifications_router
from brandlink.routes.security import router as security_router
from brandlink.routes.users import router as users_router

__all__ = [
    "admin_router",
    "auth_router",
    "brands_router",
    "certificates_router",
    "health_router",
    "manufacturers_router",
    "media_router",
    "notifications_router",
    "security_router",
    "users_router",
]
