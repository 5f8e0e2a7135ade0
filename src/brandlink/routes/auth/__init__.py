from brandlink.routes.auth.dependencies import (
    get_current_principal,
    oauth2_scheme,
    require_business,
    require_manufacturer,
    require_principal_type,
    require_user,
)
from brandlink.routes.auth.routes import router

__all__ = [
    "router",
    "get_current_principal",
    "oauth2_scheme",
    "require_principal_type",
    "require_business",
    "require_manufacturer",
    "require_user",
]
