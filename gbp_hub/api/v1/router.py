from fastapi import APIRouter

from gbp_hub.api.v1.endpoints.health import router as health_router
from gbp_hub.api.v1.endpoints.organizations import router as organizations_router
from gbp_hub.api.v1.endpoints.users import router as users_router
from gbp_hub.api.v1.endpoints.me import router as me_router
from gbp_hub.api.v1.endpoints.credentials import router as credentials_router
from gbp_hub.api.v1.endpoints.listings import router as listings_router
from gbp_hub.api.v1.endpoints.reviews import router as reviews_router
from gbp_hub.api.v1.endpoints.templates import router as templates_router
from gbp_hub.api.v1.endpoints.post_templates import router as post_templates_router
from gbp_hub.api.v1.endpoints.posts import router as posts_router
from gbp_hub.api.v1.endpoints.analytics import router as analytics_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(organizations_router, tags=["organizations"])
router.include_router(users_router, tags=["users"])
router.include_router(me_router, tags=["me"])
router.include_router(credentials_router, tags=["credentials"])
router.include_router(listings_router, tags=["listings"])
router.include_router(reviews_router, tags=["reviews"])
router.include_router(templates_router, tags=["templates"])
router.include_router(post_templates_router, tags=["post-templates"])
router.include_router(posts_router, tags=["posts"])
router.include_router(analytics_router, tags=["analytics"])
