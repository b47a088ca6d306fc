from fastapi import APIRouter

from .endpoints import (
    admin,
    auth,
    grc,
    health,
    member,
    merchant,
    onboarding,
    public,
    reviews,
    surveys,
    unsubscribe,
    webhooks,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(auth.router)
router.include_router(grc.router)
router.include_router(member.router)
router.include_router(merchant.router)
router.include_router(surveys.router)
router.include_router(reviews.router)
router.include_router(public.router)
router.include_router(onboarding.router)
router.include_router(unsubscribe.router)
router.include_router(webhooks.router)
router.include_router(admin.router)
