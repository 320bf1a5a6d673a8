"""Version 1 of the storefront API."""

from fastapi import APIRouter

from storefront.api.v1 import cart, email_verification, orders, track

api_router = APIRouter()
api_router.include_router(orders.router)
api_router.include_router(cart.router)
api_router.include_router(track.router)
api_router.include_router(email_verification.router)
