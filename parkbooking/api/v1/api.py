from fastapi import APIRouter
from parkbooking.api.v1.routes.time_slots import router as time_slots_router
from parkbooking.api.v1.routes.cart import router as cart_router
from parkbooking.api.v1.routes.bookings import router as bookings_router
from parkbooking.api.v1.routes.payments import router as payments_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(time_slots_router)
api_router.include_router(cart_router)
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
