from fastapi import APIRouter
from app.api.v1.routes.bookings import router as bookings_router
from app.api.v1.routes.payments import router as payments_router
from app.api.v1.routes.functions import router as functions_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(functions_router)
