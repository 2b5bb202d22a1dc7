from fastapi import APIRouter

from .twilio import twilio_router

webhook_router = APIRouter()

webhook_router.include_router(twilio_router, prefix="/twilio", tags=["Twilio Webhook"])
