# backend/main.py
import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response

from config import Settings, get_settings
from utils.origins import cors_origin

load_dotenv()

logging.basicConfig(level=logging.INFO)

# Routers
from routes.checkout import router as checkout_router
from routes.newsletter import router as newsletter_router
from routes.slots import router as slots_router

CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Stripe-Signature"
CORS_MAX_AGE = "86400"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(title="Cookie Isle Storefront API", version="1.0.0")
    app.state.settings = settings or get_settings()

    # CORS: mirror allowed origins, otherwise answer with the first configured origin
    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        allow_origin = cors_origin(request.headers.get("origin"), request.app.state.settings)

        if request.method == "OPTIONS":
            response = Response(status_code=204)
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
            response.headers["Access-Control-Max-Age"] = CORS_MAX_AGE
        else:
            response = await call_next(request)

        response.headers["Access-Control-Allow-Origin"] = allow_origin
        response.headers["Vary"] = "Origin"
        return response

    # Register routers
    app.include_router(checkout_router)
    app.include_router(slots_router)
    app.include_router(newsletter_router)

    @app.get("/")
    def read_root():
        return {"message": "Cookie Isle storefront API is running"}

    return app


app = create_app()
