"""
asgi.py -- The SecretKeeper ASGI app with both the JSON API and the HTML pages.

api/main.py builds the FastAPI app (middleware, lifespan, error handlers,
/api/v1 routes) without importing web/. The browser routes are attached
here so neither layer depends on the other.

    uvicorn asgi:app
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
