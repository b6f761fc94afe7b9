"""
asgi.py -- Application assembly for KeyDash.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
The access gate in api/main.py covers the web routes too, because middleware
wraps every route on the app regardless of which router registered it.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
