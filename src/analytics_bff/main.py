# src/analytics_bff/main.py

import os

from fastapi import FastAPI, Request, status, Response
from fastapi.responses import HTMLResponse, FileResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .config import settings, PACKAGE_DIR
from .cookies import sanitize_next_path
from .edge_guard import EdgeGuardMiddleware
from . import proxy

# --- FastAPI App Setup ---
app = FastAPI(
    title="Analytics Dashboard BFF",
    description="Backend-For-Frontend for the analytics dashboard, relaying auth and chat to the analytics backend.",
    version="0.1.0"
)

# --- Route-level authentication ---
app.add_middleware(EdgeGuardMiddleware)

# --- API relays (/api/auth/*, /api/chat) ---
app.include_router(proxy.router)

# --- Static Files and Templates ---
app.mount(
    "/static",
    StaticFiles(directory=PACKAGE_DIR / "static"),
    name="static"
)
templates = Jinja2Templates(directory=PACKAGE_DIR / "templates")


# --- Favicon Route ---
@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    favicon_path = PACKAGE_DIR / "static" / "favicon.ico"
    if os.path.exists(favicon_path) and os.path.isfile(favicon_path):
        return FileResponse(favicon_path, media_type="image/x-icon")
    else:
        return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"ok": True}


# --- Page shells (the Edge Guard has already run by the time these render) ---
@app.get("/", response_class=HTMLResponse)
async def read_root(request: Request):
    return templates.TemplateResponse(request, "index.html", {"login_path": settings.LOGIN_PATH})


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    redirect_to = sanitize_next_path(request.query_params.get("redirect"))
    return templates.TemplateResponse(request, "login.html", {"redirect_to": redirect_to})


@app.get("/dashboard", response_class=HTMLResponse)
@app.get("/dashboard/{section:path}", response_class=HTMLResponse)
async def dashboard_page(request: Request, section: str = ""):
    return templates.TemplateResponse(request, "dashboard.html", {"section": section or "overview"})


# --- Startup Event ---
@app.on_event("startup")
async def startup_event():
    print("--- Analytics Dashboard BFF (FastAPI) Starting Up ---")
    print(f"Backend API base: {settings.BACKEND_API_BASE}")
    print(f"Verify timeout: {settings.VERIFY_TIMEOUT_SECONDS}s")
    print(f"Edge Guard mode: {'fail-open' if settings.EDGE_GUARD_FAIL_OPEN else 'fail-closed'} on backend outage")
    print(f"Public paths: {settings.PUBLIC_PATHS}")
    print(f"Protected path prefixes: {settings.PROTECTED_PATH_PREFIXES}")
    print(f"Session cookies: {settings.SESSION_COOKIE_NAMES}")
    print("-------------------------------------------")
