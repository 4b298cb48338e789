# main.py
import sys, asyncio, logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from database.connection import create_all_tables, engine
from modules.common.errors import DomainError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ----- Windows event loop policy -----
if sys.platform.startswith("win"):
    try:
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    except AttributeError:
        pass

# ----- App instance -----
app = FastAPI(title="Classroom Booking API", version="1.0.0")

# ----- Middlewares -----
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Error handlers -----
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "InternalError"})


# ----- Routers -----
from modules.security.auth_routes import router as auth_router
from modules.organization.routes import api_router as organization_api
from modules.users.routes import api_router as users_api
from modules.booking.routes import api as booking_api

app.include_router(auth_router)
app.include_router(organization_api)
app.include_router(users_api)
app.include_router(booking_api)

# ----- Startup -----
from modules.organization.migrations import run_startup_migrations
from modules.security.bootstrap import ensure_default_admin


@app.on_event("startup")
def on_startup():
    logger.info("Creating all database tables...")
    run_startup_migrations(engine)
    create_all_tables()
    ensure_default_admin()


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


# ----- Entrypoint -----
if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=5000, reload=True)
