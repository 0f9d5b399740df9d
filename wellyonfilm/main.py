import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .errors import DomainError
from .services.database import create_db_and_tables
from .routers import auth, users, months, submissions, judging, moderation, raffle, stats

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Welly on Film")

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    log = logger.warning if exc.retryable else logger.info
    log("%s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {"message": "Welly on Film"}

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(months.router)
app.include_router(submissions.router)
app.include_router(judging.router)
app.include_router(moderation.router)
app.include_router(raffle.router)
app.include_router(stats.router)

@app.on_event("startup")
def on_startup():
    create_db_and_tables()
