from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from market_pay.config import settings
from market_pay.db import SessionLocal, init_db
from market_pay.logging_config import setup_logging
from market_pay.routers import api, auth, batch, operator, public
from market_pay.security.csrf import install_csrf_cookie_middleware
from market_pay.security.headers import install_security_headers
from market_pay.security.sessions import install_auth_session_middleware
from market_pay.services.calculator import format_money
from market_pay.services.change_feed import change_feed, install_change_tracking

logger = logging.getLogger(__name__)

GENERIC_FAILURE = 'Something went wrong. Please try again.'


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.auto_create_schema:
        init_db()
    logger.info('market pay started')
    yield


app = FastAPI(title='Market Pay', lifespan=lifespan)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


app.state.templates.env.globals['csrf_token'] = _csrf_token
app.state.templates.env.filters['money'] = format_money

install_change_tracking(change_feed, SessionLocal)

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(operator.router)
app.include_router(batch.router)
app.include_router(public.router)
app.include_router(api.router)


@app.exception_handler(SQLAlchemyError)
async def storage_failure_handler(request: Request, exc: SQLAlchemyError):
    logger.error('storage failure on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse({'detail': GENERIC_FAILURE}, status_code=503)


@app.get('/')
def root():
    return RedirectResponse('/pos', status_code=303)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
