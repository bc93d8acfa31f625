from fastapi import FastAPI, Request
from starlette.responses import Response


DEFAULT_HEADERS = {
    'X-Robots-Tag': 'noindex, nofollow, noarchive',
    # Share links are capabilities; keep them out of Referer headers.
    'Referrer-Policy': 'no-referrer',
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
}


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in DEFAULT_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith('/api/'):
            response.headers['Cache-Control'] = 'no-store'
        return response
