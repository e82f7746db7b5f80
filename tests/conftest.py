import logging
from collections import Counter

import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

_log = logging.getLogger(__name__)
log_fmt = r"%(asctime)-15s %(levelname)s %(name)s %(funcName)s:%(lineno)d %(message)s"
datefmt = "%Y-%m-%d %H:%M:%S"
logging.basicConfig(format=log_fmt, level=logging.DEBUG, datefmt=datefmt)

logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("httpcore").setLevel(logging.INFO)

BASE_URL = "http://testserver"


@pytest.fixture
def anyio_backend():
    """Exclude trio from tests"""
    return "asyncio"


@pytest.fixture
def hits():
    """Number of requests per path seen by the test app."""
    return Counter()


@pytest.fixture
def app(hits):
    def sse(body, status_code=200, headers=None):
        return PlainTextResponse(
            body, status_code=status_code, headers=headers, media_type="text/event-stream"
        )

    async def single(req: Request):
        hits[req.url.path] += 1
        return sse("data: {}\n\n")

    async def echo_headers(req: Request):
        hits[req.url.path] += 1
        return sse(
            f"data: accept={req.headers.get('accept')}\n"
            f"data: test={req.headers.get('test')}\n"
            f"data: nottest={req.headers.get('nottest')}\n\n"
        )

    async def redirect(req: Request):
        hits[req.url.path] += 1
        return sse(
            "data: ignore me\n\n",
            status_code=307,
            headers={"location": f"{BASE_URL}/single"},
        )

    async def relative_redirect(req: Request):
        hits[req.url.path] += 1
        return Response(status_code=302, headers={"location": "/single"})

    async def flaky(req: Request):
        hits[req.url.path] += 1
        if hits[req.url.path] == 1:
            return PlainTextResponse("go away", status_code=401)
        return sse("event: recovered\ndata: {}\n\n")

    async def named(req: Request):
        hits[req.url.path] += 1
        return sse(f"data: {req.path_params['name']}\n\n")

    return Starlette(
        routes=[
            Route("/single", single),
            Route("/headers", echo_headers),
            Route("/redirect", redirect),
            Route("/relative-redirect", relative_redirect),
            Route("/flaky", flaky),
            Route("/named/{name}", named),
        ]
    )


@pytest.fixture
async def httpx_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        _log.info("Yielding Client")
        yield client
