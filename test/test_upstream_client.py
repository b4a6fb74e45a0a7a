import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.errors import NotFoundError, SecurityRejection, UpstreamError, ValidationError
from services.api_log import ApiLogBuffer
from services.upstream_client import UpstreamClient

from conftest import SESSION_ID, make_session


def build_upstream_app():
    received = {}

    async def upload(request):
        form = await request.post()
        field = form["file"]
        received["filename"] = field.filename
        received["content"] = field.file.read()
        received["content_type"] = field.content_type
        return web.json_response({"uuid": SESSION_ID})

    async def session_info(request):
        session_id = request.match_info["session_id"]
        if session_id != SESSION_ID:
            return web.json_response({"detail": "Session not found"}, status=404)
        return web.json_response(make_session())

    async def session_status(request):
        return web.json_response({"status": "processing"})

    async def broken_status(request):
        return web.Response(text="<html>oops</html>", content_type="text/html")

    async def server_error(request):
        return web.json_response({"detail": "Database\nunavailable"}, status=503)

    async def redirect(request):
        raise web.HTTPFound("http://127.0.0.1:1/internal")

    async def face_image(request):
        return web.Response(body=b"\x89PNG face", content_type="image/png")

    async def big_image(request):
        return web.Response(body=b"x" * 4096, content_type="image/jpeg")

    app = web.Application()
    app.router.add_post("/api/upload", upload)
    app.router.add_get("/api/system/status", server_error)
    app.router.add_get("/api/storage/faces/{name}", face_image)
    app.router.add_get("/api/storage/original/{name}", redirect)
    app.router.add_get("/images/big.jpg", big_image)
    app.router.add_get("/images/moved.jpg", redirect)
    app.router.add_get("/api/broken/status", broken_status)
    app.router.add_get("/api/{session_id}/status", session_status)
    app.router.add_get("/api/{session_id}", session_info)
    return app, received


def run_with_client(scenario, **client_kwargs):
    """Start an in-process upstream, run `scenario(client, server, received)` and return its result."""

    async def main():
        app, received = build_upstream_app()
        server = test_utils.TestServer(app)
        await server.start_server()
        log = ApiLogBuffer(capacity=50)
        client = UpstreamClient(base_url=str(server.make_url("/api")), log_buffer=log, **client_kwargs)
        try:
            return await scenario(client, server, received), log
        finally:
            await client.close()
            await server.close()

    return asyncio.run(main())


class TestUpstreamJson:
    """JSON endpoints of the upstream contract"""

    def test_create_session_multipart(self):
        async def scenario(client, server, received):
            data = await client.create_session("photo.jpg", b"\xff\xd8data", "image/jpeg")
            return data, dict(received)

        (data, received), log = run_with_client(scenario)
        assert data == {"uuid": SESSION_ID}
        assert received == {"filename": "photo.jpg", "content": b"\xff\xd8data", "content_type": "image/jpeg"}
        assert [e.type for e in log.entries()] == ["success", "info"]

    def test_session_info(self):
        async def scenario(client, server, received):
            return await client.get_session_info(SESSION_ID)

        data, _ = run_with_client(scenario)
        assert data == make_session()

    def test_session_not_found(self):
        async def scenario(client, server, received):
            with pytest.raises(NotFoundError):
                await client.get_session_info("00000000-0000-4000-8000-000000000000")

        _, log = run_with_client(scenario)
        assert log.entries()[0].type == "error"
        assert log.entries()[0].details == {"status": 404}

    def test_session_status(self):
        async def scenario(client, server, received):
            return await client.get_session_status(SESSION_ID)

        data, _ = run_with_client(scenario)
        assert data == {"status": "processing"}

    def test_malformed_json(self):
        async def scenario(client, server, received):
            with pytest.raises(UpstreamError, match="Malformed"):
                await client.get_session_status("broken")

        run_with_client(scenario)

    def test_error_details_are_sanitized(self):
        async def scenario(client, server, received):
            with pytest.raises(UpstreamError) as excinfo:
                await client.get_system_status()
            return excinfo.value

        error, _ = run_with_client(scenario)
        assert error.to_payload() == {"error": "Upstream service error", "details": "Database unavailable"}

    def test_unreachable(self):
        async def main():
            client = UpstreamClient(base_url="http://127.0.0.1:1/api", log_buffer=ApiLogBuffer())
            try:
                with pytest.raises(UpstreamError, match="unreachable"):
                    await client.get_system_status()
            finally:
                await client.close()

        asyncio.run(main())


class TestUpstreamBinary:
    """Image fetches never follow redirects"""

    def test_face_image(self):
        async def scenario(client, server, received):
            return await client.fetch_storage_file("faces", "abc_0.png")

        payload, _ = run_with_client(scenario)
        assert payload.content == b"\x89PNG face"
        assert payload.content_type == "image/png"

    def test_storage_redirect_rejected(self):
        async def scenario(client, server, received):
            with pytest.raises(SecurityRejection):
                await client.fetch_storage_file("original", "abc.jpg")

        run_with_client(scenario)

    def test_remote_redirect_rejected(self):
        async def scenario(client, server, received):
            with pytest.raises(SecurityRejection):
                await client.fetch_remote_image(str(server.make_url("/images/moved.jpg")))

        run_with_client(scenario)

    def test_remote_size_limit(self):
        async def scenario(client, server, received):
            with pytest.raises(ValidationError, match="too large"):
                await client.fetch_remote_image(str(server.make_url("/images/big.jpg")))

        run_with_client(scenario, max_remote_bytes=1024)

    def test_unknown_storage_kind(self):
        async def scenario(client, server, received):
            with pytest.raises(ValueError):
                await client.fetch_storage_file("secrets", "x")

        run_with_client(scenario)
