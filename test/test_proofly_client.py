import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from core.errors import ApiClientError
from services.api_log import ApiLogBuffer
from services.proofly_client import ProoflyClient

from conftest import SESSION_ID, make_session


PREFIX = "/api/proofly"


def build_proxy_app():
    async def upload(request):
        form = await request.post()
        if "file" not in form:
            return web.json_response({"error": "File not provided"}, status=400)
        return web.json_response({"uuid": SESSION_ID})

    async def upload_url(request):
        body = await request.json()
        if "127.0.0.1" in body.get("url", ""):
            return web.json_response({"error": "Invalid request"}, status=400)
        return web.json_response({})

    async def status(request):
        return web.json_response({"status": "completed"})

    async def session(request):
        return web.json_response(make_session())

    async def pdf(request):
        return web.Response(text="not json", status=502)

    app = web.Application()
    app.router.add_post(f"{PREFIX}/upload", upload)
    app.router.add_post(f"{PREFIX}/upload-url", upload_url)
    app.router.add_get(f"{PREFIX}/session/{{uuid}}/status", status)
    app.router.add_get(f"{PREFIX}/session/{{uuid}}", session)
    app.router.add_get(f"{PREFIX}/generate-pdf/{{uuid}}", pdf)
    return app


def run_with_client(scenario):
    async def main():
        server = test_utils.TestServer(build_proxy_app())
        await server.start_server()
        log = ApiLogBuffer(capacity=50)
        try:
            async with ProoflyClient(server_url=str(server.make_url("/")), log_buffer=log) as client:
                return await scenario(client), log
        finally:
            await server.close()

    return asyncio.run(main())


class TestProoflyClient:
    """Client for the proxy surface"""

    def test_upload_image(self):
        async def scenario(client):
            return await client.upload_image("a.jpg", b"data", "image/jpeg")

        session_id, log = run_with_client(scenario)
        assert session_id == SESSION_ID
        assert [e.type for e in log.entries()] == ["success", "info"]
        assert log.entries()[1].details == {"fileName": "a.jpg", "fileSize": 4}

    def test_upload_url_error_message(self):
        async def scenario(client):
            with pytest.raises(ApiClientError) as excinfo:
                await client.upload_url("http://127.0.0.1/a.jpg")
            return excinfo.value

        error, _ = run_with_client(scenario)
        assert str(error) == "Error sending URL: Invalid request"
        assert error.status == 400

    def test_upload_url_without_uuid(self):
        async def scenario(client):
            with pytest.raises(ApiClientError, match="UUID not received"):
                await client.upload_url("https://images.example.com/a.jpg")

        run_with_client(scenario)

    def test_session_calls(self):
        async def scenario(client):
            return await client.get_session_status(SESSION_ID), await client.get_session_info(SESSION_ID)

        (status, info), _ = run_with_client(scenario)
        assert status == {"status": "completed"}
        assert info["uuid"] == SESSION_ID

    def test_non_json_error(self):
        async def scenario(client):
            with pytest.raises(ApiClientError) as excinfo:
                await client.generate_pdf(SESSION_ID)
            return excinfo.value

        error, log = run_with_client(scenario)
        assert str(error) == "Error generating PDF: Request failed with status code 502"
        assert log.entries()[0].type == "error"

    def test_image_urls(self):
        client = ProoflyClient(server_url="http://proxy.local:8000/")
        assert client.original_image_url(SESSION_ID) == f"http://proxy.local:8000{PREFIX}/session/{SESSION_ID}/original-image"
        assert client.face_image_url(SESSION_ID, 2) == f"http://proxy.local:8000{PREFIX}/session/{SESSION_ID}/face/2"
