import pytest
from fastapi.testclient import TestClient

from app import app
from core.errors import NotFoundError, UpstreamError
from routers.deps import get_report_exporter, get_upstream
from services.report_exporter import ReportExporter, report_filename

from conftest import SESSION_ID, FakeUpstream, make_session


PREFIX = "/api/proofly"


class TestReportExporter:
    """PDF rendering with Pillow"""

    def test_export_writes_pdf(self, tmp_path):
        exporter = ReportExporter(output_dir=tmp_path)
        result = exporter.export(SESSION_ID, make_session())
        assert result.success
        assert result.filename == f"proofly-report-{SESSION_ID}.pdf"
        assert result.path.read_bytes().startswith(b"%PDF")
        assert exporter.path_for(SESSION_ID) == result.path

    def test_many_models_spill_over(self, tmp_path):
        metrics = {f"m{i}": {"name": f"Detector {i}", "probability": 0.5} for i in range(80)}
        result = ReportExporter(output_dir=tmp_path).export(SESSION_ID, make_session(faces=[{"metrics": metrics}]))
        assert result.success

    def test_no_faces(self, tmp_path):
        result = ReportExporter(output_dir=tmp_path).export(SESSION_ID, make_session(faces=[]))
        assert not result.success
        assert result.error == "No face data available in session"
        assert list(tmp_path.iterdir()) == []

    def test_path_for_unknown(self, tmp_path):
        exporter = ReportExporter(output_dir=tmp_path)
        assert exporter.path_for(SESSION_ID) is None
        assert exporter.path_for("../../etc/passwd") is None

    def test_filename(self):
        assert report_filename("abc") == "proofly-report-abc.pdf"


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream, tmp_path):
    app.dependency_overrides[get_upstream] = lambda: upstream
    app.dependency_overrides[get_report_exporter] = lambda: ReportExporter(output_dir=tmp_path)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestGeneratePdf:
    """Tests for GET /generate-pdf/{uuid}"""

    def test_generate_and_download(self, client):
        response = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}")
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "PDF generated successfully",
            "filename": f"proofly-report-{SESSION_ID}.pdf",
        }

        download = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}/download")
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")

    def test_download_before_generate(self, client):
        response = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}/download")
        assert response.status_code == 404
        assert response.json() == {"error": "Report not found"}

    def test_no_faces(self, client, upstream):
        upstream.session = make_session(status="no faces found", faces=[])
        response = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}")
        assert response.status_code == 400
        assert response.json() == {"error": "No face data available in session"}

    def test_session_missing(self, client, upstream):
        upstream.session = NotFoundError("Session not found")
        response = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}")
        assert response.status_code == 404
        assert response.json() == {"error": "Session information not found"}

    def test_upstream_failure(self, client, upstream):
        upstream.session = UpstreamError("Upstream service timed out")
        response = client.get(f"{PREFIX}/generate-pdf/{SESSION_ID}")
        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to retrieve session information from API",
            "details": "Upstream service timed out",
        }
