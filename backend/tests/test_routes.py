"""
HTTP tests for the application built by create_app().

Routes run against real stores under tmp_path with FakeRunner in place
of FFmpeg. The client is used as a context manager so the lifespan runs
and background encode tasks keep running between requests.
"""

import time
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeRunner
from reelhouse.execution.errors import ProcessFailure
from reelhouse.main import create_app
from reelhouse.settings import AppSettings


def wait_for_terminal(client, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/jobs/{job_id}").json()
        if body["status"] in ("done", "failed"):
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} did not finish within {timeout}s")


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def client(settings, runner):
    app = create_app(settings=settings, runner=runner)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def uploaded(settings):
    uploads = settings.data_dir / "uploads"
    uploads.mkdir(parents=True, exist_ok=True)
    (uploads / "cover.png").write_bytes(b"\x89PNG fake")
    (uploads / "song.mp3").write_bytes(b"ID3 fake")
    return {"imageKey": "uploads/cover.png", "musicKey": "uploads/song.mp3"}


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert isinstance(body["ts"], int)
        assert body["jobs"] == 0
        assert body["activeEncodes"] == 0


# =============================================================================
# Video creation
# =============================================================================

class TestCreateVideo:

    def test_create_returns_job_id_and_completes(self, client, uploaded):
        """
        GIVEN: Uploaded image and music files
        WHEN: POST /api/video/create
        THEN: A job id is returned and the job finishes with a file URL
        """
        response = client.post("/api/video/create", json=uploaded)

        assert response.status_code == 200
        job_id = response.json()["jobId"]

        job = wait_for_terminal(client, job_id)
        assert job["status"] == "done"
        assert job["progress"] == 100
        assert job["result"]["url"].startswith("/api/files/output%2Fvideo_")
        assert "error" not in job

    def test_missing_fields_rejected(self, client, runner):
        response = client.post("/api/video/create", json={"imageKey": "uploads/cover.png"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert any(problem.startswith("musicKey") for problem in body["problems"])
        assert runner.invocations == []

    def test_empty_key_rejected(self, client):
        response = client.post("/api/video/create", json={"imageKey": "", "musicKey": "x"})

        assert response.status_code == 400

    def test_missing_input_files(self, client, runner, uploaded):
        payload = dict(uploaded, musicKey="uploads/missing.mp3")

        response = client.post("/api/video/create", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Required input files not found"
        assert body["missingFiles"] == ["music file: uploads/missing.mp3"]
        assert client.get("/api/jobs").json()["count"] == 0
        assert runner.invocations == []

    def test_failed_encode_visible_in_status(self, settings, uploaded):
        runner = FakeRunner(progress=(35,), error=ProcessFailure(1, "Conversion failed!"))
        with TestClient(create_app(settings=settings, runner=runner)) as client:
            job_id = client.post("/api/video/create", json=uploaded).json()["jobId"]
            job = wait_for_terminal(client, job_id)

        assert job["status"] == "failed"
        assert job["progress"] == 35
        assert "Conversion failed!" in job["error"]
        assert "result" not in job


# =============================================================================
# Job status
# =============================================================================

class TestJobStatus:

    def test_unknown_job_404(self, client):
        for path in ("/api/jobs/nope", "/api/jobs/nope/status"):
            response = client.get(path)
            assert response.status_code == 404
            assert response.json()["detail"] == "Job not found"

    def test_status_alias_matches_record(self, client, uploaded):
        job_id = client.post("/api/video/create", json=uploaded).json()["jobId"]
        wait_for_terminal(client, job_id)

        assert client.get(f"/api/jobs/{job_id}/status").json() == client.get(f"/api/jobs/{job_id}").json()

    def test_list_jobs(self, client, uploaded):
        first = client.post("/api/video/create", json=uploaded).json()["jobId"]
        time.sleep(0.01)
        second = client.post("/api/video/create", json=uploaded).json()["jobId"]

        body = client.get("/api/jobs").json()

        assert body["count"] == 2
        assert [job["id"] for job in body["jobs"]] == [second, first]


# =============================================================================
# Progress stream
# =============================================================================

class TestJobStream:

    def test_stream_of_finished_job(self, client, uploaded):
        job_id = client.post("/api/video/create", json=uploaded).json()["jobId"]
        wait_for_terminal(client, job_id)

        with client.stream("GET", f"/api/jobs/{job_id}/stream") as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            assert response.headers["cache-control"] == "no-cache"
            assert response.headers["access-control-allow-origin"] == "*"
            body = "".join(response.iter_text())

        frames = [frame for frame in body.split("\n\n") if frame]
        assert len(frames) == 1
        assert frames[0].startswith('data: {"type":"job_update"')
        assert '"status":"done"' in frames[0]

    def test_stream_of_unknown_job(self, client):
        with client.stream("GET", "/api/jobs/nope/stream") as response:
            body = "".join(response.iter_text())

        assert body == 'data: {"type":"error","message":"Job not found"}\n\n'


# =============================================================================
# Files
# =============================================================================

class TestFiles:

    @pytest.fixture
    def artifact(self, settings):
        path = settings.data_dir / "output" / "video_test.mp4"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"fake mp4 data")
        return "output/video_test.mp4"

    def test_serve_by_quoted_key(self, client, artifact):
        response = client.get("/api/files/output%2Fvideo_test.mp4")

        assert response.status_code == 200
        assert response.content == b"fake mp4 data"
        assert "content-disposition" not in response.headers

    def test_download_adds_attachment_header(self, client, artifact):
        response = client.get(f"/api/files/{artifact}", params={"download": "true"})

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert "video_test.mp4" in response.headers["content-disposition"]

    def test_missing_file_404(self, client):
        assert client.get("/api/files/output/nothing.mp4").status_code == 404

    def test_traversal_forbidden(self, client):
        response = client.get("/api/files/..%2F..%2Fetc%2Fpasswd")

        assert response.status_code == 403


# =============================================================================
# Uploads
# =============================================================================

class TestUpload:

    def test_upload_then_create_video(self, client, settings):
        """
        GIVEN: An image and a music track uploaded through the API
        WHEN: Their returned keys are passed to /api/video/create
        THEN: The job completes
        """
        image = client.post("/api/upload", files={"file": ("Cover.JPG", b"\xff\xd8 fake jpeg", "image/jpeg")})
        music = client.post("/api/upload", files={"file": ("song.mp3", b"ID3 fake", "audio/mpeg")})

        assert image.status_code == 200
        assert music.status_code == 200
        image_key = image.json()["key"]
        assert image_key.startswith("uploads/") and image_key.endswith(".jpg")
        assert image.json()["url"] == "/api/files/" + image_key.replace("/", "%2F")
        assert (settings.data_dir / image_key).read_bytes() == b"\xff\xd8 fake jpeg"

        response = client.post(
            "/api/video/create",
            json={"imageKey": image_key, "musicKey": music.json()["key"]},
        )

        assert response.status_code == 200
        job = wait_for_terminal(client, response.json()["jobId"])
        assert job["status"] == "done"

    def test_uploaded_file_is_served(self, client):
        key = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")}).json()["key"]

        assert client.get(f"/api/files/{key}").content == b"hello"

    def test_upload_without_file_rejected(self, client):
        response = client.post("/api/upload", data={"other": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_upload_over_limit_rejected(self, data_dir):
        settings = AppSettings(data_dir=data_dir, max_upload_bytes=4)
        with TestClient(create_app(settings=settings, runner=FakeRunner())) as client:
            response = client.post("/api/upload", files={"file": ("big.mp3", b"0123456789", "audio/mpeg")})

        assert response.status_code == 413
        assert list((data_dir / "uploads").iterdir()) == []


# =============================================================================
# Error boundary
# =============================================================================

class TestErrorBoundary:

    def test_unhandled_error_is_generic_500(self, settings):
        app = create_app(settings=settings, runner=FakeRunner())
        with TestClient(app, raise_server_exceptions=False) as client:
            with mock.patch.object(app.state.job_store, "count", side_effect=RuntimeError("secret detail")):
                response = client.get("/api/health")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
