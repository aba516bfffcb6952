"""Tests for the HTTP server of exported data."""

import gzip
import json

import pytest

from triage.server import create_app


@pytest.fixture
def client(tmp_path):
    (tmp_path / "builds.json").write_text('[{"path": "bucket/logs/job/1"}]\n')
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "tests.jsonl").write_text('{"name": "t"}\n')
    app = create_app(tmp_path)
    app.testing = True
    return app.test_client()


def test_index_lists_files(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.get_json() == {"data": ["builds.json", "nested/tests.jsonl"]}


def test_serves_file_with_cache_control(client):
    response = client.get("/data/builds.json")

    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "max-age=120"
    assert response.mimetype == "application/json"
    assert "Content-Encoding" not in response.headers
    assert json.loads(response.data) == [{"path": "bucket/logs/job/1"}]


def test_serves_gzip_when_accepted(client):
    response = client.get("/data/nested/tests.jsonl", headers={"Accept-Encoding": "gzip, deflate"})

    assert response.status_code == 200
    assert response.headers["Content-Encoding"] == "gzip"
    assert "Accept-Encoding" in response.headers["Vary"]
    assert gzip.decompress(response.data) == b'{"name": "t"}\n'


@pytest.mark.parametrize("path", ["/data/missing.json", "/data/nested", "/data/../secret.json"])
def test_missing_or_outside_files(client, path):
    assert client.get(path).status_code == 404
