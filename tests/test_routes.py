import asyncio
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from main import create_app
from utils.settings import GallerySettings

from conftest import make_jpeg

AUTH = {"Authorization": "Bearer secret"}


@pytest.fixture
def client(tmp_path):
    settings = GallerySettings.from_env({"GALLERY_DATA_DIR": str(tmp_path / "data"), "ADMIN_TOKEN": "secret"})
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def upload(client, name="sunset.jpg", day="1", title=None, headers=AUTH):
    data = {"day": day}
    if title:
        data["title"] = title
    return client.post(
        "/api/upload",
        files={"file": (name, make_jpeg(), "image/jpeg")},
        data=data,
        headers=headers,
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["storage_backend"] == "local"


def test_upload_requires_admin_token(client):
    assert upload(client, headers={}).status_code == 401
    assert upload(client, headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_upload_accepts_cookie_token(client):
    client.cookies.set("auth-token", "secret")
    assert upload(client, headers={}).status_code == 200


def test_upload_then_list_and_fetch_blob(client):
    response = upload(client, title="Sunset")
    assert response.status_code == 200
    image = response.json()["image"]
    assert image["title"] == "Sunset"
    assert image["day"] == 1

    listing = client.get("/api/images").json()
    assert listing["totalImages"] == 1
    assert listing["images"][0]["id"] == image["id"]

    blob = client.get(image["fullUrl"])
    assert blob.status_code == 200
    assert blob.content[:2] == b"\xff\xd8"


def test_upload_rejects_bad_day_and_non_images(client):
    assert upload(client, day="10").status_code == 400
    response = client.post(
        "/api/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"day": "1"},
        headers=AUTH,
    )
    assert response.status_code == 400


def test_bulk_upload_reports_failures(client):
    response = client.post(
        "/api/upload/bulk",
        files=[
            ("files", ("a.jpg", make_jpeg(), "image/jpeg")),
            ("files", ("b.jpg", make_jpeg(color="blue"), "image/jpeg")),
            ("files", ("notes.txt", b"hello", "text/plain")),
        ],
        data={"day": "2"},
        headers=AUTH,
    )

    body = response.json()
    assert response.status_code == 200
    assert len(body["results"]["uploaded"]) == 2
    assert body["results"]["failed"][0]["filename"] == "notes.txt"
    assert body["results"]["totalProcessed"] == 3
    assert body["success"] is False


def test_listing_is_cached_until_refresh(client):
    upload(client)
    first = client.get("/api/images?day=1").json()
    second = client.get("/api/images?day=1").json()

    assert first["cached"] is False
    assert second["cached"] is True
    assert client.get("/api/images?day=1&refresh=true").json()["cached"] is False
    assert client.post("/api/images/cache/clear").json()["success"] is True


def test_listing_rejects_invalid_page(client):
    assert client.get("/api/images?page=0").status_code == 400


def test_update_moves_day(client):
    image = upload(client).json()["image"]

    response = client.put(
        "/api/images/update",
        json={"imageId": image["id"], "day": 4, "title": "Moved", "isHighlight": True},
        headers=AUTH,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["moved"] is True
    assert body["image"]["id"] == image["id"]
    assert body["image"]["day"] == 4
    assert body["image"]["isHighlight"] is True
    assert "/day-4/" in body["image"]["fullUrl"]


def test_update_unknown_image_is_404(client):
    response = client.put("/api/images/update", json={"imageId": 250524101, "title": "x"}, headers=AUTH)
    assert response.status_code == 404


def test_delete(client):
    image = upload(client).json()["image"]

    response = client.request("DELETE", "/api/images/delete", json={"imageId": image["id"]}, headers=AUTH)

    assert response.status_code == 200
    assert client.get("/api/images").json()["totalImages"] == 0
    assert client.request("DELETE", "/api/images/delete", json={"imageId": image["id"]}, headers=AUTH).status_code == 404


def test_download_batch(client):
    image = upload(client, title="Sunset").json()["image"]

    response = client.post(
        "/api/download-batch",
        json={"images": [{"id": image["id"], "title": "Sunset", "fullUrl": image["fullUrl"], "day": 1}]},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "attachment" in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == [f"Day_1/{image['id']}_Sunset.jpg"]


def test_download_batch_requires_images(client):
    assert client.post("/api/download-batch", json={"images": []}).status_code == 400


def test_sync(client):
    upload(client)
    response = client.post("/api/sync", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["totalImages"] == 1
    assert response.json()["newImages"] == 0
    assert client.post("/api/sync").status_code == 401


def test_display_id(client):
    body = client.get("/api/images/250524101/display").json()
    assert body == {
        "id": 250524101,
        "display": "May 24, 2025 Day 1 #1",
        "isDateBased": True,
        "parsed": {"date": "2025-05-24", "day": 1, "sequence": 1},
    }
    legacy = client.get("/api/images/1716543210123/display").json()
    assert legacy["display"] == "May 24, 2024, 09:33 AM"
    assert legacy["isDateBased"] is False


def test_download_batch_ignores_client_paths(client):
    image = upload(client, title="Sunset").json()["image"]
    asyncio.run(client.app.state.storage.put("private/backup-credentials.txt", b"TOP SECRET", "text/plain"))

    response = client.post(
        "/api/download-batch",
        json={
            "images": [
                {"id": image["id"], "title": "Sunset", "gcsPath": "private/backup-credentials.txt"},
                {"id": 250524199, "title": "Secret", "gcsPath": "private/backup-credentials.txt"},
            ]
        },
    )

    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == [f"Day_1/{image['id']}_Sunset.jpg"]
        assert b"TOP SECRET" not in archive.read(archive.namelist()[0])


def test_download_batch_rejects_unknown_ids(client):
    response = client.post(
        "/api/download-batch",
        json={"images": [{"id": 250524199, "title": "Secret", "gcsPath": "private/backup-credentials.txt"}]},
    )
    assert response.status_code == 400
