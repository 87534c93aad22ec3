import os

from config import settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def upload(client, headers, name="face.png", content=PNG, type="photo"):
    return client.post("/api/upload", params={"type": type}, files={"file": (name, content, "image/png")}, headers=headers)


def test_upload_and_download(client, patient_headers):
    r = upload(client, patient_headers)
    assert r.status_code == 200
    stored = r.json()["data"]
    assert stored["original_name"] == "face.png"
    assert stored["filesize"] == len(PNG)
    assert os.path.isfile(stored["filepath"])
    assert "/photo/" in stored["filepath"]

    r = client.get("/api/download", params={"file": stored["filepath"]}, headers=patient_headers)
    assert r.status_code == 200
    assert r.content == PNG
    assert r.headers["content-disposition"].startswith("attachment")


def test_upload_rejects_wrong_extension(client, patient_headers):
    r = upload(client, patient_headers, name="notes.txt", content=b"hello")
    assert r.status_code == 400
    assert r.json()["message"] == "File upload failed: File type not allowed"


def test_upload_rejects_oversized_file(client, patient_headers):
    r = upload(client, patient_headers, content=b"\x00" * (settings.max_upload_size + 1))
    assert r.status_code == 400
    assert r.json()["message"] == "File upload failed: File size too large"


def test_download_outside_upload_dirs_is_denied(client, patient_headers):
    r = client.get("/api/download", params={"file": "/etc/passwd"}, headers=patient_headers)
    assert r.status_code == 403
    traversal = os.path.join(settings.upload_dir, "..", "test.db")
    assert client.get("/api/download", params={"file": traversal}, headers=patient_headers).status_code == 403


def test_download_missing_file_is_404(client, patient_headers):
    missing = os.path.join(settings.upload_dir, "photo", "nothing-here.png")
    assert client.get("/api/download", params={"file": missing}, headers=patient_headers).status_code == 404


def test_files_require_login(client):
    assert upload(client, {}).status_code == 401
    assert client.get("/api/download", params={"file": "/etc/passwd"}).status_code == 401
