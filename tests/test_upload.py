from app.services.media_storage import MediaStorage, get_media_storage, safe_filename
from app.main import app


class FakeS3:
    def __init__(self):
        self.objects = []

    def put_object(self, **params):
        self.objects.append(params)


class MediaSettings:
    MEDIA_BUCKET = "desk-media"
    MEDIA_ACCESS_KEY_ID = "key"
    MEDIA_SECRET_ACCESS_KEY = "secret"
    MEDIA_ENDPOINT_URL = None
    MEDIA_PUBLIC_BASE_URL = "https://media.acme.io/"
    media_secret_plain = "secret"


def test_safe_filename():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("my photo (1).png") == "my_photo_1_.png"
    assert safe_filename(None) == "file"


def test_storage_upload_builds_key_and_public_url():
    s3 = FakeS3()
    storage = MediaStorage(MediaSettings(), client_factory=lambda cfg: s3)
    result = storage.upload(b"abc", "router log.txt", "text/plain")

    assert result["key"].startswith("chat-uploads/")
    assert result["key"].endswith("-router_log.txt")
    assert result["url"] == f"https://media.acme.io/{result['key']}"
    assert result["size"] == 3
    assert s3.objects[0]["Bucket"] == "desk-media"
    assert s3.objects[0]["ContentType"] == "text/plain"


def test_upload_endpoint(client, customer):
    s3 = FakeS3()
    app.dependency_overrides[get_media_storage] = lambda: MediaStorage(MediaSettings(), client_factory=lambda c: s3)

    resp = client.post("/upload", headers=customer.headers,
                       files={"file": ("screenshot.png", b"\x89PNG....", "image/png")})
    assert resp.status_code == 200
    body = resp.json()
    assert body["content_type"] == "image/png"
    assert body["url"].startswith("https://media.acme.io/chat-uploads/")
    assert len(s3.objects) == 1

    assert client.get("/upload/status", headers=customer.headers).json() == {"configured": True}


def test_upload_rejects_empty_files(client, customer):
    app.dependency_overrides[get_media_storage] = lambda: MediaStorage(MediaSettings(), client_factory=lambda c: FakeS3())
    resp = client.post("/upload", headers=customer.headers, files={"file": ("empty.txt", b"", "text/plain")})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No file provided"


def test_upload_without_storage_is_503(client, customer):
    resp = client.post("/upload", headers=customer.headers, files={"file": ("a.txt", b"a", "text/plain")})
    assert resp.status_code == 503
