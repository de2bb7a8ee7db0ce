import asyncio

from fastapi.testclient import TestClient

from main import create_app
from services.video_store import VideoStore


def test_scenario_upload_list_stream(client, upload):
    resp = upload(data=b"0123456789", filename="holiday.mp4", title="clip")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    video = body["video"]
    assert video["title"] == "clip"
    assert video["views"] == 0
    assert video["size"] == 10
    assert video["mimetype"] == "video/mp4"
    assert video["originalname"] == "holiday.mp4"
    assert video["filename"] == video["id"] + ".mp4"

    listing = client.get("/api/videos").json()
    assert len(listing) == 1
    assert listing[0]["title"] == "clip"
    assert listing[0]["views"] == 0

    full = client.get(f"/api/video/{video['id']}")
    assert full.status_code == 200
    assert full.content == b"0123456789"
    assert full.headers["content-length"] == "10"
    assert full.headers["content-type"] == "video/mp4"

    part = client.get(f"/api/video/{video['id']}", headers={"Range": "bytes=2-5"})
    assert part.status_code == 206
    assert part.content == b"2345"
    assert part.headers["content-range"] == "bytes 2-5/10"
    assert part.headers["content-length"] == "4"


def test_new_upload_is_listed_first(client, upload):
    first = upload(filename="a.mp4").json()["video"]
    second = upload(filename="b.mp4").json()["video"]

    ids = [v["id"] for v in client.get("/api/videos").json()]
    assert ids == [second["id"], first["id"]]


def test_title_defaults_to_filename(upload):
    video = upload(filename="my.summer.trip.webm", content_type="video/webm").json()["video"]
    assert video["title"] == "my.summer.trip"
    assert video["description"] == ""


def test_description_is_kept(upload):
    video = upload(description="at the beach").json()["video"]
    assert video["description"] == "at the beach"


def test_range_round_trip(client, upload):
    data = bytes(range(256)) * 2
    vid = upload(data=data).json()["video"]["id"]

    head = client.get(f"/api/video/{vid}", headers={"Range": "bytes=0-99"})
    assert head.status_code == 206
    assert head.content == data[:100]
    assert head.headers["content-range"] == f"bytes 0-99/{len(data)}"

    tail = client.get(f"/api/video/{vid}", headers={"Range": "bytes=100-"})
    assert tail.status_code == 206
    assert tail.content == data[100:]
    assert tail.headers["content-range"] == f"bytes 100-{len(data) - 1}/{len(data)}"


def test_unsatisfiable_range(client, upload):
    vid = upload().json()["video"]["id"]

    resp = client.get(f"/api/video/{vid}", headers={"Range": "bytes=50-"})
    assert resp.status_code == 416
    assert resp.headers["content-range"] == "bytes */10"
    assert "error" in resp.json()

    resp = client.get(f"/api/video/{vid}", headers={"Range": "bytes=oops"})
    assert resp.status_code == 416


def test_head_video(client, upload):
    vid = upload().json()["video"]["id"]
    resp = client.head(f"/api/video/{vid}")
    assert resp.status_code == 200
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.headers["content-length"] == "10"
    assert resp.headers["content-type"] == "video/mp4"

    assert client.head("/api/video/missing").status_code == 404


def test_video_info_increments_views(client, upload):
    vid = upload().json()["video"]["id"]

    assert client.get(f"/api/video-info/{vid}").json()["views"] == 1
    assert client.get(f"/api/video-info/{vid}").json()["views"] == 2

    # listing and streaming are not views
    client.get("/api/videos")
    client.get(f"/api/video/{vid}")
    assert client.get("/api/videos").json()[0]["views"] == 2


def test_unknown_id_is_not_found(client):
    for method, path in [
        ("GET", "/api/video/missing"),
        ("GET", "/api/video-info/missing"),
        ("DELETE", "/api/video/missing"),
    ]:
        resp = client.request(method, path)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Video not found"}


def test_delete_removes_record_and_blob(client, store, upload):
    vid = upload().json()["video"]["id"]

    resp = client.delete(f"/api/video/{vid}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Video deleted successfully"}

    assert store.get(vid) is None
    assert store.get_blob(vid) is None
    assert client.get("/api/videos").json() == []
    assert client.get(f"/api/video/{vid}").status_code == 404


def test_missing_blob_is_not_found(client, store, upload):
    vid = upload().json()["video"]["id"]
    store.blobs.delete(vid)

    resp = client.get(f"/api/video/{vid}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Video file not found"}


def test_upload_rejects_non_video(client, store, upload):
    resp = upload(data=b"hello", filename="notes.txt", content_type="text/plain")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Only video files are allowed"}
    assert store.count() == 0


def test_upload_without_file(client, store):
    resp = client.post("/api/upload", data={"title": "nothing"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}
    assert store.count() == 0


def test_upload_too_large(client, store, settings, upload):
    resp = upload(data=b"x" * (settings.max_upload_bytes + 1))
    assert resp.status_code == 413
    assert "error" in resp.json()
    assert store.count() == 0
    assert len(store.blobs) == 0


def test_upload_at_limit_is_accepted(upload, settings):
    resp = upload(data=b"x" * settings.max_upload_bytes)
    assert resp.status_code == 200
    assert resp.json()["video"]["size"] == settings.max_upload_bytes


def test_upload_rejected_by_content_length(client, store, settings):
    resp = client.post(
        "/api/upload",
        content=b"x" * 16,
        headers={
            "Content-Type": "multipart/form-data; boundary=xyz",
            "Content-Length": str(settings.max_upload_bytes * 2),
        },
    )
    assert resp.status_code == 413
    assert store.count() == 0


def test_list_search(client, upload):
    upload(filename="a.mp4", title="Cat video", description="funny")
    upload(filename="b.mp4", title="Dog", description="also a cat")
    upload(filename="c.mp4", title="Bird")

    titles = [v["title"] for v in client.get("/api/videos", params={"q": "CAT"}).json()]
    assert titles == ["Dog", "Cat video"]
    assert len(client.get("/api/videos", params={"q": " "}).json()) == 3


def test_health(client, upload):
    upload()
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["videos"] == 1
    assert "timestamp" in body


def test_cors_preflight(client):
    resp = client.options(
        "/api/upload",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]


BOUNDARY = "videoshareboundary"


def multipart_body(data, filename="clip.mp4", content_type="video/mp4"):
    head = (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="video"; filename="{filename}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode()
    return head + data + f"\r\n--{BOUNDARY}--\r\n".encode()


def in_chunks(body, size=64 * 1024):
    for i in range(0, len(body), size):
        yield body[i:i + size]


def post_chunked(client, body):
    return client.post(
        "/api/upload",
        content=in_chunks(body),
        headers={"Content-Type": f"multipart/form-data; boundary={BOUNDARY}"},
    )


def test_chunked_upload_over_limit_is_cut_off(client, store, settings, monkeypatch):
    reads = []

    async def spy_read_upload(file, **kwargs):
        reads.append(file.filename)
        raise AssertionError("upload body should not reach the handler")

    monkeypatch.setattr("api.routes.videos.read_upload", spy_read_upload)

    resp = post_chunked(client, multipart_body(b"x" * (settings.max_upload_bytes * 3)))
    assert resp.status_code == 413
    assert "error" in resp.json()
    assert reads == []
    assert store.count() == 0
    assert len(store.blobs) == 0


def test_chunked_upload_under_limit_is_accepted(client, store):
    resp = post_chunked(client, multipart_body(b"0123456789", filename="small.mp4"))
    assert resp.status_code == 200
    assert resp.json()["video"]["title"] == "small"
    assert store.count() == 1


def test_upload_with_text_field_instead_of_file(client, store):
    resp = client.post("/api/upload", data={"video": "not-a-file"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}
    assert store.count() == 0


def test_upload_adds_to_store_off_the_event_loop(settings):
    class LoopCheckingStore(VideoStore):
        on_loop = None

        def add(self, record, data):
            try:
                asyncio.get_running_loop()
                self.on_loop = True
            except RuntimeError:
                self.on_loop = False
            return super().add(record, data)

    store = LoopCheckingStore()
    client = TestClient(create_app(settings=settings, store=store))
    files = {"video": ("clip.mp4", b"0123456789", "video/mp4")}

    assert client.post("/api/upload", files=files).status_code == 200
    assert store.on_loop is False
    assert store.count() == 1
