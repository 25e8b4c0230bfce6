import pytest

from console.errors import NotFoundError, ServiceError, ValidationError
from console.management import DisplayManager, storage_path_for, validate_new_user


class FakeClient:
    def __init__(self):
        self.calls = []
        self.rpc_result = True
        self.rpc_error = None
        self.storage_error = None

    def rpc(self, fn, params=None):
        self.calls.append(("rpc", fn, params))
        if self.rpc_error:
            raise self.rpc_error
        return self.rpc_result

    def storage_upload(self, bucket, path, content, content_type="application/octet-stream"):
        self.calls.append(("upload", bucket, path, content_type))

    def storage_remove(self, bucket, paths):
        self.calls.append(("remove", bucket, list(paths)))
        if self.storage_error:
            raise self.storage_error

    def insert(self, table, rows):
        self.calls.append(("insert", table, rows))
        return rows

    def delete(self, table, *, filters):
        self.calls.append(("delete", table, list(filters)))


class FakeQueries:
    def __init__(self, paths):
        self.paths = paths

    def video_paths_for(self, user):
        return list(self.paths)


def _manager(paths=()):
    client = FakeClient()
    return DisplayManager(client, FakeQueries(paths), bucket="ads-videos"), client


@pytest.mark.parametrize(
    "username,password,message",
    [
        ("", "pw", "Please enter both username and password"),
        ("kiosk-1", "", "Please enter both username and password"),
        ("kiosk 1", "pw", "Username can only contain letters, numbers, underscore, and hyphen"),
        ("kiosk.1", "pw", "Username can only contain letters, numbers, underscore, and hyphen"),
        ("admin", "pw", 'Cannot create user with username "admin"'),
    ],
)
def test_validate_new_user_rejects(username, password, message):
    with pytest.raises(ValidationError) as exc:
        validate_new_user(username, password)
    assert str(exc.value) == message


def test_validate_new_user_trims():
    assert validate_new_user("  Kiosk_2-b ", "pw") == "Kiosk_2-b"


def test_storage_path_for():
    assert storage_path_for("kiosk-1", "ad.mp4", now_ms=1760680000000) == "kiosk-1/1760680000000-ad.mp4"


def test_create_user_calls_rpc():
    manager, client = _manager()
    assert manager.create_display_user("kiosk-1", "secret") == "kiosk-1"
    assert client.calls == [("rpc", "create_display_user", {"un": "kiosk-1", "pwd": "secret"})]


def test_create_user_duplicate_is_a_validation_error():
    manager, client = _manager()
    client.rpc_error = ServiceError("Upstream error (409): duplicate key value violates unique constraint", 409)
    with pytest.raises(ValidationError) as exc:
        manager.create_display_user("kiosk-1", "secret")
    assert str(exc.value) == "Username already exists. Please choose a different username."


def test_create_user_other_errors_propagate():
    manager, client = _manager()
    client.rpc_error = ServiceError("Upstream error (500): boom", 500)
    with pytest.raises(ServiceError) as exc:
        manager.create_display_user("kiosk-1", "secret")
    assert not isinstance(exc.value, ValidationError)


def test_delete_user_removes_stored_videos():
    manager, client = _manager(paths=["kiosk-1/1-a.mp4", "kiosk-1/2-b.mp4"])
    assert manager.delete_display_user("kiosk-1") == 2
    assert client.calls == [
        ("rpc", "delete_display_user", {"un": "kiosk-1"}),
        ("remove", "ads-videos", ["kiosk-1/1-a.mp4", "kiosk-1/2-b.mp4"]),
    ]


def test_delete_user_without_videos_skips_storage():
    manager, client = _manager()
    assert manager.delete_display_user("kiosk-1") == 0
    assert [c[0] for c in client.calls] == ["rpc"]


def test_delete_missing_user():
    manager, client = _manager(paths=["kiosk-1/1-a.mp4"])
    client.rpc_result = False
    with pytest.raises(NotFoundError):
        manager.delete_display_user("kiosk-1")
    assert [c[0] for c in client.calls] == ["rpc"]


def test_upload_video_stores_object_then_row():
    manager, client = _manager()
    record = manager.upload_video("kiosk-1", "ad.mp4", b"\x00\x01", uploaded_by="ops", content_type="video/mp4")
    assert record["display_user"] == "kiosk-1"
    assert record["uploaded_by"] == "ops"
    assert record["storage_path"].startswith("kiosk-1/")
    assert record["storage_path"].endswith("-ad.mp4")

    kinds = [c[0] for c in client.calls]
    assert kinds == ["upload", "insert"]
    assert client.calls[0][1:] == ("ads-videos", record["storage_path"], "video/mp4")
    assert client.calls[1] == ("insert", "videos", [record])


def test_upload_video_validation():
    manager, client = _manager()
    with pytest.raises(ValidationError) as exc:
        manager.upload_video("", "ad.mp4", b"x")
    assert str(exc.value) == "Please select a display user"
    with pytest.raises(ValidationError) as exc:
        manager.upload_video("kiosk-1", "ad.mp4", b"")
    assert str(exc.value) == "Please select a video file"
    assert client.calls == []


def test_delete_video_removes_row_even_if_storage_fails():
    manager, client = _manager()
    client.storage_error = ServiceError("Upstream error (404): not found", 404)
    manager.delete_video(7, "kiosk-1/1-a.mp4")
    assert client.calls[-1] == ("delete", "videos", [("eq", "id", 7)])


def test_delete_video_without_storage_path():
    manager, client = _manager()
    manager.delete_video(7, None)
    assert client.calls == [("delete", "videos", [("eq", "id", 7)])]
