"""HTTP: /api/chat/{concern_id}."""
from pathlib import Path

from concerndesk.core.errors import Conflict


class TestChatApi:
    def test_post_and_list(self, client, auth, create_concern, seeded_users):
        concern = create_concern()
        cid = concern["id"]

        r = client.post(f"/api/chat/{cid}", data={"message": "Any news?"}, headers=auth("student"))
        assert r.status_code == 201, r.text
        msg = r.json()["data"]
        assert msg["message"] == "Any news?"
        assert msg["sender"]["id"] == seeded_users["student"]["id"]
        assert msg["is_read"] is False

        client.post(f"/api/chat/{cid}", data={"message": "Checking now"}, headers=auth("admin"))

        r = client.get(f"/api/chat/{cid}", headers=auth("admin"))
        body = r.json()
        assert body["count"] == 2
        assert [m["message"] for m in body["data"]] == ["Any news?", "Checking now"]

    def test_chat_attachments_limit(self, client, auth, create_concern):
        concern = create_concern()
        files = [("attachments", (f"p{i}.jpg", b"img", "image/jpeg")) for i in range(4)]
        r = client.post(
            f"/api/chat/{concern['id']}",
            data={"message": "photos"},
            files=files,
            headers=auth("student"),
        )
        assert r.status_code == 400

        r = client.post(
            f"/api/chat/{concern['id']}",
            data={"message": "photos"},
            files=files[:3],
            headers=auth("student"),
        )
        assert r.status_code == 201
        assert len(r.json()["data"]["attachments"]) == 3

    def test_empty_message_is_400(self, client, auth, create_concern):
        concern = create_concern()
        r = client.post(f"/api/chat/{concern['id']}", data={"message": "   "}, headers=auth("student"))
        assert r.status_code == 400

    def test_outsider_is_403(self, client, auth, create_concern):
        concern = create_concern()
        assert client.get(f"/api/chat/{concern['id']}", headers=auth("other_student")).status_code == 403
        r = client.post(f"/api/chat/{concern['id']}", data={"message": "hi"}, headers=auth("mentor"))
        assert r.status_code == 403

    def test_missing_concern_is_404(self, client, auth):
        assert client.get("/api/chat/777", headers=auth("admin")).status_code == 404

    def test_mark_read(self, client, auth, create_concern):
        concern = create_concern()
        cid = concern["id"]
        client.post(f"/api/chat/{cid}", data={"message": "one"}, headers=auth("admin"))
        client.post(f"/api/chat/{cid}", data={"message": "two"}, headers=auth("admin"))

        r = client.put(f"/api/chat/{cid}/read", headers=auth("student"))
        assert r.status_code == 200
        assert r.json()["data"] == {"updated": 2}

        again = client.put(f"/api/chat/{cid}/read", headers=auth("student"))
        assert again.json()["data"] == {"updated": 0}

        rows = client.get(f"/api/chat/{cid}", headers=auth("student")).json()["data"]
        assert all(m["is_read"] for m in rows)
        assert all(m["read_at"] for m in rows)


class TestChatUploadCleanup:
    @staticmethod
    def stored(settings) -> set:
        target = Path(settings.upload_dir)
        return {p.name for p in target.iterdir()} if target.exists() else set()

    def test_blank_message_with_attachment_leaves_no_files(self, client, auth, create_concern, settings):
        concern = create_concern()
        r = client.post(
            f"/api/chat/{concern['id']}",
            data={"message": "   "},
            files=[("attachments", ("photo.jpg", b"img", "image/jpeg"))],
            headers=auth("student"),
        )
        assert r.status_code == 400
        assert r.json()["message"] == "Message is required"
        assert self.stored(settings) == set()

    def test_failed_append_removes_files(self, app, client, auth, create_concern, settings, monkeypatch):
        concern = create_concern()

        async def _conflict(*args, **kwargs):
            raise Conflict("Duplicate or conflicting record")

        monkeypatch.setattr(app.state.chat, "append", _conflict)
        r = client.post(
            f"/api/chat/{concern['id']}",
            data={"message": "photos"},
            files=[("attachments", ("photo.jpg", b"img", "image/jpeg"))],
            headers=auth("student"),
        )
        assert r.status_code == 409
        assert self.stored(settings) == set()
