import asyncio
import json

import httpx
import pytest

from listing_intake.errors import (
    FileProcessingFailed,
    ProtocolTimeout,
    StagedTargetError,
    TransferError,
)
from listing_intake.services.commerce_client import CommerceClient
from listing_intake.services.media_uploader import MediaUploader, PollPolicy, UploadAttempt, UploadStage

UPLOAD_HOST = "uploads.example.com"


class FakeCommerceBackend:
    """Commerce GraphQL endpoint plus the one-time staging host."""

    def __init__(self, statuses=("PROCESSING", "READY"), transfer_codes=(), staged_errors=0, delete_code=200):
        self.statuses = list(statuses)
        self.transfer_codes = list(transfer_codes)
        self.staged_errors = staged_errors
        self.delete_code = delete_code
        self.targets_issued = 0
        self.transfers = []
        self.files_created = []
        self.status_polls = 0
        self.deleted = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == UPLOAD_HOST:
            self.transfers.append((request.url.path, request.content))
            code = self.transfer_codes.pop(0) if self.transfer_codes else 204
            return httpx.Response(code, text="" if code < 400 else "<Error>AccessDenied</Error>")

        body = json.loads(request.content)
        query = body["query"]
        variables = body["variables"]
        if "mutation stagedUploadsCreate" in query:
            if self.staged_errors:
                self.staged_errors -= 1
                return _data({"stagedUploadsCreate": {"stagedTargets": [], "userErrors": [{"message": "bad size"}]}})
            self.targets_issued += 1
            n = self.targets_issued
            target = {
                "url": f"https://{UPLOAD_HOST}/target-{n}",
                "resourceUrl": f"https://{UPLOAD_HOST}/resource-{n}",
                "parameters": [
                    {"name": "key", "value": f"tmp/{n}/photo.jpg"},
                    {"name": "policy", "value": "signed-policy"},
                    {"name": "x-goog-signature", "value": "sig"},
                ],
            }
            return _data({"stagedUploadsCreate": {"stagedTargets": [target], "userErrors": []}})
        if "mutation fileCreate" in query:
            source = variables["files"][0]["originalSource"]
            self.files_created.append(source)
            file_id = f"gid://shopify/MediaImage/{len(self.files_created)}"
            status = "READY" if self.statuses == ["READY"] else "UPLOADED"
            return _data({"fileCreate": {"files": [{"id": file_id, "fileStatus": status}], "userErrors": []}})
        if "query fileStatus" in query:
            self.status_polls += 1
            status = self.statuses.pop(0) if self.statuses else "PROCESSING"
            return _data({"node": {"id": variables["id"], "fileStatus": status}})
        if "mutation fileDelete" in query:
            if self.delete_code >= 400:
                return httpx.Response(self.delete_code, text="boom")
            self.deleted.extend(variables["fileIds"])
            return _data({"fileDelete": {"deletedFileIds": variables["fileIds"], "userErrors": []}})
        return httpx.Response(400, json={"errors": [{"message": "unknown query"}]})


def _data(payload):
    return httpx.Response(200, json={"data": payload})


def _uploader(backend, max_restarts=2):
    sleeps = []

    async def record_sleep(seconds):
        sleeps.append(seconds)

    client = CommerceClient("test-shop.myshopify.com", "shpat_test", transport=httpx.MockTransport(backend))
    uploader = MediaUploader(client, PollPolicy(), max_restarts=max_restarts, sleep_func=record_sleep)
    return uploader, sleeps


class TestUpload:
    def test_three_steps_then_ready(self):
        backend = FakeCommerceBackend(statuses=("PROCESSING", "READY"))
        uploader, sleeps = _uploader(backend)

        file_id = asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert file_id == "gid://shopify/MediaImage/1"
        assert backend.targets_issued == 1
        assert backend.files_created == [f"https://{UPLOAD_HOST}/resource-1"]
        assert sleeps == [1.0]

    def test_transfer_sends_signed_params_in_order_and_file_last(self):
        backend = FakeCommerceBackend(statuses=("READY",))
        uploader, _ = _uploader(backend)

        asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        path, content = backend.transfers[0]
        assert path == "/target-1"
        positions = [
            content.index(b'name="key"'),
            content.index(b'name="policy"'),
            content.index(b'name="x-goog-signature"'),
            content.index(b'name="file"'),
        ]
        assert positions == sorted(positions)
        assert b"jpeg-bytes" in content

    def test_ready_on_registration_skips_polling(self):
        backend = FakeCommerceBackend(statuses=("READY",))
        uploader, sleeps = _uploader(backend)

        asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert backend.status_polls == 0
        assert sleeps == []


class TestRestart:
    def test_transfer_failure_restarts_with_fresh_target(self):
        backend = FakeCommerceBackend(statuses=("READY",), transfer_codes=[403])
        uploader, _ = _uploader(backend)

        file_id = asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert backend.targets_issued == 2
        assert [path for path, _ in backend.transfers] == ["/target-1", "/target-2"]
        # The failed target never reached registration.
        assert backend.files_created == [f"https://{UPLOAD_HOST}/resource-2"]
        assert file_id == "gid://shopify/MediaImage/1"

    def test_gives_up_after_max_restarts(self):
        backend = FakeCommerceBackend(transfer_codes=[500, 500, 500])
        uploader, _ = _uploader(backend, max_restarts=2)

        with pytest.raises(TransferError) as exc_info:
            asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.step == "transfer"
        assert backend.targets_issued == 3
        assert backend.files_created == []

    def test_staged_user_errors_are_step_one_failures(self):
        backend = FakeCommerceBackend(staged_errors=5)
        uploader, _ = _uploader(backend, max_restarts=1)

        with pytest.raises(StagedTargetError):
            asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))
        assert backend.transfers == []

    def test_attempt_restart_drops_target(self):
        attempt = UploadAttempt(filename="wa_1.jpg", mime_type="image/jpeg", size=10, stage=UploadStage.TRANSFERRED)
        fresh = attempt.restart()
        assert fresh.number == 2
        assert fresh.stage == UploadStage.PENDING
        assert fresh.target is None


class TestPolling:
    def test_explicit_failure_is_not_retried(self):
        backend = FakeCommerceBackend(statuses=("PROCESSING", "FAILED"))
        uploader, _ = _uploader(backend)

        with pytest.raises(FileProcessingFailed) as exc_info:
            asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert exc_info.value.file_id == "gid://shopify/MediaImage/1"
        assert backend.targets_issued == 1

    def test_timeout_after_bounded_backoff(self):
        backend = FakeCommerceBackend(statuses=())
        uploader, sleeps = _uploader(backend)

        with pytest.raises(ProtocolTimeout) as exc_info:
            asyncio.run(uploader.upload(b"jpeg-bytes", "wa_1.jpg"))

        assert exc_info.value.attempts == 10
        assert backend.status_polls == 10
        assert sleeps[:4] == [1.0, 1.5, 2.25, 3.375]
        assert max(sleeps) == 5.0
        assert len(sleeps) == 9
        assert backend.targets_issued == 1


class TestDelete:
    def test_delete_returns_removed_ids(self):
        backend = FakeCommerceBackend()
        uploader, _ = _uploader(backend)

        deleted = asyncio.run(uploader.delete(["gid://shopify/MediaImage/1", "gid://shopify/MediaImage/2"]))

        assert deleted == ["gid://shopify/MediaImage/1", "gid://shopify/MediaImage/2"]

    def test_delete_is_best_effort(self):
        backend = FakeCommerceBackend(delete_code=500)
        uploader, _ = _uploader(backend)

        assert asyncio.run(uploader.delete(["gid://shopify/MediaImage/1"])) == []

    def test_delete_nothing(self):
        uploader, _ = _uploader(FakeCommerceBackend())
        assert asyncio.run(uploader.delete([])) == []
