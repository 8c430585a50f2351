"""Three-step staged upload of photos to the commerce backend.

1. ``stagedUploadsCreate`` issues a one-time upload target.
2. The bytes are POSTed to that target with its signed parameters.
3. ``fileCreate`` registers the file, then its status is polled until READY.

A staged target is single use, so a failed attempt is never resumed: the
uploader discards it and restarts from step 1.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx

from listing_intake.errors import (
    CommerceAPIError,
    FileProcessingFailed,
    ProtocolTimeout,
    RegistrationError,
    StagedTargetError,
    TransferError,
    UploadError,
)
from listing_intake.logging_config import get_logger
from listing_intake.services.commerce_client import (
    FILE_CREATE,
    FILE_DELETE,
    FILE_STATUS,
    STAGED_UPLOADS_CREATE,
    CommerceClient,
)

logger = get_logger("media_uploader")

SleepFunc = Callable[[float], Awaitable[None]]


class UploadStage(str, Enum):
    PENDING = "pending"
    STAGED = "staged"
    TRANSFERRED = "transferred"
    REGISTERED = "registered"
    READY = "ready"
    FAILED = "failed"


@dataclass
class StagedTarget:
    url: str
    resource_url: str
    parameters: list[tuple[str, str]]


@dataclass
class UploadAttempt:
    filename: str
    mime_type: str
    size: int
    number: int = 1
    stage: UploadStage = UploadStage.PENDING
    target: Optional[StagedTarget] = None
    file_id: Optional[str] = None
    error: Optional[UploadError] = field(default=None, repr=False)

    def advance(self, stage: UploadStage) -> None:
        self.stage = stage

    def fail(self, error: UploadError) -> None:
        self.stage = UploadStage.FAILED
        self.error = error

    def restart(self) -> "UploadAttempt":
        """A fresh attempt from step 1; the old staged target is never reused."""
        return UploadAttempt(
            filename=self.filename,
            mime_type=self.mime_type,
            size=self.size,
            number=self.number + 1,
        )


@dataclass
class PollPolicy:
    max_attempts: int = 10
    initial_delay: float = 1.0
    max_delay: float = 5.0
    factor: float = 1.5

    def delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.factor**attempt), self.max_delay)


class MediaUploader:
    def __init__(
        self,
        client: CommerceClient,
        poll_policy: Optional[PollPolicy] = None,
        max_restarts: int = 2,
        sleep_func: SleepFunc = asyncio.sleep,
    ):
        self.client = client
        self.poll_policy = poll_policy or PollPolicy()
        self.max_restarts = max_restarts
        self.sleep_func = sleep_func

    async def upload(self, data: bytes, filename: str, mime_type: str = "image/jpeg") -> str:
        """Upload ``data`` and return the backend file id once it is READY.

        Step 1-3 failures restart the whole protocol up to ``max_restarts``
        times. An explicit FAILED status or a polling timeout is raised as is.
        """
        attempt = UploadAttempt(filename=filename, mime_type=mime_type, size=len(data))
        while True:
            try:
                return await self._run(attempt, data)
            except (StagedTargetError, TransferError, RegistrationError) as exc:
                attempt.fail(exc)
                if attempt.number > self.max_restarts:
                    logger.error(
                        "Photo upload failed",
                        extra={"context": {"filename": filename, "step": exc.step, "attempts": attempt.number}},
                    )
                    raise
                logger.warning(
                    "Photo upload step failed, restarting from step 1",
                    extra={"context": {"filename": filename, "step": exc.step, "attempt": attempt.number}},
                )
                attempt = attempt.restart()

    async def _run(self, attempt: UploadAttempt, data: bytes) -> str:
        attempt.target = await self.create_staged_upload(attempt.filename, attempt.mime_type, attempt.size)
        attempt.advance(UploadStage.STAGED)

        await self.transfer(attempt.target, data, attempt.filename, attempt.mime_type)
        attempt.advance(UploadStage.TRANSFERRED)

        attempt.file_id, status = await self.register(attempt.target.resource_url, attempt.filename)
        attempt.advance(UploadStage.REGISTERED)

        try:
            if status != "READY":
                await self.wait_until_ready(attempt.file_id, attempt.filename)
        except UploadError as exc:
            attempt.fail(exc)
            raise
        attempt.advance(UploadStage.READY)
        logger.info(
            "Photo upload complete",
            extra={"context": {"filename": attempt.filename, "file_id": attempt.file_id, "attempt": attempt.number}},
        )
        return attempt.file_id

    async def create_staged_upload(self, filename: str, mime_type: str, size: int) -> StagedTarget:
        variables = {
            "input": [
                {
                    "filename": filename,
                    "mimeType": mime_type,
                    "resource": "IMAGE",
                    "fileSize": str(size),
                    "httpMethod": "POST",
                }
            ]
        }
        try:
            data = await self.client.execute(STAGED_UPLOADS_CREATE, variables)
        except CommerceAPIError as exc:
            raise StagedTargetError(str(exc), filename) from exc

        payload = data.get("stagedUploadsCreate") or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise StagedTargetError(f"Staged upload error: {user_errors[0].get('message')}", filename)
        targets = payload.get("stagedTargets") or []
        if not targets or not targets[0].get("url"):
            raise StagedTargetError("Staged upload returned no target", filename)

        target = targets[0]
        return StagedTarget(
            url=target["url"],
            resource_url=target.get("resourceUrl") or "",
            parameters=[(param["name"], param["value"]) for param in target.get("parameters") or []],
        )

    async def transfer(self, target: StagedTarget, data: bytes, filename: str, mime_type: str) -> None:
        """POST the signed parameters in order, then the file as the last field."""
        form = {name: value for name, value in target.parameters}
        try:
            async with self.client.http_client() as http:
                response = await http.post(target.url, data=form, files={"file": (filename, data, mime_type)})
        except httpx.HTTPError as exc:
            raise TransferError(f"Staged transfer failed: {exc}", filename) from exc

        if not response.is_success:
            raise TransferError(
                f"Staged transfer failed: {response.status_code} - {response.text[:200]}",
                filename,
                status_code=response.status_code,
            )

    async def register(self, resource_url: str, filename: str) -> tuple[str, str]:
        variables = {"files": [{"alt": filename, "contentType": "IMAGE", "originalSource": resource_url}]}
        try:
            data = await self.client.execute(FILE_CREATE, variables)
        except CommerceAPIError as exc:
            raise RegistrationError(str(exc), filename) from exc

        payload = data.get("fileCreate") or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise RegistrationError(f"File create error: {user_errors[0].get('message')}", filename)
        files = payload.get("files") or []
        if not files or not files[0].get("id"):
            raise RegistrationError("File create returned no file", filename)
        return files[0]["id"], (files[0].get("fileStatus") or "").upper()

    async def wait_until_ready(self, file_id: str, filename: Optional[str] = None) -> None:
        policy = self.poll_policy
        for attempt in range(policy.max_attempts):
            try:
                data = await self.client.execute(FILE_STATUS, {"id": file_id})
                status = ((data.get("node") or {}).get("fileStatus") or "").upper()
            except CommerceAPIError as exc:
                logger.warning(f"File status poll failed for {file_id}: {exc}")
                status = ""

            if status == "READY":
                return
            if status == "FAILED":
                raise FileProcessingFailed(file_id, filename)

            if attempt + 1 < policy.max_attempts:
                await self.sleep_func(policy.delay(attempt))

        raise ProtocolTimeout(file_id, policy.max_attempts, filename)

    async def delete(self, file_ids: list[str]) -> list[str]:
        """Best-effort removal of uploaded files; failures are only logged."""
        if not file_ids:
            return []
        try:
            data = await self.client.execute(FILE_DELETE, {"fileIds": list(file_ids)})
        except CommerceAPIError as exc:
            logger.warning(
                "File cleanup failed",
                extra={"context": {"file_ids": list(file_ids), "error": str(exc)}},
            )
            return []

        payload = data.get("fileDelete") or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            logger.warning(f"File delete error: {user_errors[0].get('message')}")
        deleted = payload.get("deletedFileIds") or []
        logger.info(f"Deleted {len(deleted)} files")
        return list(deleted)
