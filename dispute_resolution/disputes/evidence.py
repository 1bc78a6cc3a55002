"""Validation of evidence references supplied when filing."""

from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from dispute_resolution.disputes.state_machine import replace
from dispute_resolution.errors import ConflictError, ValidationError
from dispute_resolution.models.dispute import Dispute, EvidenceFile

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "webm"})


class EvidenceAttacher:
    """Records already-uploaded evidence on a dispute being filed."""

    def __init__(self, max_images: int = 5):
        self.max_images = max_images

    def attach(
        self,
        dispute: Dispute,
        images: list[Any] | None = None,
        video: Any | None = None,
    ) -> Dispute:
        """Validate evidence and return the draft dispute with it attached.

        Raises:
            ConflictError: If the dispute has already been persisted
            ValidationError: For too many images or a malformed entry
        """
        if dispute.version != 0:
            raise ConflictError("Evidence can only be attached when filing a dispute")
        checked_images, checked_video = self.validate(images, video)
        return replace(dispute, evidence_images=checked_images, evidence_video=checked_video)

    def validate(
        self,
        images: list[Any] | None = None,
        video: Any | None = None,
    ) -> tuple[list[EvidenceFile], EvidenceFile | None]:
        images = list(images or [])
        if len(images) > self.max_images:
            raise ValidationError(f"Maximum {self.max_images} images allowed per dispute")

        checked_images = [
            self._check(entry, IMAGE_EXTENSIONS, f"Evidence image {index}")
            for index, entry in enumerate(images, start=1)
        ]
        checked_video = (
            self._check(video, VIDEO_EXTENSIONS, "Evidence video") if video is not None else None
        )
        return checked_images, checked_video

    def _check(self, entry: Any, extensions: frozenset[str], label: str) -> EvidenceFile:
        if isinstance(entry, EvidenceFile):
            entry = entry.model_dump()
        if not isinstance(entry, dict):
            raise ValidationError(f"{label} must be a {{url, name}} pair")
        try:
            evidence = EvidenceFile.model_validate(entry)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"{label} is malformed ({problems})")

        url = evidence.url.strip()
        name = evidence.name.strip()
        if not url or not name:
            raise ValidationError(f"{label} needs both a url and a name")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"{label} has an invalid url: {url}")

        extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
        if extension not in extensions:
            allowed = ", ".join(sorted(extensions))
            raise ValidationError(f"{label} has an unsupported file type. Allowed: {allowed}")

        return EvidenceFile(url=url, name=name)
