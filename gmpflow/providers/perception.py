"""
providers/perception.py - LLM-backed perception provider.
"""

from __future__ import annotations

import logging
from typing import Optional

from gmpflow.core.enums import QualityVerdict
from gmpflow.errors import InvalidRecord, ProviderUnavailable
from gmpflow.llm.exceptions import LLMError
from gmpflow.llm.protocol import ImageInput, LLMOptions, LLMProviderProtocol
from gmpflow.providers.prompts import PERCEPTION_SYSTEM_PROMPT, create_perception_prompt
from gmpflow.providers.protocols import PerceptionResult
from gmpflow.providers.schemas import PerceptionResponse

logger = logging.getLogger(__name__)

IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_media_type(image: bytes, default: str = "image/jpeg") -> str:
    """Media type from the file signature; `default` when unrecognized."""
    for signature, media_type in IMAGE_SIGNATURES:
        if image.startswith(signature):
            return media_type
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return default


class LLMPerceptionProvider:
    """
    Sends one photo to a vision model and maps the answer to a PerceptionResult.

    The media type is read from the image signature; `media_type` is used
    for data without a known signature.
    """

    def __init__(
        self,
        llm: LLMProviderProtocol,
        media_type: str = "image/jpeg",
        name: str = "llm-perception",
        options: Optional[LLMOptions] = None,
    ):
        self.llm = llm
        self.media_type = media_type
        self.name = name
        self.options = options or LLMOptions(temperature=0.0, max_tokens=1024)

    async def analyze(self, image: bytes) -> PerceptionResult:
        if not image:
            raise ProviderUnavailable(self.name, "Empty image")
        try:
            response = await self.llm.complete_json(
                create_perception_prompt(),
                PerceptionResponse,
                system_prompt=PERCEPTION_SYSTEM_PROMPT,
                options=self.options,
                images=[ImageInput(image, sniff_media_type(image, self.media_type))],
            )
        except LLMError as e:
            logger.warning(f"Perception call failed: {e}")
            raise ProviderUnavailable(self.name, str(e)) from e

        try:
            return PerceptionResult(
                material_name=response.material_name,
                detected_form=response.detected_form,
                estimated_moisture_pct=response.estimated_moisture_pct,
                verdict=QualityVerdict(response.quality_check),
                rationale=response.reasoning,
            )
        except InvalidRecord as e:
            raise ProviderUnavailable(self.name, f"Unusable perception result: {e}") from e
