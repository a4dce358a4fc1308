"""
AI gateway.

Builds extraction requests (prompt + system instructions + optional image +
generation config) for the backend's AI endpoint and returns the raw text
the model produced.  No retries happen here; retry policy belongs to the
caller.
"""
from __future__ import annotations

import logging
from typing import Optional

from spendsmart.errors import DecodingError, NoContentError
from spendsmart.pipeline.backend import (
    GENERATE_ENDPOINT,
    VALIDATE_RECEIPT_ENDPOINT,
    BackendClient,
)
from spendsmart.pipeline.images import encode_jpeg, to_data_uri
from spendsmart.pipeline.prompts import (
    RECEIPT_SYSTEM_INSTRUCTIONS,
    get_receipt_extraction_prompt,
)
from spendsmart.schemas import GenerationConfig, ReceiptValidation

logger = logging.getLogger(__name__)

JSON_RESPONSE_FORMAT = "application/json"


def receipt_generation_config(
    temperature: float = 1.0,
    top_p: float = 0.95,
    top_k: int = 40,
    max_output_tokens: int = 8192,
) -> GenerationConfig:
    return GenerationConfig(
        temperature=temperature,
        top_p=top_p,
        top_k=top_k,
        max_output_tokens=max_output_tokens,
        response_format=JSON_RESPONSE_FORMAT,
    )


class AIGateway:
    def __init__(
        self,
        backend: BackendClient,
        receipt_config: Optional[GenerationConfig] = None,
        jpeg_quality: int = 80,
    ) -> None:
        self._backend = backend
        self._receipt_config = receipt_config or receipt_generation_config()
        self._jpeg_quality = jpeg_quality

    def build_request(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> dict:
        """Assemble the JSON body for the generate endpoint.

        Optional parts are omitted rather than sent as null.
        """
        body: dict = {"prompt": prompt}
        if system_instruction:
            body["systemInstruction"] = system_instruction
        if config is not None:
            wire = config.to_wire()
            if wire:
                body["config"] = wire
        if image is not None:
            body["image"] = to_data_uri(encode_jpeg(image, self._jpeg_quality))
        return body

    async def generate(
        self,
        prompt: str,
        image: Optional[bytes] = None,
        system_instruction: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        body = self.build_request(prompt, image, system_instruction, config)
        payload = await self._backend.post_json(GENERATE_ENDPOINT, body)

        response = payload.get("response")
        if not isinstance(response, dict):
            raise NoContentError("response envelope missing")
        text = response.get("text")
        if not isinstance(text, str) or not text.strip():
            raise NoContentError("response text missing")
        logger.info("AI response received (%d chars)", len(text))
        return text

    async def extract_receipt(self, image: bytes) -> str:
        """Send a receipt photo with the fixed extraction instructions."""
        logger.info("Requesting receipt extraction (%d bytes)", len(image))
        return await self.generate(
            prompt=get_receipt_extraction_prompt(),
            image=image,
            system_instruction=RECEIPT_SYSTEM_INSTRUCTIONS,
            config=self._receipt_config,
        )

    async def validate_receipt(self, image: bytes) -> ReceiptValidation:
        """Ask the backend whether *image* looks like a receipt at all."""
        body = {"image": to_data_uri(encode_jpeg(image, self._jpeg_quality))}
        payload = await self._backend.post_json(VALIDATE_RECEIPT_ENDPOINT, body)
        try:
            return ReceiptValidation.model_validate(payload)
        except ValueError as exc:
            raise DecodingError("unexpected validate-receipt payload") from exc
