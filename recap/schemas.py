# schemas.py

from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class AnalysisResult(BaseModel):
    """
    Text produced by the vision model for one composite.
    """
    source_id: str = Field(..., description="Batch id or image base name the text was produced for")
    text:      str = Field(..., description="Model output")

    model_config = ConfigDict(extra="forbid")

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class GeneratedImage(BaseModel):
    source_id:   str   = Field(..., description="Source the analysis text belonged to")
    prompt:      str   = Field(..., description="Full prompt sent to the image model")
    image_bytes: bytes = Field(..., repr=False, description="Encoded image returned by the model")

    model_config = ConfigDict(extra="forbid")


class WebhookPayload(BaseModel):
    """
    JSON body posted to the delivery webhook.
    """
    content: str           = Field(..., description="Generated post text")
    image:   Optional[str] = Field(None, description="Base64 encoded image, if any")

    model_config = ConfigDict(extra="forbid")


def vision_messages(prompt_text: str, base64_image: str) -> list[dict]:
    """Chat messages for a single-image vision request."""
    return [
        {"role": "system", "content": prompt_text},
        {
            "role": "user",
            "content": [
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"},
                }
            ],
        },
    ]
