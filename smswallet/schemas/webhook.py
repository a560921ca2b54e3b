"""
Pydantic models for the inbound SMS webhook.
"""
from typing import Optional

from pydantic import BaseModel, Field


class WebhookData(BaseModel):
    """Message fields of an inbound SMS event."""

    content: str = Field(default="", description="SMS message text")
    contact: str = Field(..., description="Sender phone number", min_length=1)


class WebhookPayload(BaseModel):
    """Inbound webhook event."""

    type: str = Field(..., description="Event type, e.g. message.phone.received")
    data: Optional[WebhookData] = None

    model_config = {
        "extra": "ignore",
        "json_schema_extra": {
            "example": {
                "type": "message.phone.received",
                "data": {"content": "SEND 10USDC alice", "contact": "+15551234567"},
            }
        },
    }


class WebhookResult(BaseModel):
    """Webhook response body; always returned with HTTP 200."""

    status: str = Field(..., description="processed, ignored or error")
    command: Optional[str] = Field(default=None, description="Parsed command verb")
    success: bool = Field(default=True, description="Whether the command succeeded")
    reply_sent: bool = Field(default=False, description="Whether the reply SMS was delivered")
    message: Optional[str] = Field(default=None, description="Reply text")
