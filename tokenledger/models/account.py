from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class Account(Document):
    """Token holder. ``balance`` only moves through conditional $inc updates."""
    email: Indexed(str, unique=True)  # stored lower-cased
    name: str = ""
    balance: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "accounts"
