"""User profile as kept by the profile store."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Profile:
    user_id: str
    email: Optional[str]
    full_name: Optional[str]
    tier: str
    plan: Optional[str]
    updated_at: datetime
