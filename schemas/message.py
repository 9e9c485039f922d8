from typing import Dict, Any, Optional
from pydantic import BaseModel

class SharedContact(BaseModel):
    phone_number: str
    user_id: Optional[str] = None
    first_name: Optional[str] = None

class IncomingMessage(BaseModel):
    platform: str
    external_user_id: str
    chat_id: str
    message_id: Optional[str] = None
    text: str = ""
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    contact: Optional[SharedContact] = None
    raw_payload: Dict[str, Any]

    @property
    def display_name(self) -> Optional[str]:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else None
