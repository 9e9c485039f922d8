from typing import Optional

from pydantic import BaseModel


class AccountBinding(BaseModel):
    user_id: str
    email: str
    phone_number: Optional[str] = None
    username: Optional[str] = None
    messaging_handle: Optional[str] = None
    messaging_username: Optional[str] = None


class NewAccount(BaseModel):
    email: str
    password: str
    phone_number: Optional[str] = None
    username: Optional[str] = None
    messaging_handle: Optional[str] = None
    messaging_username: Optional[str] = None
