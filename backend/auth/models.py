from pydantic import BaseModel


class UserResponse(BaseModel):
    id: int
    external_id: str
    email: str | None = None
    name: str | None = None
    has_completed_onboarding: bool

    model_config = {"from_attributes": True}
