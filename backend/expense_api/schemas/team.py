from pydantic import BaseModel, ConfigDict, Field


class TeamCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    manager_id: str | None = None


class TeamMemberAddRequest(BaseModel):
    user_id: str = Field(min_length=1)


class TeamResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    manager_id: str
    created_at: str
    updated_at: str


class TeamMemberResponse(BaseModel):
    id: str
    team_id: str
    user_id: str
    joined_at: str
