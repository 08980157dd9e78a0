from pydantic import BaseModel, Field


class AnalysisRequest(BaseModel):
    force_reanalyze: bool = False
    only_failed: bool = False
    prompt_ids: list[int] | None = Field(default=None, max_length=1000)
    session_id: str | None = Field(default=None, max_length=64)


class TaskAcceptedResponse(BaseModel):
    message: str
    task_id: str
