from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator

from prepai.core.state import Difficulty

InterviewCategory = Literal["technical", "behavioral", "communication", "domain_specific"]
TestCategory = Literal["programming", "databases", "algorithms", "networking", "technical"]


class StartInterviewRequest(BaseModel):
    category: InterviewCategory
    difficulty: Difficulty
    question_count: int = Field(default=5, ge=1, le=10)
    time_limit: int | None = Field(default=None, ge=15, le=120)


class StartTestRequest(BaseModel):
    category: TestCategory
    difficulty: Difficulty
    question_count: int = Field(default=5, ge=1, le=10)
    time_limit: int | None = Field(default=None, ge=15, le=120)


class SubmitAnswerRequest(BaseModel):
    question_id: str = Field(min_length=1, max_length=128)
    answer: Union[bool, int, str]
    time_taken: int = Field(default=0, ge=0, le=1800)

    @field_validator("answer")
    @classmethod
    def answer_length(cls, value):
        if isinstance(value, str) and len(value) > 5000:
            raise ValueError("answer must be at most 5000 characters")
        return value


class CompleteSessionRequest(BaseModel):
    reason: Literal["completed", "abandoned", "timeout"] = "completed"

