from typing import List, Literal, Optional

from pydantic import BaseModel, Field

DeployType = Literal["staging", "production", "rollback"]


class DeployRequest(BaseModel):
    type: DeployType = Field(default="staging", description="Which command table to run")


class CommandOutput(BaseModel):
    command: str
    output: str
    exit_code: Optional[int] = None


class DeployResponse(BaseModel):
    success: bool
    message: str
    output: List[CommandOutput] = Field(default_factory=list)
    timestamp: str


class LastDeployment(BaseModel):
    timestamp: str
    type: str
    status: str


class StatusResponse(BaseModel):
    app_status: str
    database: str
    cache: str
    queue: str
    last_deployment: Optional[LastDeployment] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    version: str
