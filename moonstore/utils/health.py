from pydantic import BaseModel


class StorageHealthModel(BaseModel):
    backend: str
    reachable: bool


class HealthResponseModel(BaseModel):
    version: str
    environment: str
    storage: StorageHealthModel
    memory_usage_mb: str
