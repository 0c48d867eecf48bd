from pydantic import BaseModel
from typing import Dict

class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    timestamp: str
    storage_backend: str
    llm_model: str
    components: Dict[str, bool]
