from typing import Generic, TypeVar, Optional
from pydantic import BaseModel, ConfigDict

T = TypeVar("T")

class ResponseBase(BaseModel, Generic[T]):
    data: Optional[T] = None
    message: Optional[str] = None
    success: bool = True

class StandardResponse(ResponseBase[T]):
    pass

class FunctionResponse(BaseModel):
    """Flat envelope returned by the account functions."""
    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str
