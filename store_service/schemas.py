from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

# --- Accounts ---
class Credentials(BaseModel):
    email: str
    password: str

class PrincipalOut(BaseModel):
    uid: str
    email: str
    token: Optional[str] = None

# --- Documents ---
class DocumentIn(BaseModel):
    data: Dict[str, Any]

class DocumentOut(BaseModel):
    id: str
    data: Dict[str, Any]

class DocumentPatch(BaseModel):
    set_: Dict[str, Any] = Field(default_factory=dict, alias="set")
    increment: Dict[str, int] = Field(default_factory=dict)

class QueryFilter(BaseModel):
    field: str
    value: Any

class QueryIn(BaseModel):
    filters: List[QueryFilter] = Field(default_factory=list)
    orderBy: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = Field(None, gt=0)

class QueryOut(BaseModel):
    documents: List[DocumentOut]
