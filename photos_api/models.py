from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class PhotoCreate(BaseModel):
    title: str
    description: Optional[str] = None
    tags: List[str] = []
    year: Optional[int] = None
    month: Optional[int] = None
    meeting_id: Optional[str] = None
    is_private: bool = False


class Photo(BaseModel):
    id: str
    url: str
    thumbnail: str
    title: str
    description: Optional[str] = None
    tags: List[str] = []
    year: Optional[int] = None
    month: Optional[int] = None
    meeting_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    is_published: bool = False
    is_private: bool = False
    created_at: str


class PhotoPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    results: List[Photo] = []
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")
    total_results: int = Field(alias="totalResults")
