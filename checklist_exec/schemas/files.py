from pydantic import BaseModel


class UploadResponse(BaseModel):
    id: str
    key: str
    url: str
