from pydantic import BaseModel


class NotificationEvent(BaseModel):
    title: str
    description: str = ""
    variant: str = "default"  # "default", "destructive"
    timestamp: float
