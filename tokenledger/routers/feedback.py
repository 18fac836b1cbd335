from fastapi import APIRouter
from pydantic import BaseModel

from tokenledger.services import feedback as feedback_service

router = APIRouter()


class FeedbackRequest(BaseModel):
    message: str
    email: str | None = None
    name: str | None = None


@router.post("")
async def submit_feedback(body: FeedbackRequest):
    """Public: send a suggestion to the team."""
    await feedback_service.submit_feedback(body.message, email=body.email, name=body.name)
    return {"message": "Thank you for your feedback!"}
