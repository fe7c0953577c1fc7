from fastapi import APIRouter, Depends

from auth import get_current_user, get_db
from database import serialize
from models import ReviewCreate, ReviewUpdate
from services.reviews import ReviewService

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


@router.post("/mechanic/{mechanicId}", status_code=201)
def create_review(mechanicId: str, body: ReviewCreate, user=Depends(get_current_user), db=Depends(get_db)):
    review = ReviewService(db).create_review(user["_id"], mechanicId, body.appointmentId, body.rating, body.review)
    return {"message": "Review created successfully", "review": serialize(review)}


@router.put("/{reviewId}")
def update_review(reviewId: str, body: ReviewUpdate, user=Depends(get_current_user), db=Depends(get_db)):
    review = ReviewService(db).update_review(user["_id"], reviewId, body.rating, body.review)
    return {"message": "Review updated successfully", "review": serialize(review)}


@router.delete("/{reviewId}")
def delete_review(reviewId: str, user=Depends(get_current_user), db=Depends(get_db)):
    ReviewService(db).delete_review(user["_id"], reviewId)
    return {"message": "Review deleted successfully"}


@router.get("/mechanic/{mechanicId}")
def get_mechanic_reviews(mechanicId: str, page: int = 1, limit: int = 10, sort: str = "newest", db=Depends(get_db)):
    result = ReviewService(db).list_mechanic_reviews(mechanicId, page, limit, sort)
    return {"message": "Reviews retrieved successfully", **result}


@router.get("/mechanic/{mechanicId}/stats")
def get_mechanic_review_stats(mechanicId: str, db=Depends(get_db)):
    stats = ReviewService(db).review_stats(mechanicId)
    return {"message": "Review stats retrieved successfully", "stats": stats}
