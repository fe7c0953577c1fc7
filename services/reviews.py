import logging
from typing import Any, Dict, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, page_count, serialize, to_object_id, utcnow
from enums import AppointmentStatus
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "newest": [("createdAt", DESCENDING)],
    "oldest": [("createdAt", ASCENDING)],
    "highestRating": [("rating", DESCENDING), ("createdAt", DESCENDING)],
    "lowestRating": [("rating", ASCENDING), ("createdAt", DESCENDING)],
}


def validate_rating(rating) -> None:
    if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not 1 <= rating <= 5:
        raise ValidationError(
            "Rating must be between 1 and 5",
            errors=[{"field": "rating", "message": "Rating must be between 1 and 5"}],
        )


def average_rating(ratings) -> float:
    ratings = list(ratings)
    if not ratings:
        return 0
    return round(sum(ratings) / len(ratings), 1)


class ReviewService:
    def __init__(self, db: Database):
        self.db = db
        self.reviews = db["reviews"]

    def create_review(self, client_id, mechanic_id, appointment_id, rating, review: Optional[str] = None):
        validate_rating(rating)
        client_oid = to_object_id(client_id, "clientId")
        mechanic_oid = to_object_id(mechanic_id, "mechanicId")
        appointment_oid = to_object_id(appointment_id, "appointmentId")

        appointment = self.db["appointments"].find_one(
            {
                "_id": appointment_oid,
                "mechanicId": mechanic_oid,
                "clientId": client_oid,
                "status": AppointmentStatus.COMPLETED.value,
            }
        )
        if not appointment:
            raise InvalidStateError("Can only review completed appointments")

        if self.reviews.find_one({"appointmentId": appointment_oid, "clientId": client_oid}):
            raise ConflictError("You have already reviewed this appointment")

        service = self.db["services"].find_one({"_id": appointment.get("serviceId")}, {"name": 1})
        try:
            created = create_document(
                self.db,
                "reviews",
                {
                    "mechanicId": mechanic_oid,
                    "clientId": client_oid,
                    "appointmentId": appointment_oid,
                    "rating": rating,
                    "review": review,
                    "verified": True,
                    "serviceReceived": {
                        "serviceId": appointment.get("serviceId"),
                        "serviceName": service.get("name") if service else None,
                    },
                },
            )
        except DuplicateKeyError:
            raise ConflictError("You have already reviewed this appointment")

        self.recompute_mechanic_rating(mechanic_oid)
        logger.info(f"Review {created['_id']} created for mechanic {mechanic_oid}")
        return created

    def _own_review(self, review_id, client_id) -> Dict[str, Any]:
        existing = self.reviews.find_one(
            {"_id": to_object_id(review_id, "reviewId"), "clientId": to_object_id(client_id, "clientId")}
        )
        if not existing:
            raise NotFoundError("Review not found")
        return existing

    def update_review(self, client_id, review_id, rating, review: Optional[str] = None):
        validate_rating(rating)
        existing = self._own_review(review_id, client_id)
        update = {"rating": rating, "review": review, "updatedAt": utcnow()}
        self.reviews.update_one({"_id": existing["_id"]}, {"$set": update})
        existing.update(update)

        self.recompute_mechanic_rating(existing["mechanicId"])
        logger.info(f"Review {existing['_id']} updated")
        return existing

    def delete_review(self, client_id, review_id) -> None:
        existing = self._own_review(review_id, client_id)
        self.reviews.delete_one({"_id": existing["_id"]})

        self.recompute_mechanic_rating(existing["mechanicId"])
        logger.info(f"Review {existing['_id']} deleted")

    def recompute_mechanic_rating(self, mechanic_id) -> Dict[str, Any]:
        """Re-derive the rating summary from every review of the mechanic."""
        mechanic_oid = to_object_id(mechanic_id, "mechanicId")
        ratings = [r["rating"] for r in self.reviews.find({"mechanicId": mechanic_oid}, {"rating": 1})]
        summary = {"averageRating": average_rating(ratings), "totalReviews": len(ratings)}
        try:
            self.db["mechanics"].update_one({"_id": mechanic_oid}, {"$set": summary})
        except Exception as e:
            logger.error(f"Error updating rating of mechanic {mechanic_oid}: {e}")
            raise
        return summary

    def list_mechanic_reviews(self, mechanic_id, page: int = 1, limit: int = 10, sort: str = "newest"):
        mechanic_oid = to_object_id(mechanic_id, "mechanicId")
        page, limit = max(page, 1), max(limit, 1)
        query = {"mechanicId": mechanic_oid}
        cursor = (
            self.reviews.find(query)
            .sort(SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"]))
            .skip((page - 1) * limit)
            .limit(limit)
        )
        reviews = []
        for review in cursor:
            review["client"] = self.db["users"].find_one({"_id": review["clientId"]}, {"firstName": 1, "lastName": 1})
            reviews.append(serialize(review))
        total = self.reviews.count_documents(query)
        return {
            "reviews": reviews,
            "totalPages": page_count(total, limit),
            "currentPage": page,
            "total": total,
        }

    def review_stats(self, mechanic_id) -> Dict[str, Any]:
        ratings = [
            r["rating"] for r in self.reviews.find({"mechanicId": to_object_id(mechanic_id, "mechanicId")}, {"rating": 1})
        ]
        distribution = {str(star): 0 for star in range(5, 0, -1)}
        for rating in ratings:
            key = str(int(round(rating)))
            if key in distribution:
                distribution[key] += 1
        return {
            "totalReviews": len(ratings),
            "averageRating": average_rating(ratings),
            "ratingDistribution": distribution,
        }
