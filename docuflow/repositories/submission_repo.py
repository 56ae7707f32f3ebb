"""Submission Repository - Authoritative store for form submissions

Every write is a single version-checked compare-and-swap. The engine never
writes a submission any other way.
"""
import re
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from datetime import datetime
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from pydantic import BaseModel, ConfigDict, Field

from .mongo_client import get_collection, SUBMISSIONS_COLLECTION
from ..domain.models import Submission, WorkflowStep
from ..domain.enums import SubmissionStatus, WorkflowAction
from ..domain.errors import (
    SubmissionNotFoundError, ConcurrentModificationError, RepositoryUnavailableError,
    InvalidTransitionError, ConflictError, ValidationError
)
from ..utils.logger import get_logger
from ..utils.time import utc_now, ensure_utc

logger = get_logger(__name__)

# Fields the draft editing flow may change
EDITABLE_DRAFT_FIELDS = frozenset({"title", "field_data", "priority", "tags", "notes"})

SORTABLE_FIELDS = ("updated_at", "created_at", "title", "status")


class SubmissionQuery(BaseModel):
    """Filters shared by every repository implementation"""
    model_config = ConfigDict(extra="forbid")

    department: Optional[str] = None
    submitted_by: Optional[str] = None
    exclude_submitted_by: Optional[str] = None
    statuses: List[SubmissionStatus] = Field(default_factory=list)
    template_id: Optional[str] = None
    search: Optional[str] = None
    submitted_from: Optional[datetime] = None
    submitted_to: Optional[datetime] = None
    sort_by: str = "updated_at"
    sort_order: str = "desc"
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=500)

    @property
    def effective_sort_by(self) -> str:
        return self.sort_by if self.sort_by in SORTABLE_FIELDS else "updated_at"

    def to_mongo(self) -> Dict[str, Any]:
        """Build the MongoDB filter document"""
        conditions: List[Dict[str, Any]] = []
        if self.department:
            conditions.append({"department": self.department})
        if self.submitted_by:
            conditions.append({"submitted_by": self.submitted_by})
        if self.exclude_submitted_by:
            conditions.append({"submitted_by": {"$ne": self.exclude_submitted_by}})
        if self.statuses:
            conditions.append({"status": {"$in": [s.value for s in self.statuses]}})
        if self.template_id:
            conditions.append({"template_id": self.template_id})
        if self.search:
            # Literal text, same as matches()
            pattern = re.escape(self.search)
            conditions.append({"$or": [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"submission_id": {"$regex": pattern, "$options": "i"}},
            ]})
        if self.submitted_from or self.submitted_to:
            window: Dict[str, Any] = {}
            if self.submitted_from:
                window["$gte"] = self.submitted_from
            if self.submitted_to:
                window["$lte"] = self.submitted_to
            conditions.append({"submitted_at": window})

        if not conditions:
            return {}
        if len(conditions) == 1:
            return conditions[0]
        return {"$and": conditions}

    def matches(self, submission: Submission) -> bool:
        """In-process equivalent of to_mongo()"""
        if self.department and submission.department != self.department:
            return False
        if self.submitted_by and submission.submitted_by != self.submitted_by:
            return False
        if self.exclude_submitted_by and submission.submitted_by == self.exclude_submitted_by:
            return False
        if self.statuses and submission.status not in self.statuses:
            return False
        if self.template_id and submission.template_id != self.template_id:
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in submission.title.lower() and needle not in submission.submission_id.lower():
                return False
        if self.submitted_from or self.submitted_to:
            # Drafts have no submitted_at and never match a date window
            if submission.submitted_at is None:
                return False
            submitted_at = ensure_utc(submission.submitted_at)
            if self.submitted_from and submitted_at < self.submitted_from:
                return False
            if self.submitted_to and submitted_at > self.submitted_to:
                return False
        return True


@runtime_checkable
class SubmissionRepository(Protocol):
    """
    Contract for submission storage.

    All implementations must make commit() and update_draft() atomic
    compare-and-swap operations on (submission_id, version).
    """

    def load(self, submission_id: str) -> Submission:
        """
        Load a submission.

        Raises:
            SubmissionNotFoundError: If no submission has this id
        """
        ...

    def commit(
        self,
        submission_id: str,
        expected_version: int,
        new_status: SubmissionStatus,
        new_step: WorkflowStep
    ) -> Submission:
        """
        Append a step and set the new status if the version still matches.

        Raises:
            ConcurrentModificationError: If the stored version differs
            SubmissionNotFoundError: If the submission vanished
            RepositoryUnavailableError: On storage failure
        """
        ...

    def create(self, submission: Submission) -> Submission:
        ...

    def update_draft(
        self,
        submission_id: str,
        expected_version: int,
        updates: Dict[str, Any]
    ) -> Submission:
        ...

    def list_submissions(self, query: SubmissionQuery) -> List[Submission]:
        ...

    def count_submissions(self, query: SubmissionQuery) -> int:
        ...


def build_commit_fields(
    new_status: SubmissionStatus,
    new_step: WorkflowStep,
    now: datetime
) -> Dict[str, Any]:
    """Scalar fields written together with a committed step"""
    fields: Dict[str, Any] = {"status": new_status.value, "updated_at": now}
    if new_step.action == WorkflowAction.SUBMIT:
        fields["submitted_at"] = now
    if new_status.is_terminal:
        fields["completed_at"] = now
    return fields


def check_draft_updates(updates: Dict[str, Any]) -> None:
    """Reject draft edits touching fields outside the editable set"""
    illegal = set(updates) - EDITABLE_DRAFT_FIELDS
    if illegal:
        raise ValidationError(
            "Only draft content can be edited",
            details={"fields": sorted(illegal)}
        )


class MongoSubmissionRepository:
    """MongoDB implementation of SubmissionRepository"""

    def __init__(self, collection: Optional[Collection] = None):
        self._submissions: Collection = (
            collection if collection is not None else get_collection(SUBMISSIONS_COLLECTION)
        )

    def load(self, submission_id: str) -> Submission:
        try:
            doc = self._submissions.find_one({"submission_id": submission_id})
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to load submission: {e}")

        if not doc:
            raise SubmissionNotFoundError(
                f"Submission {submission_id} not found",
                details={"submission_id": submission_id}
            )
        doc.pop("_id", None)
        return Submission.model_validate(doc)

    def commit(
        self,
        submission_id: str,
        expected_version: int,
        new_status: SubmissionStatus,
        new_step: WorkflowStep
    ) -> Submission:
        now = utc_now()
        update = {
            "$set": build_commit_fields(new_status, new_step, now),
            "$push": {"workflow_history": new_step.model_dump()},
            "$inc": {"version": 1},
        }

        try:
            result = self._submissions.find_one_and_update(
                {"submission_id": submission_id, "version": expected_version},
                update,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(
                f"Commit failed for submission {submission_id}: {e}",
                extra={"submission_id": submission_id, "version": expected_version}
            )
            raise RepositoryUnavailableError(f"Failed to commit submission: {e}")

        if result is None:
            self._raise_missed_write(submission_id, expected_version)

        result.pop("_id", None)
        logger.info(
            f"Committed submission {submission_id}: {new_status.value}",
            extra={
                "submission_id": submission_id,
                "status": new_status.value,
                "version": expected_version + 1,
            }
        )
        return Submission.model_validate(result)

    def create(self, submission: Submission) -> Submission:
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = submission.model_dump()
        doc["_id"] = submission.submission_id

        try:
            self._submissions.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(
                f"Submission {submission.submission_id} already exists",
                details={"submission_id": submission.submission_id}
            )
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to create submission: {e}")

        logger.info(
            f"Created submission: {submission.submission_id}",
            extra={"submission_id": submission.submission_id, "department": submission.department}
        )
        return submission

    def update_draft(
        self,
        submission_id: str,
        expected_version: int,
        updates: Dict[str, Any]
    ) -> Submission:
        check_draft_updates(updates)
        fields = dict(updates)
        fields["updated_at"] = utc_now()

        try:
            result = self._submissions.find_one_and_update(
                {
                    "submission_id": submission_id,
                    "version": expected_version,
                    "status": SubmissionStatus.DRAFT.value,
                },
                {"$set": fields, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to update submission: {e}")

        if result is None:
            self._raise_missed_write(submission_id, expected_version, draft_only=True)

        result.pop("_id", None)
        logger.info(f"Updated draft: {submission_id}", extra={"submission_id": submission_id})
        return Submission.model_validate(result)

    def list_submissions(self, query: SubmissionQuery) -> List[Submission]:
        sort_direction = DESCENDING if query.sort_order == "desc" else ASCENDING

        try:
            cursor = (
                self._submissions.find(query.to_mongo())
                .sort(query.effective_sort_by, sort_direction)
                .skip(query.skip)
                .limit(query.limit)
            )
            docs = list(cursor)
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to list submissions: {e}")

        submissions = []
        for doc in docs:
            doc.pop("_id", None)
            submissions.append(Submission.model_validate(doc))
        return submissions

    def count_submissions(self, query: SubmissionQuery) -> int:
        try:
            return self._submissions.count_documents(query.to_mongo())
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to count submissions: {e}")

    def _raise_missed_write(
        self,
        submission_id: str,
        expected_version: int,
        draft_only: bool = False
    ) -> None:
        """Work out why a conditional write matched nothing and raise accordingly"""
        try:
            current = self._submissions.find_one(
                {"submission_id": submission_id},
                {"version": 1, "status": 1}
            )
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to load submission: {e}")

        if current is None:
            raise SubmissionNotFoundError(
                f"Submission {submission_id} not found",
                details={"submission_id": submission_id}
            )
        if current.get("version") != expected_version:
            raise ConcurrentModificationError(
                f"Submission {submission_id} was modified. Please refresh and try again.",
                details={
                    "expected_version": expected_version,
                    "current_version": current.get("version"),
                }
            )
        if draft_only:
            raise InvalidTransitionError(
                "Only Draft submissions can be edited",
                details={"current_status": current.get("status")}
            )
        raise ConcurrentModificationError(
            f"Submission {submission_id} was modified. Please refresh and try again.",
            details={"expected_version": expected_version}
        )
