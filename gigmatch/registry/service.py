"""Owner-scoped CRUD over saved queries.

Another owner's saved query id behaves exactly like a missing one.
"""

from typing import Any, Dict, List, Mapping, Union

from pydantic import ValidationError

from gigmatch.domain.models import SavedQuery
from gigmatch.logging import get_logger
from gigmatch.persistence import Database, SavedQueryRepository, new_id
from gigmatch.utils.timestamps import utc_now

from .exceptions import InvalidQueryError, SavedQueryNotFoundError
from .models import SavedQueryChanges, SavedQueryDraft

logger = get_logger(__name__, component="registry")


def _validation_messages(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        field_path = " -> ".join(str(loc) for loc in item["loc"])
        messages.append(f"{field_path}: {item['msg']}" if field_path else item["msg"])
    return messages


def _validate(model_cls, data: Any):
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise InvalidQueryError("Invalid saved query", errors=_validation_messages(e)) from e


class SavedQueryRegistry:
    """Create, read, update and deactivate saved queries for their owners."""

    def __init__(self, database: Database):
        self.database = database

    def create(
        self, owner_id: str, draft: Union[SavedQueryDraft, Mapping[str, Any]]
    ) -> SavedQuery:
        """Save a new search for ``owner_id``.

        Raises:
            InvalidQueryError: If the draft fails validation
            StoreUnavailable: If the store cannot be reached
        """
        draft = _validate(SavedQueryDraft, draft)
        saved_query = SavedQuery(
            id=new_id(),
            owner_id=owner_id,
            created_at=utc_now(),
            **draft.model_dump(),
        )

        with self.database.session() as session:
            created = SavedQueryRepository(session).add(saved_query)

        logger.info(
            f"Saved query '{created.name}' created",
            extra={
                "event": "registry.saved_query.created",
                "saved_query_id": created.id,
                "owner_id": owner_id,
                "kind": created.kind.value,
            },
        )
        return created

    def get(self, owner_id: str, saved_query_id: str) -> SavedQuery:
        """Fetch one of the owner's saved queries.

        Raises:
            SavedQueryNotFoundError: If missing or owned by someone else
        """
        with self.database.session() as session:
            saved_query = SavedQueryRepository(session).get_for_owner(owner_id, saved_query_id)
        if saved_query is None:
            raise SavedQueryNotFoundError(saved_query_id)
        return saved_query

    def list(self, owner_id: str, include_inactive: bool = False) -> List[SavedQuery]:
        with self.database.session() as session:
            return SavedQueryRepository(session).list_for_owner(owner_id, include_inactive)

    def update(
        self,
        owner_id: str,
        saved_query_id: str,
        changes: Union[SavedQueryChanges, Mapping[str, Any]],
    ) -> SavedQuery:
        """Apply a partial update. The evaluation cursor cannot be changed here.

        Raises:
            InvalidQueryError: If the changes or the merged result are invalid
            SavedQueryNotFoundError: If missing or owned by someone else
        """
        changes = _validate(SavedQueryChanges, changes)
        updates: Dict[str, Any] = changes.model_dump(exclude_unset=True)

        with self.database.session() as session:
            repo = SavedQueryRepository(session)
            current = repo.get_for_owner(owner_id, saved_query_id)
            if current is None:
                raise SavedQueryNotFoundError(saved_query_id)

            merged = current.model_dump()
            merged.update(updates)
            # Re-check cross-field rules on the merged result
            _validate(SavedQueryDraft, {k: merged[k] for k in SavedQueryDraft.model_fields})
            updated = repo.save(SavedQuery.model_validate(merged))

        logger.info(
            "Saved query updated",
            extra={
                "event": "registry.saved_query.updated",
                "saved_query_id": saved_query_id,
                "fields": ",".join(sorted(updates)),
            },
        )
        return updated

    def deactivate(self, owner_id: str, saved_query_id: str) -> SavedQuery:
        """Stop evaluating a saved query. It stays listed with include_inactive.

        Raises:
            SavedQueryNotFoundError: If missing or owned by someone else
        """
        return self.update(owner_id, saved_query_id, SavedQueryChanges(active=False))
