"""
storage.py - Storage collaborator for MoodWise

The pipeline never issues queries itself; it talks to a `Storage` with a small
generic surface:

- insert(kind, record)                               -> record with "id"
- list_by_user(kind, user_id, limit=None)            -> newest first
- list_by_user_in_range(kind, user_id, start, end)   -> newest first
- get_document / set_document                        -> keyed per-user documents (preferences)
- get_user / create_user                             -> account documents

`FirestoreStorage` keeps every owned record under the user document:

    users/{user_id}                      account fields
    users/{user_id}/mood_entries/{id}
    users/{user_id}/journal_entries/{id}
    users/{user_id}/chat_messages/{id}
    users/{user_id}/settings/preferences

so deleting a user (recursive delete of the user document) removes everything
it owns. Inserts use auto-generated document ids and never overwrite.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import ConflictError

_logger = logging.getLogger(__name__)

FIRESTORE_USERS_COLLECTION = "users"

MOOD_ENTRIES = "mood_entries"
JOURNAL_ENTRIES = "journal_entries"
CHAT_MESSAGES = "chat_messages"
SETTINGS = "settings"

# Ordering field per record kind
TIME_FIELDS = {
    MOOD_ENTRIES: "occurred_at",
    JOURNAL_ENTRIES: "created_at",
    CHAT_MESSAGES: "occurred_at",
}


class Storage:
    """Interface implemented by storage backends."""

    def insert(self, kind: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_by_user(self, kind: str, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def list_by_user_in_range(
        self, kind: str, user_id: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get_document(self, kind: str, user_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set_document(self, kind: str, user_id: str, doc_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def create_user(self, user_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class FirestoreStorage(Storage):
    def __init__(self, client: firestore.Client):
        self.client = client

    def _user_ref(self, user_id: str):
        return self.client.collection(FIRESTORE_USERS_COLLECTION).document(user_id)

    def _collection(self, kind: str, user_id: str):
        return self._user_ref(user_id).collection(kind)

    @staticmethod
    def _with_id(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return data

    def insert(self, kind: str, record: Dict[str, Any]) -> Dict[str, Any]:
        user_id = record.get("user_id")
        if not user_id:
            raise ValueError("record has no user_id")
        data = {k: v for k, v in record.items() if k != "id"}
        # .add() auto-generates a unique doc id, preventing overwrites
        _, doc_ref = self._collection(kind, user_id).add(data)
        _logger.debug("Inserted %s/%s for user %s", kind, doc_ref.id, user_id)
        return {**data, "id": doc_ref.id}

    def list_by_user(self, kind: str, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self._collection(kind, user_id).order_by(TIME_FIELDS[kind], direction=firestore.Query.DESCENDING)
        if limit is not None:
            query = query.limit(limit)
        return [self._with_id(doc) for doc in query.stream()]

    def list_by_user_in_range(
        self, kind: str, user_id: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        field = TIME_FIELDS[kind]
        query = (
            self._collection(kind, user_id)
            .where(filter=FieldFilter(field, ">=", start))
            .where(filter=FieldFilter(field, "<=", end))
            .order_by(field, direction=firestore.Query.DESCENDING)
        )
        return [self._with_id(doc) for doc in query.stream()]

    def get_document(self, kind: str, user_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(kind, user_id).document(doc_id).get()
        return doc.to_dict() if doc.exists else None

    def set_document(self, kind: str, user_id: str, doc_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self._collection(kind, user_id).document(doc_id).set(record)
        return record

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        doc = self._user_ref(user_id).get()
        return self._with_id(doc) if doc.exists else None

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        query = (
            self.client.collection(FIRESTORE_USERS_COLLECTION)
            .where(filter=FieldFilter("email", "==", email))
            .limit(1)
        )
        docs = list(query.stream())
        return self._with_id(docs[0]) if docs else None

    def create_user(self, user_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._user_ref(user_id).create(record)
        except AlreadyExists as e:
            raise ConflictError("User already exists with this username.") from e
        return {**record, "id": user_id}
