"""
Persistence collaborator used by the lab and assessment flows.

`Backend` is the interface the core depends on. `LocalBackend` serves labs and
assessments from a course bank and stores submissions as JSON documents, one
file per (user, item) pair under a directory per user, so that saving again
overwrites the previous record.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import quote

from .bank import CourseBank, load_bank
from .errors import PersistenceError
from .models import Assessment, AssessmentSubmission, LabExperiment, Submission

SubmissionsCallback = Callable[[List[Submission]], None]
Unsubscribe = Callable[[], None]

LAB_COLLECTION = "submissions"
ASSESSMENT_COLLECTION = "assessment_submissions"


def _path_component(value: str) -> str:
    """Encode an id as one file name. Distinct ids never share a name."""
    return quote(value, safe='').replace('.', '%2E')


class Backend:
    """Interface of the persistence collaborator."""

    def fetch_assessments(self) -> List[Assessment]:
        raise NotImplementedError

    def fetch_lab_experiments(self) -> List[LabExperiment]:
        raise NotImplementedError

    def fetch_lab_experiment(self, lab_id: str) -> LabExperiment:
        """Return one lab; raises LookupError if it does not exist."""
        for lab in self.fetch_lab_experiments():
            if lab.id == lab_id:
                return lab
        raise LookupError(f"Lab '{lab_id}' not found")

    def submit_assessment(self, record: AssessmentSubmission) -> None:
        """Upsert keyed by (user_id, assessment_id). Raises PersistenceError on failure."""
        raise NotImplementedError

    def submit_lab(self, record: Submission) -> None:
        """Upsert keyed by (user_id, lab_id). Raises PersistenceError on failure."""
        raise NotImplementedError

    def listen_to_submissions(self, user_id: str, callback: SubmissionsCallback) -> Unsubscribe:
        """
        Subscribe to the user's lab submissions.

        The callback receives the full list immediately and again after every
        change. Returns a function that cancels the subscription.
        """
        raise NotImplementedError


class LocalBackend(Backend):
    """File-backed backend for offline classrooms."""

    def __init__(
        self,
        data_dir: Path,
        bank: Optional[CourseBank] = None,
        bank_path: Optional[Path] = None,
        key_input: Optional[Union[str, bytes]] = None
    ):
        """
        Args:
            data_dir: Directory where submission documents are written
            bank: Already loaded course bank
            bank_path: Course bank to load when `bank` is not given
            key_input: Key or password for an encrypted bank
        """
        if bank is None:
            bank = load_bank(bank_path, key_input) if bank_path else CourseBank(version="empty")
        self.bank = bank
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()
        self._listeners: Dict[int, tuple] = {}
        self._next_listener_id = 0

    # ===== CONTENT =====

    def fetch_assessments(self) -> List[Assessment]:
        return list(self.bank.assessments)

    def fetch_lab_experiments(self) -> List[LabExperiment]:
        return list(self.bank.labs)

    # ===== SUBMISSIONS =====

    def _collection_dir(self, collection: str) -> Path:
        return self.data_dir / collection

    def _write_document(self, collection: str, user_id: str, item_id: str, document: dict):
        """Write a document atomically, replacing any previous version."""
        if not user_id or not item_id:
            raise PersistenceError(f"Cannot save {collection} record without user and item ids", retryable=False)

        key = f"{user_id}/{item_id}"
        directory = self._collection_dir(collection) / _path_component(user_id)
        name = _path_component(item_id)
        target = directory / f"{name}.json"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f".{name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document, f, indent=2)
                os.replace(temp_path, target)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save {collection}/{key}: {e}")

    def _read_documents(self, collection: str) -> List[dict]:
        directory = self._collection_dir(collection)
        if not directory.exists():
            return []

        documents = []
        for path in sorted(directory.glob("*/*.json")):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    documents.append(json.load(f))
            except (OSError, json.JSONDecodeError):
                # a half-written or foreign file is not a submission
                continue
        return documents

    def submit_assessment(self, record: AssessmentSubmission) -> None:
        with self._lock:
            self._write_document(ASSESSMENT_COLLECTION, record.user_id, record.assessment_id, record.to_dict())

    def submit_lab(self, record: Submission) -> None:
        with self._lock:
            self._write_document(LAB_COLLECTION, record.user_id, record.lab_id, record.to_dict())
        self._notify(record.user_id)

    def get_assessment_submissions(self, user_id: Optional[str] = None) -> List[AssessmentSubmission]:
        records = [AssessmentSubmission.from_dict(d) for d in self._read_documents(ASSESSMENT_COLLECTION)]
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return records

    def get_lab_submissions(self, user_id: Optional[str] = None) -> List[Submission]:
        records = [Submission.from_dict(d) for d in self._read_documents(LAB_COLLECTION)]
        if user_id is not None:
            records = [r for r in records if r.user_id == user_id]
        return records

    # ===== FEED =====

    def listen_to_submissions(self, user_id: str, callback: SubmissionsCallback) -> Unsubscribe:
        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            self._listeners[listener_id] = (user_id, callback)

        callback(self.get_lab_submissions(user_id))

        def unsubscribe():
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self, user_id: str):
        with self._lock:
            callbacks = [cb for uid, cb in self._listeners.values() if uid == user_id]
        if not callbacks:
            return
        submissions = self.get_lab_submissions(user_id)
        for callback in callbacks:
            callback(submissions)
