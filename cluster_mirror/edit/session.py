"""Edit Session Registry.

An object can be open in two representations: a read-only view of the object
as fetched, and an editable document. An edit session pairs the two for one
(namespace, kind, name) and holds the original snapshot that proposed changes
are diffed against and whose version token is used for the next apply.

There is at most one session per object. Beginning an edit of an object that
already has a session refreshes that session and returns its existing handle,
so an object is never edited in two diverging documents at once:

```python
registry = EditSessionRegistry(api, Classifier())
handle = await registry.begin_edit("default", "Widget", "w1")
assert handle == await registry.begin_edit("default", "Widget", "w1")
```

The original snapshot only changes when an apply succeeds or when the session
is explicitly refreshed from the cluster. A session is discarded once neither
its view nor its editable document remains open.
"""

import copy
from dataclasses import dataclass, field, replace
import logging
from typing import Any
from urllib.parse import parse_qs, urlencode

from cluster_mirror.cluster.api import ClusterApi
from cluster_mirror.documents import (
    canonical_text,
    dump_document,
    load_document,
    sanitize_for_edit,
)
from cluster_mirror.exceptions import InputException, SessionNotFoundError
from cluster_mirror.manifest import (
    Classification,
    ClusterObject,
    NamedResource,
)

from .classify import Classifier
from .validate import check

__all__ = [
    "DocumentId",
    "EditSession",
    "EditSessionRegistry",
]

_LOGGER = logging.getLogger(__name__)

VIEW_SCHEME = "mirror-view"
EDIT_SCHEME = "mirror-edit"


@dataclass(frozen=True)
class DocumentId:
    """Identifies the view or editable document of an object.

    Rendered as a uri such as `mirror-edit:/default/Widget/w1?origin=raw`.
    Cluster scoped objects omit the namespace segment.
    """

    scheme: str
    resource_id: NamedResource
    origin: Classification | None = field(default=None, compare=False)

    def __str__(self) -> str:
        rid = self.resource_id
        path = f"/{rid.kind}/{rid.name}"
        if rid.namespace:
            path = f"/{rid.namespace}{path}"
        query = f"?{urlencode({'origin': self.origin})}" if self.origin else ""
        return f"{self.scheme}:{path}{query}"

    @classmethod
    def parse(cls, value: str) -> "DocumentId":
        """Parse a document id from its uri form."""
        scheme, sep, rest = value.partition(":")
        if not sep or scheme not in (VIEW_SCHEME, EDIT_SCHEME):
            raise InputException(f"Invalid document id '{value}'")
        path, _, query = rest.partition("?")
        parts = path.strip("/").split("/")
        if len(parts) == 3:
            namespace, kind, name = parts
        elif len(parts) == 2:
            namespace, (kind, name) = None, parts
        else:
            raise InputException(f"Invalid document id path '{value}'")
        origin = None
        if origins := parse_qs(query).get("origin"):
            try:
                origin = Classification(origins[0])
            except ValueError as err:
                raise InputException(f"Invalid origin in '{value}'") from err
        return cls(scheme, NamedResource(kind, namespace, name), origin)


EditHandle = DocumentId | str


@dataclass
class EditSession:
    """State of one object opened for editing."""

    resource_id: NamedResource
    view_id: DocumentId
    edit_id: DocumentId
    original_snapshot: dict[str, Any]
    """Last known good object: the fetched object or the last applied one."""

    classification: Classification
    api_version: str | None = None
    is_new: bool = False
    content: str = ""
    """The current text of the editable document."""

    view_open: bool = False
    edit_open: bool = True

    @property
    def cluster_object(self) -> ClusterObject:
        """The original snapshot tagged with its classification."""
        return ClusterObject.of(self.original_snapshot, self.classification)


class EditSessionRegistry:
    """Owns every live edit session, keyed by object."""

    def __init__(self, api: ClusterApi, classifier: Classifier) -> None:
        self._api = api
        self._classifier = classifier
        self._sessions: dict[NamedResource, EditSession] = {}
        self._views: dict[NamedResource, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, resource_id: NamedResource) -> bool:
        return resource_id in self._sessions

    def sessions(self) -> list[EditSession]:
        return list(self._sessions.values())

    async def _fetch(
        self,
        namespace: str | None,
        kind: str,
        name: str,
        api_version: str | None,
    ) -> dict[str, Any]:
        text = await self._api.get_object(kind, name, namespace, api_version)
        return load_document(text)

    async def open_view(
        self,
        namespace: str | None,
        kind: str,
        name: str,
        api_version: str | None = None,
    ) -> DocumentId:
        """Fetch an object and open its read-only view."""
        resource_id = NamedResource(kind, namespace, name)
        doc = await self._fetch(namespace, kind, name, api_version)
        self._views[resource_id] = dump_document(doc)
        if (session := self._sessions.get(resource_id)) is not None:
            session.view_open = True
        return DocumentId(VIEW_SCHEME, resource_id)

    def view_content(self, view_id: EditHandle) -> str:
        """Return the text of an open view."""
        resource_id = _resource_id(view_id)
        if (content := self._views.get(resource_id)) is None:
            raise SessionNotFoundError(f"No open view for {resource_id}")
        return content

    async def begin_edit(
        self,
        namespace: str | None,
        kind: str,
        name: str,
        origin: Classification | None = None,
        api_version: str | None = None,
    ) -> DocumentId:
        """Open an object for editing, returning the handle of its session.

        The object is always fetched from the cluster rather than the cache.
        An existing session for the object is refreshed and reused.
        """
        resource_id = NamedResource(kind, namespace, name)
        doc = await self._fetch(namespace, kind, name, api_version)
        snapshot = sanitize_for_edit(doc)
        api_version = doc.get("apiVersion") or api_version
        classification = self._classifier.classify(resource_id, api_version, origin)

        if (session := self._sessions.get(resource_id)) is not None:
            _LOGGER.debug("Reusing edit session for %s", resource_id)
            session.original_snapshot = snapshot
            session.content = dump_document(snapshot)
            session.classification = classification
            session.api_version = api_version
            session.is_new = False
            session.edit_open = True
            session.edit_id = replace(session.edit_id, origin=classification)
            return session.edit_id

        session = EditSession(
            resource_id=resource_id,
            view_id=DocumentId(VIEW_SCHEME, resource_id),
            edit_id=DocumentId(EDIT_SCHEME, resource_id, classification),
            original_snapshot=snapshot,
            classification=classification,
            api_version=api_version,
            content=dump_document(snapshot),
            view_open=resource_id in self._views,
        )
        self._sessions[resource_id] = session
        _LOGGER.debug("Started %s edit session for %s", classification, resource_id)
        return session.edit_id

    def begin_create(
        self, doc: dict[str, Any], origin: Classification | None = None
    ) -> DocumentId:
        """Open an edit session for an object that does not exist yet."""
        check(doc, None, is_new=True)
        metadata = doc["metadata"]
        resource_id = NamedResource(
            doc["kind"], metadata.get("namespace"), metadata["name"]
        )
        if (existing := self._sessions.get(resource_id)) and not existing.is_new:
            raise InputException(f"{resource_id} is already being edited")
        snapshot = sanitize_for_edit(doc)
        api_version = doc.get("apiVersion")
        classification = self._classifier.classify(resource_id, api_version, origin)
        session = EditSession(
            resource_id=resource_id,
            view_id=DocumentId(VIEW_SCHEME, resource_id),
            edit_id=DocumentId(EDIT_SCHEME, resource_id, classification),
            original_snapshot=snapshot,
            classification=classification,
            api_version=api_version,
            is_new=True,
            content=dump_document(snapshot),
        )
        self._sessions[resource_id] = session
        _LOGGER.debug("Started create session for %s", resource_id)
        return session.edit_id

    def get(self, handle: EditHandle) -> EditSession:
        """Return the session for a handle."""
        resource_id = _resource_id(handle)
        if (session := self._sessions.get(resource_id)) is None:
            raise SessionNotFoundError(f"No edit session for {resource_id}")
        return session

    def get_original_snapshot(self, handle: EditHandle) -> dict[str, Any]:
        """Return a copy of the original snapshot of a session."""
        return copy.deepcopy(self.get(handle).original_snapshot)

    def set_content(self, handle: EditHandle, content: str) -> None:
        """Record the current text of the editable document."""
        self.get(handle).content = content

    def has_pending_changes(self, handle: EditHandle) -> bool:
        """Return True if the editable document differs from the snapshot.

        A document that cannot be parsed always counts as changed.
        """
        session = self.get(handle)
        try:
            proposed = load_document(session.content)
        except InputException:
            return True
        return canonical_text(proposed) != canonical_text(session.original_snapshot)

    async def refresh(self, handle: EditHandle) -> DocumentId:
        """Re-fetch the object of a session, replacing its snapshot and content."""
        session = self.get(handle)
        if session.is_new:
            raise InputException(f"{session.resource_id} does not exist yet")
        rid = session.resource_id
        return await self.begin_edit(
            rid.namespace, rid.kind, rid.name, api_version=session.api_version
        )

    def mark_applied(
        self, handle: EditHandle, applied: dict[str, Any], clear_new: bool
    ) -> None:
        """Replace the snapshot of a session after a successful apply."""
        session = self.get(handle)
        session.original_snapshot = sanitize_for_edit(applied)
        session.content = dump_document(session.original_snapshot)
        if clear_new:
            session.is_new = False
        _LOGGER.debug("Updated snapshot of %s after apply", session.resource_id)
        self._discard_if_closed(session)

    def is_registered(self, session: EditSession) -> bool:
        """Return True if the session is still the live session of its object."""
        return self._sessions.get(session.resource_id) is session

    def reopen_edit(self, handle: EditHandle) -> DocumentId:
        """Make sure the editable document of a session is open."""
        return self.reopen(self.get(handle))

    def reopen(self, session: EditSession) -> DocumentId:
        """Open the editable document of a session, restoring it if discarded.

        A session discarded while an apply was in flight is registered again,
        unless a new session was started for the same object in the meantime.
        """
        current = self._sessions.setdefault(session.resource_id, session)
        if not current.edit_open:
            _LOGGER.debug("Reopening editable document of %s", current.resource_id)
            current.edit_open = True
        return current.edit_id

    def close_edit(self, handle: EditHandle) -> None:
        """Close the editable document, dropping its unsaved content."""
        session = self.get(handle)
        session.edit_open = False
        session.content = dump_document(session.original_snapshot)
        self._discard_if_closed(session)

    def close_view(self, handle: EditHandle) -> None:
        """Close the read-only view of an object."""
        resource_id = _resource_id(handle)
        self._views.pop(resource_id, None)
        if (session := self._sessions.get(resource_id)) is not None:
            session.view_open = False
            self._discard_if_closed(session)

    def _discard_if_closed(self, session: EditSession) -> None:
        if session.view_open or session.edit_open:
            return
        _LOGGER.debug("Discarding edit session for %s", session.resource_id)
        self._sessions.pop(session.resource_id, None)


def _resource_id(handle: EditHandle) -> NamedResource:
    if isinstance(handle, str):
        handle = DocumentId.parse(handle)
    return handle.resource_id
