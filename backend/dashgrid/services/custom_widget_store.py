"""Custom widget store: scoped, versioned widget documents.

Layout of the document store:

    custom-widgets/system/{widget_id}.json
    custom-widgets/admin/{admin_id}/{widget_id}.json
    custom-widgets/customer/{customer_id}/{widget_id}.json

Saving into a customer namespace or the shared system namespace strips every
restricted field first. Dynamic filter values are never persisted.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from pydantic import ValidationError

from dashgrid.core.document_store import DocumentStore
from dashgrid.core.metrics import malformed_documents_total
from dashgrid.schemas.widget import CreatedBy, CustomWidgetDefinition, OwnerScope, PromotionRecord
from dashgrid.services.field_policy import redact_custom_widget
from dashgrid.services.widget_registry import WidgetNotFoundError

logger = structlog.stdlib.get_logger(__name__)

CUSTOM_WIDGETS_ROOT = "custom-widgets"
_DOC_SUFFIX = ".json"

# Scopes whose saved widgets must not reference restricted fields
_REDACTED_SCOPES = {OwnerScope.CUSTOMER, OwnerScope.SYSTEM}


@dataclass(frozen=True)
class OwnerContext:
    """Who is writing, and into which namespace.

    For the system namespace owner_id is the admin acting on it.
    """

    owner_id: str
    scope: OwnerScope

    @classmethod
    def customer(cls, customer_id: str) -> "OwnerContext":
        return cls(owner_id=customer_id, scope=OwnerScope.CUSTOMER)

    @classmethod
    def admin(cls, admin_id: str) -> "OwnerContext":
        return cls(owner_id=admin_id, scope=OwnerScope.ADMIN)

    @classmethod
    def system(cls, admin_id: str) -> "OwnerContext":
        return cls(owner_id=admin_id, scope=OwnerScope.SYSTEM)

    @property
    def is_admin(self) -> bool:
        return self.scope != OwnerScope.CUSTOMER

    @property
    def namespace_owner(self) -> str | None:
        return None if self.scope == OwnerScope.SYSTEM else self.owner_id


def new_widget_id() -> str:
    return f"widget_{uuid.uuid4().hex[:16]}"


def _check_segment(value: str, what: str) -> str:
    if not value or "/" in value or value in (".", ".."):
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


def scope_prefix(scope: OwnerScope, owner_id: str | None = None) -> str:
    """Folder prefix for a scope; owner_id None covers every owner in the scope."""
    if scope == OwnerScope.SYSTEM or owner_id is None:
        return f"{CUSTOM_WIDGETS_ROOT}/{scope.value}/"
    return f"{CUSTOM_WIDGETS_ROOT}/{scope.value}/{_check_segment(owner_id, 'owner id')}/"


def widget_path(widget_id: str, scope: OwnerScope, owner_id: str | None = None) -> str:
    if scope != OwnerScope.SYSTEM and owner_id is None:
        raise ValueError(f"{scope.value} widgets need an owner id")
    return f"{scope_prefix(scope, owner_id)}{_check_segment(widget_id, 'widget id')}{_DOC_SUFFIX}"


def _clear_dynamic_values(definition: CustomWidgetDefinition) -> CustomWidgetDefinition:
    spec = definition.query_spec
    if not any(f.is_dynamic and f.value is not None for f in spec.filters):
        return definition
    filters = [f.model_copy(update={"value": None}) if f.is_dynamic else f for f in spec.filters]
    return definition.model_copy(update={"query_spec": spec.model_copy(update={"filters": filters})})


class CustomWidgetStore:
    """Persists CustomWidgetDefinition documents through a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def _read(self, path: str) -> CustomWidgetDefinition | None:
        raw = await self._store.get(path)
        if raw is None:
            return None
        try:
            return CustomWidgetDefinition.model_validate_json(raw)
        except ValidationError as exc:
            malformed_documents_total.labels(collection="custom_widgets").inc()
            logger.warning("custom_widget_malformed", path=path, errors=exc.error_count())
            return None

    async def _write(self, definition: CustomWidgetDefinition, owner: OwnerContext) -> CustomWidgetDefinition:
        now = datetime.now(UTC)
        widget_id = definition.id or new_widget_id()
        path = widget_path(widget_id, owner.scope, owner.namespace_owner)
        existing = await self._read(path)

        if existing is not None:
            updates = {
                "version": existing.version + 1,
                "created_by": existing.created_by,
                "created_at": existing.created_at,
            }
        else:
            updates = {
                "version": 1,
                "created_by": definition.created_by
                or CreatedBy(owner_id=owner.owner_id, owner_scope=owner.scope, timestamp=now),
                "created_at": definition.created_at or now,
            }
        updates.update({"id": widget_id, "updated_at": now})
        if owner.scope == OwnerScope.SYSTEM:
            updates["visibility"] = "system"

        widget = _clear_dynamic_values(definition.model_copy(update=updates))
        if owner.scope in _REDACTED_SCOPES:
            widget = redact_custom_widget(widget)

        await self._store.put(path, widget.model_dump_json().encode())
        logger.info(
            "custom_widget_saved",
            widget_id=widget_id,
            scope=owner.scope.value,
            owner_id=owner.owner_id,
            version=widget.version,
        )
        return widget

    async def save(self, definition: CustomWidgetDefinition, owner: OwnerContext) -> str:
        """Create or update a widget in the owner's namespace and return its id.

        Raises:
            DocumentStoreError: the write failed.
        """
        widget = await self._write(definition, owner)
        return widget.id

    async def get(
        self, widget_id: str, scope: OwnerScope, owner_id: str | None = None
    ) -> CustomWidgetDefinition | None:
        return await self._read(widget_path(widget_id, scope, owner_id))

    async def list_for_scope(self, scope: OwnerScope, owner_id: str | None = None) -> list[CustomWidgetDefinition]:
        """Every well-formed widget under a scope (one owner, or all owners when owner_id is None)."""
        paths = [p for p in await self._store.list(scope_prefix(scope, owner_id)) if p.endswith(_DOC_SUFFIX)]
        widgets = await asyncio.gather(*(self._read(p) for p in paths))
        return [w for w in widgets if w is not None]

    async def list_visible(self, owner: OwnerContext) -> list[CustomWidgetDefinition]:
        """System widgets plus the owner's own; admins see every namespace."""
        if owner.is_admin:
            groups = await asyncio.gather(
                self.list_for_scope(OwnerScope.SYSTEM),
                self.list_for_scope(OwnerScope.ADMIN),
                self.list_for_scope(OwnerScope.CUSTOMER),
            )
        else:
            groups = await asyncio.gather(
                self.list_for_scope(OwnerScope.SYSTEM),
                self.list_for_scope(owner.scope, owner.owner_id),
            )
        return [w for group in groups for w in group]

    async def delete(self, widget_id: str, owner: OwnerContext) -> None:
        """Remove a widget from the owner's namespace. Deleting a missing widget is a no-op."""
        await self._store.delete(widget_path(widget_id, owner.scope, owner.namespace_owner))
        logger.info("custom_widget_deleted", widget_id=widget_id, scope=owner.scope.value, owner_id=owner.owner_id)

    async def promote_to_system(
        self,
        widget_id: str,
        source_scope: OwnerScope,
        source_owner_id: str | None,
        promoted_by: str,
        delete_original: bool = False,
    ) -> CustomWidgetDefinition:
        """Copy a widget into the shared system namespace under a new id.

        Raises:
            WidgetNotFoundError: no such widget in the source namespace.
            DocumentStoreError: a write failed.
        """
        original = await self.get(widget_id, source_scope, source_owner_id)
        if original is None:
            raise WidgetNotFoundError(widget_id)

        now = datetime.now(UTC)
        copy = original.model_copy(
            update={
                "id": new_widget_id(),
                "visibility": "system",
                "created_by": CreatedBy(owner_id=promoted_by, owner_scope=OwnerScope.SYSTEM, timestamp=now),
                "created_at": now,
                "promoted_from": PromotionRecord(
                    original_widget_id=widget_id,
                    original_scope=source_scope,
                    original_owner_id=source_owner_id,
                    promoted_by=promoted_by,
                    promoted_at=now,
                ),
            },
            deep=True,
        )
        promoted = await self._write(copy, OwnerContext.system(promoted_by))

        if delete_original:
            await self.delete(widget_id, OwnerContext(owner_id=source_owner_id or promoted_by, scope=source_scope))
        logger.info(
            "custom_widget_promoted",
            widget_id=widget_id,
            new_widget_id=promoted.id,
            source_scope=source_scope.value,
            deleted_original=delete_original,
        )
        return promoted

    async def duplicate_to_admin(
        self,
        widget_id: str,
        source_scope: OwnerScope,
        source_owner_id: str | None,
        admin_id: str,
    ) -> CustomWidgetDefinition:
        """Copy a widget into an admin's private namespace as "<name> (Copy)"."""
        original = await self.get(widget_id, source_scope, source_owner_id)
        if original is None:
            raise WidgetNotFoundError(widget_id)

        now = datetime.now(UTC)
        copy = original.model_copy(
            update={
                "id": new_widget_id(),
                "name": f"{original.name} (Copy)",
                "visibility": "private",
                "created_by": CreatedBy(owner_id=admin_id, owner_scope=OwnerScope.ADMIN, timestamp=now),
                "created_at": now,
                "promoted_from": None,
            },
            deep=True,
        )
        return await self._write(copy, OwnerContext.admin(admin_id))
