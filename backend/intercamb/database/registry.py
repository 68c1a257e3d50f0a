"""
Entity descriptors and the registry the query façade resolves them from.

A registry is built once at process start and never mutated afterwards.
Tests build their own registries instead of sharing a global one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from ..errors import NotFoundError, UnregisteredEntityTypeError


class EntityType(str, Enum):
    """Entity types persisted by the backend."""
    ACCOUNT = "Account"
    CLIENT = "Client"
    COMPANY = "Company"
    MESSAGE_TEMPLATE = "MessageTemplate"
    DEFAULT_TASK = "DefaultTask"
    INSTITUTION = "Institution"
    INVITATION = "Invitation"
    PAYMENT_ORDER = "PaymentOrder"
    PLAN = "Plan"
    TASK = "Task"
    TASK_ATTACHMENT = "TaskAttachment"
    TASK_COMMENT = "TaskComment"
    TOKEN = "Token"


def entity_name(entity_type: EntityType | str) -> str:
    if isinstance(entity_type, EntityType):
        return entity_type.value
    return entity_type


@dataclass(frozen=True)
class Relation:
    """
    A populatable relation.

    Without ``foreign_field`` the field holds the id (or a list of ids) of
    ``target`` entities. With ``foreign_field`` the relation is virtual: it
    expands to every ``target`` entity whose ``foreign_field`` equals this
    entity's ``_id``.
    """
    target: str
    foreign_field: str | None = None

    @property
    def virtual(self) -> bool:
        return self.foreign_field is not None


@dataclass(frozen=True)
class EntityDescriptor:
    """Metadata the façade needs about one entity type."""
    name: str
    collection: str
    not_found_code: str
    not_found_message: str
    relations: Mapping[str, Relation] = field(default_factory=dict)
    # Never returned when the entity is expanded into another one.
    hidden_fields: tuple[str, ...] = ()

    def not_found_error(self) -> NotFoundError:
        return NotFoundError(self.not_found_code, self.not_found_message, entity=self.name)

    def relation(self, path: str) -> Relation:
        try:
            return self.relations[path]
        except KeyError:
            raise ValueError(f"'{path}' is not a relation of {self.name}") from None


class EntityRegistry:
    """Immutable lookup of entity descriptors by name."""

    def __init__(self, descriptors: Iterable[EntityDescriptor]):
        by_name: dict[str, EntityDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in by_name:
                raise ValueError(f"Entity type '{descriptor.name}' registered twice")
            by_name[descriptor.name] = descriptor
        self._descriptors = MappingProxyType(by_name)

    def get(self, entity_type: EntityType | str) -> EntityDescriptor:
        name = entity_name(entity_type)
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise UnregisteredEntityTypeError(name)
        return descriptor

    def __contains__(self, entity_type: object) -> bool:
        if not isinstance(entity_type, str):
            return False
        return entity_name(entity_type) in self._descriptors

    def __iter__(self) -> Iterator[EntityDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)


def _descriptor(
    entity_type: EntityType,
    collection: str,
    code: str,
    message: str,
    hidden_fields: tuple[str, ...] = (),
    **relations: Relation,
) -> EntityDescriptor:
    return EntityDescriptor(
        name=entity_type.value,
        collection=collection,
        not_found_code=code,
        not_found_message=message,
        relations=MappingProxyType(relations),
        hidden_fields=hidden_fields,
    )


def build_default_registry() -> EntityRegistry:
    """Registry of every entity type the backend persists."""
    account = EntityType.ACCOUNT.value
    client = EntityType.CLIENT.value
    company = EntityType.COMPANY.value
    plan = EntityType.PLAN.value
    task = EntityType.TASK.value

    # Dotted relation paths can't be keyword arguments.
    client_relations = {
        "company": Relation(company),
        "plan": Relation(plan),
        "intended_course.institution": Relation(EntityType.INSTITUTION.value),
        "tasks": Relation(task, foreign_field="client"),
        "payment_orders": Relation(EntityType.PAYMENT_ORDER.value, foreign_field="client"),
    }

    return EntityRegistry([
        _descriptor(
            EntityType.ACCOUNT, "accounts", "account_not_found", "Account not found",
            hidden_fields=("password",),
            company=Relation(company),
        ),
        _descriptor(
            EntityType.CLIENT, "clients", "client_not_found", "Client not found",
            **client_relations,
        ),
        _descriptor(
            EntityType.COMPANY, "companies", "company_not_found", "Company not found",
            owner=Relation(account),
        ),
        _descriptor(
            EntityType.MESSAGE_TEMPLATE, "message_templates",
            "default_message_not_found", "Default message not found",
            company=Relation(company),
        ),
        _descriptor(
            EntityType.DEFAULT_TASK, "default_tasks", "default_task_not_found", "Default task not found",
            company=Relation(company),
            plan=Relation(plan),
        ),
        _descriptor(
            EntityType.INSTITUTION, "institutions", "institution_not_found", "Institution not found",
        ),
        _descriptor(
            EntityType.INVITATION, "invitations", "invitation_not_found", "Invitation not found",
            company=Relation(company),
        ),
        _descriptor(
            EntityType.PAYMENT_ORDER, "payment_orders", "payment_order_not_found", "Payment order not found",
            client=Relation(client),
            company=Relation(company),
        ),
        _descriptor(
            EntityType.PLAN, "plans", "plan_not_found", "Plan not found",
            company=Relation(company),
            default_tasks=Relation(EntityType.DEFAULT_TASK.value),
        ),
        _descriptor(
            EntityType.TASK, "tasks", "task_not_found", "Task not found",
            company=Relation(company),
            client=Relation(client),
            plan=Relation(plan),
            attachments=Relation(EntityType.TASK_ATTACHMENT.value, foreign_field="task"),
            comments=Relation(EntityType.TASK_COMMENT.value, foreign_field="task"),
        ),
        _descriptor(
            EntityType.TASK_ATTACHMENT, "task_attachments",
            "task_attachment_not_found", "Task attachment not found",
            task=Relation(task),
            account=Relation(account),
        ),
        _descriptor(
            EntityType.TASK_COMMENT, "task_comments", "task_comment_not_found", "Task comment not found",
            task=Relation(task),
            account=Relation(account),
        ),
        _descriptor(
            EntityType.TOKEN, "tokens", "token_not_found", "Token not found",
            account=Relation(account),
        ),
    ])
