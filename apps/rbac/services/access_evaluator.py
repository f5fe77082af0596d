"""
Access evaluator: resolves an access question against the policy graph.

Resolution order for a single role is fixed:
1. Resource-level explicit row (ResourcePermission) for the exact resource
2. Entity-level Permission (field match, including the '*' wildcard)
3. Implicit deny

Evaluation is read-only and never writes audit rows.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from apps.rbac.models import (
    MASK_RESTRICTIVENESS, MaskType, Permission, PermissionAction,
    ResourcePermission, UserRole, WILDCARD_FIELD,
)
from apps.rbac.services.base import find_role

logger = logging.getLogger(__name__)


class DecisionSource(str, enum.Enum):
    RESOURCE_OVERRIDE = 'RESOURCE_OVERRIDE'
    ENTITY_DEFAULT = 'ENTITY_DEFAULT'
    IMPLICIT_DENY = 'IMPLICIT_DENY'


@dataclass
class ChainLink:
    """One level consulted while resolving a decision."""
    level: int
    source: DecisionSource
    granted: Optional[bool]
    record: Any = None

    def to_dict(self):
        return {
            'level': self.level,
            'source': self.source.value,
            'granted': self.granted,
            'record_id': str(self.record.id) if self.record is not None else None,
        }


# Levels in the order they were consulted
PermissionInheritanceChain = List[ChainLink]


@dataclass
class AccessDecision:
    allowed: bool
    source: DecisionSource
    mask_type: str = MaskType.NONE
    reason: str = ''
    chain: PermissionInheritanceChain = field(default_factory=list)
    role_id: Optional[str] = None

    def to_dict(self):
        return {
            'allowed': self.allowed,
            'source': self.source.value,
            'mask_type': str(self.mask_type),
            'reason': self.reason,
            'role_id': self.role_id,
            'chain': [link.to_dict() for link in self.chain],
        }


@dataclass
class FieldPermission:
    can_read: bool
    can_write: bool
    mask_type: str = MaskType.NONE


def _least_restrictive(mask_types: Iterable[str]) -> str:
    return min(mask_types, key=lambda m: MASK_RESTRICTIVENESS.get(str(m), 0), default=MaskType.NONE)


def _read_mask(action: str, permission: Optional[Permission]) -> str:
    """Masks only describe how a read is rendered."""
    if permission is None or action != PermissionAction.READ:
        return MaskType.NONE
    return permission.mask_type


class AccessEvaluator:
    """
    Answers "may this role (or user) perform this action" questions.
    """

    @classmethod
    def _entity_permission(cls, role_id, entity, field_name, action) -> Optional[Permission]:
        """Matching entity-level row, preferring an exact field over the wildcard."""
        matches = list(Permission.objects.filter(role_id=role_id).matching(entity, field_name, action))
        for permission in matches:
            if permission.field == field_name:
                return permission
        return matches[0] if matches else None

    @classmethod
    def evaluate(cls, role_id, entity: str, action: str, field: str = WILDCARD_FIELD,
                 resource_id=None,
                 resource_exists: Optional[Callable[[str, str], bool]] = None) -> AccessDecision:
        """
        Resolve one role's access.

        Args:
            role_id: Role to evaluate
            entity: Resource type
            action: Requested action
            field: Requested field, '*' when not field-scoped
            resource_id: Concrete resource instance, if any
            resource_exists: Optional callable (resource_type, resource_id) -> bool;
                overrides for resources it reports missing are skipped

        Returns:
            AccessDecision with the full inheritance chain
        """
        role = find_role(role_id)
        if role is None:
            return AccessDecision(
                allowed=False,
                source=DecisionSource.IMPLICIT_DENY,
                reason='Role not found',
                role_id=str(role_id),
            )
        if not role.is_active:
            return AccessDecision(
                allowed=False,
                source=DecisionSource.IMPLICIT_DENY,
                reason='Role is inactive',
                role_id=str(role.id),
            )

        chain = []
        entity_permission = cls._entity_permission(role.id, entity, field, action)

        if resource_id is not None:
            override = ResourcePermission.objects.filter(
                role=role,
                resource_type=entity,
                resource_id=str(resource_id),
                action=action,
            ).first()
            if override is not None and resource_exists is not None \
                    and not resource_exists(entity, str(resource_id)):
                logger.debug(
                    "Skipping override for missing resource",
                    extra={'resource_type': entity, 'resource_id': str(resource_id)},
                )
                chain.append(ChainLink(1, DecisionSource.RESOURCE_OVERRIDE, None, override))
            elif override is not None:
                chain.append(ChainLink(1, DecisionSource.RESOURCE_OVERRIDE, override.granted, override))
                if override.granted:
                    return AccessDecision(
                        allowed=True,
                        source=DecisionSource.RESOURCE_OVERRIDE,
                        mask_type=_read_mask(action, entity_permission),
                        reason='Granted by resource-level permission',
                        chain=chain,
                        role_id=str(role.id),
                    )
                return AccessDecision(
                    allowed=False,
                    source=DecisionSource.RESOURCE_OVERRIDE,
                    reason='Denied by resource-level permission',
                    chain=chain,
                    role_id=str(role.id),
                )
            else:
                chain.append(ChainLink(1, DecisionSource.RESOURCE_OVERRIDE, None))

        if entity_permission is not None:
            chain.append(ChainLink(2, DecisionSource.ENTITY_DEFAULT, True, entity_permission))
            return AccessDecision(
                allowed=True,
                source=DecisionSource.ENTITY_DEFAULT,
                mask_type=_read_mask(action, entity_permission),
                reason='Granted by entity-level permission',
                chain=chain,
                role_id=str(role.id),
            )

        chain.append(ChainLink(2, DecisionSource.ENTITY_DEFAULT, None))
        chain.append(ChainLink(3, DecisionSource.IMPLICIT_DENY, False))
        return AccessDecision(
            allowed=False,
            source=DecisionSource.IMPLICIT_DENY,
            reason='No matching permission',
            chain=chain,
            role_id=str(role.id),
        )

    @classmethod
    def evaluate_for_roles(cls, role_ids: Iterable, entity: str, action: str,
                           field: str = WILDCARD_FIELD, resource_id=None,
                           resource_exists=None) -> AccessDecision:
        """
        Combine per-role decisions.

        Any explicit resource-level deny wins. Otherwise any allow allows,
        reporting the least restrictive mask among the allowing roles.
        """
        decisions = [
            cls.evaluate(role_id, entity, action, field, resource_id, resource_exists)
            for role_id in role_ids
        ]
        if not decisions:
            return AccessDecision(
                allowed=False,
                source=DecisionSource.IMPLICIT_DENY,
                reason='No roles assigned',
            )

        for decision in decisions:
            if not decision.allowed and decision.source == DecisionSource.RESOURCE_OVERRIDE:
                return decision

        allowed = [d for d in decisions if d.allowed]
        if allowed:
            mask = _least_restrictive(d.mask_type for d in allowed)
            for decision in allowed:
                if decision.mask_type == mask:
                    return decision

        chain = [link for d in decisions for link in d.chain]
        return AccessDecision(
            allowed=False,
            source=DecisionSource.IMPLICIT_DENY,
            reason='No role grants this access',
            chain=chain,
        )

    @classmethod
    def get_user_role_ids(cls, user_id) -> List:
        return list(
            UserRole.objects.filter(user_id=str(user_id)).values_list('role_id', flat=True)
        )

    @classmethod
    def evaluate_for_user(cls, user_id, entity: str, action: str, field: str = WILDCARD_FIELD,
                          resource_id=None, resource_exists=None) -> AccessDecision:
        return cls.evaluate_for_roles(
            cls.get_user_role_ids(user_id), entity, action, field, resource_id, resource_exists
        )

    @classmethod
    def get_field_permissions(cls, user_id, entity: str,
                              fields: Iterable[str]) -> Dict[str, FieldPermission]:
        """Read/write rights and the effective mask per field."""
        role_ids = cls.get_user_role_ids(user_id)
        result = {}
        for field_name in fields:
            read = cls.evaluate_for_roles(role_ids, entity, PermissionAction.READ, field_name)
            write = cls.evaluate_for_roles(role_ids, entity, PermissionAction.UPDATE, field_name)
            result[field_name] = FieldPermission(
                can_read=read.allowed,
                can_write=write.allowed,
                mask_type=read.mask_type if read.allowed else MaskType.NONE,
            )
        return result
