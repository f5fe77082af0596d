"""
Field-level masking for values returned to callers.

A mask never gates access; it only changes how an already readable value
is rendered.
"""
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from apps.rbac.models import MaskType
from apps.rbac.services.access_evaluator import AccessEvaluator

FIELD_TYPES = ('email', 'phone', 'credit_card', 'ssn', 'address', 'name', 'amount')

REDACTED_TEXT = '[REDACTED]'


@dataclass
class MaskingConfig:
    partial_show_length: int = 4
    mask_char: str = '*'
    email_domain_visible: bool = True
    phone_country_visible: bool = True


DEFAULT_CONFIG = MaskingConfig()

ADDRESS_UNIT_PATTERN = re.compile(r'\b(apt|apartment|unit|suite|ste)\s+\w+', re.IGNORECASE)
PHONE_COUNTRY_PATTERN = re.compile(r'^(\+\d{1,3})[^\d]')


def _mask_chars(length: int, config: MaskingConfig) -> str:
    return config.mask_char * max(0, length)


def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


def mask_generic(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """Keep the first few characters and mask the rest."""
    if len(value) <= config.partial_show_length:
        return _mask_chars(len(value), config)
    return value[:config.partial_show_length] + _mask_chars(len(value) - config.partial_show_length, config)


def mask_email(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """john.doe@example.com -> j*******@example.com"""
    local, at, domain = value.partition('@')
    if not at or not local or not domain:
        return mask_generic(value, config)
    masked_local = local[0] + _mask_chars(len(local) - 1, config) if len(local) > 1 else config.mask_char
    if not config.email_domain_visible:
        domain = _mask_chars(len(domain), config)
    return f"{masked_local}@{domain}"


def mask_phone(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """+1-555-123-4567 -> +1-******-4567"""
    digits = _digits(value)
    if len(digits) < 4:
        return _mask_chars(len(value), config)
    last_four = digits[-4:]
    if config.phone_country_visible and value.startswith('+'):
        match = PHONE_COUNTRY_PATTERN.match(value)
        if match:
            country = match.group(1)
            middle = _mask_chars(len(digits) - (len(country) - 1) - 4, config)
            return f"{country}-{middle}-{last_four}"
    return _mask_chars(len(digits) - 4, config) + last_four


def mask_credit_card(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """4532-1234-5678-9012 -> ****-****-****-9012"""
    digits = _digits(value)
    if len(digits) < 4:
        return _mask_chars(len(value), config)
    last_four = digits[-4:]
    if '-' in value:
        groups = -(-(len(digits) - 4) // 4)
        return '-'.join([config.mask_char * 4] * groups + [last_four])
    return _mask_chars(len(digits) - 4, config) + last_four


def mask_ssn(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """123-45-6789 -> ***-**-6789"""
    digits = _digits(value)
    if len(digits) != 9:
        return _mask_chars(len(value), config)
    return f"{config.mask_char * 3}-{config.mask_char * 2}-{digits[-4:]}"


def mask_address(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """123 Main Street, Apt 4B -> *** Main Street, Apt ***"""
    masked = ADDRESS_UNIT_PATTERN.sub(lambda m: f"{m.group(1)} {_mask_chars(3, config)}", value)
    return re.sub(r'\d+', _mask_chars(3, config), masked)


def mask_name(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """John Michael Doe -> J*** M****** D**"""
    return ' '.join(
        part if len(part) <= 1 else part[0] + _mask_chars(len(part) - 1, config)
        for part in value.split(' ')
    )


def mask_amount(value: str, config: MaskingConfig = DEFAULT_CONFIG) -> str:
    """$1,234.56 -> $*****.56"""
    currency = re.match(r'^[^\d]*', value).group(0)
    decimal_match = re.search(r'\.\d{1,2}$', value)
    decimal = decimal_match.group(0) if decimal_match else ''
    main = value[len(currency):len(value) - len(decimal)]
    return currency + _mask_chars(len(main), config) + decimal


PARTIAL_STRATEGIES = {
    'email': mask_email,
    'phone': mask_phone,
    'credit_card': mask_credit_card,
    'ssn': mask_ssn,
    'address': mask_address,
    'name': mask_name,
    'amount': mask_amount,
}


def encrypted_token(value: str) -> str:
    digest = hashlib.sha256(value.encode('utf-8')).hexdigest()[:8].upper()
    return f"[ENCRYPTED:{digest}]"


def apply_mask(value: Any, mask_type: Optional[str], field_type: Optional[str] = None,
               config: Optional[MaskingConfig] = None) -> str:
    """
    Render a value according to a mask type.

    Args:
        value: Original value; None renders as an empty string
        mask_type: One of MaskType, or None for no masking
        field_type: Selects the partial strategy (email, phone, ...)
        config: MaskingConfig overrides

    Returns:
        The rendered string
    """
    if value is None:
        return ''
    config = config or DEFAULT_CONFIG
    text = str(value)

    if not mask_type or mask_type == MaskType.NONE:
        return text
    if mask_type == MaskType.HIDDEN:
        return _mask_chars(len(text), config)
    if mask_type == MaskType.REDACTED:
        return REDACTED_TEXT
    if mask_type == MaskType.ENCRYPTED:
        return encrypted_token(text)
    if mask_type == MaskType.PARTIAL:
        if not text:
            return text
        strategy = PARTIAL_STRATEGIES.get(field_type, mask_generic)
        return strategy(text, config)
    return text


def apply_object_masking(data: Dict[str, Any], field_masks: Dict[str, Any],
                         config: Optional[MaskingConfig] = None) -> Dict[str, Any]:
    """
    Mask the fields of one record.

    Args:
        data: Record to mask (not modified)
        field_masks: field name -> mask type, or -> {'mask_type': ..., 'field_type': ...}
    """
    result = dict(data)
    for field_name, mask in field_masks.items():
        if field_name not in result:
            continue
        if isinstance(mask, dict):
            result[field_name] = apply_mask(result[field_name], mask.get('mask_type'),
                                            mask.get('field_type'), config)
        else:
            result[field_name] = apply_mask(result[field_name], mask, None, config)
    return result


def apply_list_masking(records: Iterable[Dict[str, Any]], field_masks: Dict[str, Any],
                       config: Optional[MaskingConfig] = None) -> List[Dict[str, Any]]:
    return [apply_object_masking(record, field_masks, config) for record in records]


def should_hide_field(mask_type: Optional[str]) -> bool:
    """Hidden and redacted fields are dropped from responses rather than rendered."""
    return mask_type in (MaskType.HIDDEN, MaskType.REDACTED)


def remove_hidden_fields(data: Dict[str, Any], field_masks: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(data)
    for field_name, mask in field_masks.items():
        mask_type = mask.get('mask_type') if isinstance(mask, dict) else mask
        if should_hide_field(mask_type):
            result.pop(field_name, None)
    return result


def authorize_and_mask(data: Dict[str, Any], user_id, entity: str,
                       field_types: Optional[Dict[str, str]] = None,
                       config: Optional[MaskingConfig] = None) -> Dict[str, Any]:
    """
    Filter and mask a record for a user.

    Fields the user cannot read are dropped; readable fields are rendered
    with the least restrictive mask among the user's roles.
    """
    field_types = field_types or {}
    permissions = AccessEvaluator.get_field_permissions(user_id, entity, list(data.keys()))
    result = {}
    for field_name, value in data.items():
        permission = permissions[field_name]
        if not permission.can_read:
            continue
        result[field_name] = apply_mask(value, permission.mask_type,
                                        field_types.get(field_name), config)
    return result
