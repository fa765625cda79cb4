"""
Keyset pagination cursor.

A cursor is the (sort value, document id) pair of the last row on a page,
plus the sort key and direction it belongs to. Callers see it as an opaque string:

    v1.<urlsafe base64 of compact JSON>

decode(encode(c)) == c, and a token produced by encode() decodes and
re-encodes to the same bytes. Tokens for a different sort key or direction,
an unknown version, or that fail to parse are rejected with a ValidationError.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from core.errors import ValidationError

from .ordering import SortDirection, SortKey, sort_value

CURSOR_VERSION = 1
_PREFIX = f'v{CURSOR_VERSION}.'


@dataclass(frozen=True)
class Cursor:
    sort_key: SortKey
    sort_value: Optional[Union[str, int, float]]
    document_id: str
    sort_direction: SortDirection = SortDirection.DESC

    @classmethod
    def after(cls, document: Any, key: SortKey, direction: SortDirection = SortDirection.DESC) -> 'Cursor':
        """Cursor positioned just after `document` in an ordering by `key`."""
        return cls(
            sort_key=key,
            sort_value=sort_value(document, key),
            document_id=document.id,
            sort_direction=direction,
        )

    def encode(self) -> str:
        payload = {
            'k': self.sort_key.value,
            'd': self.sort_direction.value,
            's': self.sort_value,
            'id': self.document_id,
        }
        raw = json.dumps(payload, separators=(',', ':'), sort_keys=True).encode('utf-8')
        return _PREFIX + base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')

    @classmethod
    def decode(
        cls,
        token: str,
        expected_key: Optional[SortKey] = None,
        expected_direction: Optional[SortDirection] = None
    ) -> 'Cursor':
        """
        Parse a token produced by encode().

        Args:
            token: Opaque cursor string
            expected_key: When given, the cursor must belong to this sort key
            expected_direction: When given, the cursor must belong to this direction

        Raises:
            ValidationError if the token is malformed or for another key or direction
        """
        if not isinstance(token, str) or not token.startswith(_PREFIX):
            raise ValidationError('Unsupported or malformed cursor', field='cursor')

        body = token[len(_PREFIX):]
        try:
            raw = base64.urlsafe_b64decode(body + '=' * (-len(body) % 4))
            payload = json.loads(raw.decode('utf-8'))
        except (binascii.Error, ValueError):
            raise ValidationError('Malformed cursor', field='cursor')

        if not isinstance(payload, dict) or set(payload) != {'k', 'd', 's', 'id'}:
            raise ValidationError('Malformed cursor', field='cursor')

        try:
            key = SortKey(payload['k'])
        except ValueError:
            raise ValidationError('Cursor has an unknown sort key', field='cursor')

        try:
            direction = SortDirection(payload['d'])
        except ValueError:
            raise ValidationError('Cursor has an unknown sort direction', field='cursor')

        value = payload['s']
        if value is not None and (isinstance(value, bool) or not isinstance(value, (str, int, float))):
            raise ValidationError('Malformed cursor', field='cursor')

        document_id = payload['id']
        if not isinstance(document_id, str) or not document_id:
            raise ValidationError('Malformed cursor', field='cursor')

        if expected_key is not None and key != expected_key:
            raise ValidationError(
                'Cursor does not match the requested sort key',
                field='cursor',
                cursor_sort_key=key.value,
                requested_sort_key=expected_key.value
            )

        if expected_direction is not None and direction != expected_direction:
            raise ValidationError(
                'Cursor does not match the requested sort direction',
                field='cursor',
                cursor_sort_direction=direction.value,
                requested_sort_direction=expected_direction.value
            )

        return cls(sort_key=key, sort_value=value, document_id=document_id, sort_direction=direction)
