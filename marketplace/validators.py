"""
Custom validators and reference data for marketplace models.
"""

import re

from django.core.exceptions import ValidationError


PORTUGAL_DISTRICTS = [
    'Aveiro',
    'Beja',
    'Braga',
    'Braganca',
    'Castelo Branco',
    'Coimbra',
    'Evora',
    'Faro',
    'Guarda',
    'Leiria',
    'Lisboa',
    'Portalegre',
    'Porto',
    'Santarem',
    'Setubal',
    'Viana do Castelo',
    'Vila Real',
    'Viseu',
    'Acores',
    'Madeira',
]

COLLECTIONS = [
    'MasterChef',
    'Cozinha do Chef',
    'Desporto e Aventura',
    'Casa e Decoracao',
    'Bem-Estar',
    'Escola',
    'Natal',
    'Peluches',
    'Outro',
]

NORMALIZED_PHONE_PATTERN = re.compile(r'^351\d{9}$')


def normalize_phone(phone):
    """
    Normalize a Portuguese phone number to the 351XXXXXXXXX form.

    Accepts local nine digit numbers starting with 9 as well as numbers
    prefixed with +351, 351 or 00351. Spaces, dashes and other separators
    are ignored. Anything that cannot be recognized is returned as bare
    digits so validate_phone_number() can reject it.

    Args:
        phone: Phone number as typed by the user

    Returns:
        str: Normalized phone number
    """
    digits = re.sub(r'\D', '', phone or '')

    if digits.startswith('00351'):
        digits = digits[2:]

    if len(digits) == 9 and digits.startswith('9'):
        return '351' + digits

    return digits


def validate_phone_number(value):
    """
    Validate that a phone number is in normalized 351XXXXXXXXX form.

    Raises:
        ValidationError: If the number is not a normalized Portuguese number
    """
    if not NORMALIZED_PHONE_PATTERN.match(value or ''):
        raise ValidationError(
            'Phone number must be a Portuguese number in the form 351XXXXXXXXX.',
            code='invalid_phone'
        )


def validate_district(value):
    """
    Validate that a district is one of the Portuguese districts.

    Empty values are allowed since the district is optional until
    registration is complete.
    """
    if not value:
        return

    if value not in PORTUGAL_DISTRICTS:
        raise ValidationError(
            f'"{value}" is not a valid district.',
            code='invalid_district'
        )
