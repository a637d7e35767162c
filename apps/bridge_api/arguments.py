"""Best-effort reconciliation of user-typed constructor arguments with a model-made ABI.

Neither side is trustworthy: the JSON comes from a text box and the parameter list was
invented by the pseudo-compiler. Every function here is total; bad input degrades to
type defaults instead of raising.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


@dataclass(frozen=True)
class AbiParameter:
    name: str
    type: str


@dataclass
class NormalizedArguments:
    values: list[Any] = field(default_factory=list)
    padded: list[Any] = field(default_factory=list)
    parse_failed: bool = False


def _is_integer_type(abi_type: str) -> bool:
    return 'int' in abi_type.lower()


def find_constructor_inputs(abi: Any) -> list[AbiParameter] | None:
    if not isinstance(abi, list):
        return None
    for item in abi:
        if not isinstance(item, dict) or item.get('type') != 'constructor':
            continue
        inputs = item.get('inputs')
        if not isinstance(inputs, list):
            return []
        return [
            AbiParameter(name=str(entry.get('name', '')), type=str(entry.get('type', '')))
            for entry in inputs
            if isinstance(entry, dict)
        ]
    return None


def parse_argument_text(raw_text: Any) -> tuple[list[Any], bool]:
    """Return (arguments, parse_failed). Objects contribute their values in order."""
    if not isinstance(raw_text, str):
        return [], True
    try:
        parsed = json.loads(raw_text)
    except (json.JSONDecodeError, RecursionError):
        return [], True
    if isinstance(parsed, list):
        return parsed, False
    if isinstance(parsed, dict):
        return list(parsed.values()), False
    return [], True


def default_for_type(abi_type: str) -> Any:
    lowered = abi_type.lower()
    if 'string' in lowered:
        return ''
    if 'int' in lowered:
        return '0'
    if 'bool' in lowered:
        return False
    if 'address' in lowered:
        return ZERO_ADDRESS
    return '0'


# 2**256 has 78 decimal digits; nothing wider fits an ABI integer slot.
MAX_INTEGER_EXPONENT = 78


def _to_number(text: str) -> int | Decimal | None:
    """Parse integer text; fractions come back as Decimal so the encoder can reject them."""
    stripped = text.strip()
    if not stripped or '_' in stripped:
        return None
    try:
        return int(stripped, 0)
    except ValueError:
        pass
    try:
        number = Decimal(stripped)
    except InvalidOperation:
        return None
    if not number.is_finite() or abs(number.adjusted()) > MAX_INTEGER_EXPONENT:
        return None
    if number != number.to_integral_value():
        return number
    return int(number)


def coerce_argument(value: Any, abi_type: str) -> Any:
    if not _is_integer_type(abi_type) or not isinstance(value, str):
        return value
    converted = _to_number(value)
    return 0 if converted is None else converted


def normalize_constructor_args(raw_text: Any, inputs: list[AbiParameter] | None) -> NormalizedArguments:
    args, parse_failed = parse_argument_text(raw_text)
    if not inputs:
        return NormalizedArguments(values=[], padded=[], parse_failed=parse_failed)

    padded = list(args[:len(inputs)])
    while len(padded) < len(inputs):
        padded.append(default_for_type(inputs[len(padded)].type))

    values = [coerce_argument(value, param.type) for value, param in zip(padded, inputs)]
    return NormalizedArguments(values=values, padded=padded, parse_failed=parse_failed)
