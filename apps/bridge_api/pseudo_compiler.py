"""Asks the model to invent an ABI and bytecode for translated ink! code.

Nothing is compiled. The bytecode check is syntactic only and an unusable value is
swapped for random hex, so a "successful" compilation can deploy meaningless code.
"""
from __future__ import annotations

import json
import logging
import re
import secrets
from dataclasses import dataclass, field
from typing import Any

from .model_gateway import ModelGateway, ModelGatewayError

logger = logging.getLogger(__name__)

PLACEHOLDER_BYTECODE_HEX_LENGTH = 100

COMPILER_SYSTEM_PROMPT = 'You are a smart contract compiler assistant.'

COMPILE_PROMPT_TEMPLATE = '''
Generate a mock Ethereum contract ABI and bytecode for a contract named "{contract_name}" from this Rust ink! code:

```rust
{rust_code}
```

Output should be in JSON format with two fields:
1. "abi": An array representing the contract ABI (function signatures, events, etc.)
2. "bytecode": A hexadecimal string representing the compiled bytecode

Important requirements for the bytecode:
- Must be a valid hexadecimal string
- Must start with "0x" followed by at least 20 hexadecimal characters
- Must NOT contain any placeholders like "[PLACEHOLDER_BYTECODE]"
- Must only include hexadecimal characters (0-9, a-f) after the "0x" prefix

The output should be valid JSON that can be directly used by an EVM deployment library.
'''

_FENCED_JSON = re.compile(r'```json\s*([\s\S]*?)\s*```|(\{[\s\S]*\})')
_HEX_BYTECODE = re.compile(r'0x[0-9a-fA-F]+')


@dataclass
class CompilationResult:
    abi: list[Any] = field(default_factory=list)
    bytecode: str = ''
    success: bool = False
    error: str | None = None
    bytecode_repaired: bool = False

    def to_payload(self) -> dict:
        payload: dict = {'abi': self.abi, 'bytecode': self.bytecode, 'success': self.success}
        if self.error is not None:
            payload['error'] = self.error
        return payload


def build_compile_prompt(rust_code: str, contract_name: str) -> str:
    return COMPILE_PROMPT_TEMPLATE.format(rust_code=rust_code, contract_name=contract_name)


def extract_json_object(text: str) -> Any:
    """Parse the model reply, preferring a ```json fence, then the outermost {...} span."""
    match = _FENCED_JSON.search(text or '')
    if match:
        return json.loads(match.group(1) or match.group(2))
    return json.loads(text)


def is_valid_bytecode(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if 'PLACEHOLDER' in value.upper():
        return False
    return bool(_HEX_BYTECODE.fullmatch(value))


def generate_placeholder_bytecode(hex_length: int = PLACEHOLDER_BYTECODE_HEX_LENGTH) -> str:
    digits = secrets.token_hex((hex_length + 1) // 2)[:hex_length]
    return f'0x{digits}'


def compile_rust_to_evm(rust_code: str, contract_name: str, *, gateway: ModelGateway) -> CompilationResult:
    try:
        text = gateway.complete(
            system=COMPILER_SYSTEM_PROMPT,
            prompt=build_compile_prompt(rust_code, contract_name),
            json_mode=True
        )
    except ModelGatewayError as exc:
        logger.error('compilation failed contract=%s: %s', contract_name, exc.detail)
        return CompilationResult(success=False, error=exc.detail)

    try:
        output = extract_json_object(text)
    except json.JSONDecodeError as exc:
        logger.error('compilation failed contract=%s: unparseable model output: %s', contract_name, exc)
        return CompilationResult(success=False, error=f'Model returned invalid JSON: {exc.msg}')

    if not isinstance(output, dict) or not isinstance(output.get('abi'), list):
        logger.error('compilation failed contract=%s: model output has no abi array', contract_name)
        return CompilationResult(success=False, error='Failed to compile Rust code to EVM bytecode')

    bytecode = output.get('bytecode')
    repaired = False
    if not is_valid_bytecode(bytecode):
        logger.warning(
            'model bytecode for contract=%s is unusable (%r); substituting placeholder bytes',
            contract_name,
            str(bytecode)[:40]
        )
        bytecode = generate_placeholder_bytecode()
        repaired = True

    return CompilationResult(
        abi=output['abi'],
        bytecode=bytecode,
        success=True,
        bytecode_repaired=repaired
    )
