from __future__ import annotations

import logging
from dataclasses import dataclass

from .model_gateway import ModelGateway, ModelGatewayError, strip_code_fences

logger = logging.getLogger(__name__)

TRANSLATOR_SYSTEM_PROMPT = (
    'You are a smart contract language transpiler that converts Solidity to Rust ink! smart contracts.'
)

TRANSLATION_PROMPT_TEMPLATE = '''
You are a smart contract language transpiler specialized in converting Solidity to Rust ink! smart contracts.
Convert the following Solidity code to equivalent Rust code using the ink! smart contract framework:

```solidity
{solidity_code}
```

Follow these rules:
1. Use the latest ink! contract syntax with #[ink::contract] and other appropriate annotations
2. Map Solidity types to appropriate Rust types (uint256 -> u128, address -> AccountId, etc.)
3. Convert events properly using #[ink(event)] and topics
4. Implement proper error handling using Result where appropriate
5. Ensure proper visibility modifiers (public -> pub, private -> private, etc.)
6. Don't include any explanations, only output valid Rust code
7. Format the code properly with correct indentation

Output only the Rust code, nothing else.
'''


@dataclass
class ConversionResult:
    rust_code: str
    success: bool
    error: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {'rustCode': self.rust_code, 'success': self.success}
        if self.error is not None:
            payload['error'] = self.error
        return payload


def build_translation_prompt(solidity_code: str) -> str:
    return TRANSLATION_PROMPT_TEMPLATE.format(solidity_code=solidity_code)


def convert_solidity_to_rust(solidity_code: str, *, gateway: ModelGateway) -> ConversionResult:
    try:
        text = gateway.complete(
            system=TRANSLATOR_SYSTEM_PROMPT,
            prompt=build_translation_prompt(solidity_code)
        )
    except ModelGatewayError as exc:
        logger.error('conversion failed: %s', exc.detail)
        return ConversionResult(rust_code='', success=False, error=exc.detail)

    rust_code = strip_code_fences(text, 'rust')
    if not rust_code:
        logger.error('conversion failed: model returned no code')
        return ConversionResult(rust_code='', success=False, error='Failed to generate Rust code')

    return ConversionResult(rust_code=rust_code, success=True)
