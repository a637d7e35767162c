#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import time
import urllib.error
import urllib.request
from datetime import datetime, timezone

LOGGER = logging.getLogger('solrust.smoke')


def http_get(url: str) -> dict:
    req = urllib.request.Request(url=url, method='GET')
    with urllib.request.urlopen(req, timeout=8) as resp:
        return json.loads(resp.read().decode('utf-8'))


def http_post(url: str, payload: dict, timeout: int) -> dict:
    body = json.dumps(payload).encode('utf-8')
    req = urllib.request.Request(
        url=url,
        method='POST',
        data=body,
        headers={'Content-Type': 'application/json'}
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode('utf-8'))


def wait_until(fn, timeout_seconds: int, interval_seconds: float, label: str):
    started = time.time()
    last_error = None
    while time.time() - started < timeout_seconds:
        try:
            result = fn()
            if result:
                return result
        except (urllib.error.URLError, OSError, ValueError) as exc:
            last_error = exc
        time.sleep(interval_seconds)

    if last_error is not None:
        raise TimeoutError(f'{label} timed out. last_error={last_error}') from last_error
    raise TimeoutError(f'{label} timed out.')


def main() -> None:
    parser = argparse.ArgumentParser(description='Convert and pseudo-compile the sample contract against a running API')
    parser.add_argument('--api-base', default='http://localhost:8000', help='Bridge API base URL')
    parser.add_argument('--timeout', type=int, default=60, help='Readiness timeout seconds')
    parser.add_argument('--model-timeout', type=int, default=180, help='Per-request timeout for model-backed calls')
    args = parser.parse_args()

    logging.basicConfig(level='INFO', format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    api = args.api_base.rstrip('/')

    LOGGER.info('waiting for API readiness...')
    wait_until(
        fn=lambda: http_get(f'{api}/health/ready').get('status') == 'ready',
        timeout_seconds=args.timeout,
        interval_seconds=2,
        label='api readiness'
    )

    sample = http_get(f'{api}/api/examples/solidity')

    LOGGER.info('converting sample contract %s...', sample['contractName'])
    converted = http_post(f'{api}/api/convert', {'solidityCode': sample['solidityCode']}, args.model_timeout)
    if not converted.get('success'):
        raise SystemExit(f"conversion failed: {converted.get('error')}")

    LOGGER.info('pseudo-compiling %s characters of Rust...', len(converted['rustCode']))
    compiled = http_post(
        f'{api}/api/compile',
        {'rustCode': converted['rustCode'], 'contractName': sample['contractName']},
        args.model_timeout
    )
    if not compiled.get('success'):
        raise SystemExit(f"compilation failed: {compiled.get('error')}")

    print(
        json.dumps(
            {
                'status': 'ok',
                'checked_at': datetime.now(timezone.utc).isoformat(),
                'api_base': api,
                'rust_chars': len(converted['rustCode']),
                'abi_entries': len(compiled.get('abi', [])),
                'bytecode_prefix': str(compiled.get('bytecode', ''))[:18]
            },
            indent=2
        )
    )


if __name__ == '__main__':
    main()
