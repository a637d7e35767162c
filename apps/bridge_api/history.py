from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    '''
    CREATE TABLE IF NOT EXISTS conversions (
      id BIGSERIAL PRIMARY KEY,
      solidity_code TEXT NOT NULL,
      rust_code TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS deployments (
      id BIGSERIAL PRIMARY KEY,
      conversion_id BIGINT REFERENCES conversions(id),
      contract_address TEXT NOT NULL,
      chain_id INTEGER NOT NULL,
      transaction_hash TEXT NOT NULL,
      contract_name TEXT NOT NULL,
      constructor_args JSONB,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    ''',
    'CREATE INDEX IF NOT EXISTS deployments_chain_id_idx ON deployments (chain_id, created_at DESC)'
)


class HistoryUnavailable(Exception):
    def __init__(self, detail: str = 'history store is not configured') -> None:
        super().__init__(detail)
        self.status_code = 503
        self.detail = detail


def _iso(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value is not None else None


def _decode_args(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


class HistoryStore:
    """Conversion and deployment records kept in Postgres."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)

    async def ping(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.fetchval('SELECT 1')

    async def record_conversion(self, *, solidity_code: str, rust_code: str) -> int:
        async with self.pool.acquire() as conn:
            conversion_id = await conn.fetchval(
                'INSERT INTO conversions (solidity_code, rust_code) VALUES ($1, $2) RETURNING id',
                solidity_code,
                rust_code
            )
        return int(conversion_id)

    async def record_deployment(
        self,
        *,
        contract_address: str,
        chain_id: int,
        transaction_hash: str,
        contract_name: str,
        constructor_args: Any = None,
        conversion_id: int | None = None
    ) -> int:
        async with self.pool.acquire() as conn:
            deployment_id = await conn.fetchval(
                '''
                INSERT INTO deployments (
                  conversion_id, contract_address, chain_id, transaction_hash, contract_name, constructor_args
                ) VALUES ($1, $2, $3, $4, $5, $6::jsonb)
                RETURNING id
                ''',
                conversion_id,
                contract_address,
                chain_id,
                transaction_hash,
                contract_name,
                json.dumps(constructor_args) if constructor_args is not None else None
            )
        logger.info('recorded deployment id=%s chain_id=%s address=%s', deployment_id, chain_id, contract_address)
        return int(deployment_id)

    async def list_conversions(self, *, limit: int = 50) -> list[dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT id, solidity_code, rust_code, created_at
                FROM conversions
                ORDER BY created_at DESC, id DESC
                LIMIT $1
                ''',
                limit
            )
        return [
            {
                'id': int(row['id']),
                'solidity_code': row['solidity_code'],
                'rust_code': row['rust_code'],
                'created_at': _iso(row['created_at'])
            }
            for row in rows
        ]

    async def list_deployments(self, *, limit: int = 50, chain_id: int | None = None) -> list[dict[str, Any]]:
        sql_filter = ''
        params: list = []
        if chain_id is not None:
            sql_filter = 'WHERE chain_id = $1'
            params.append(chain_id)
        params.append(limit)

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT id, conversion_id, contract_address, chain_id, transaction_hash,
                       contract_name, constructor_args, created_at
                FROM deployments
                '''
                + sql_filter
                + '''
                ORDER BY created_at DESC, id DESC
                LIMIT $'''
                + str(len(params)),
                *params
            )
        return [
            {
                'id': int(row['id']),
                'conversion_id': row['conversion_id'],
                'contract_address': row['contract_address'],
                'chain_id': int(row['chain_id']),
                'transaction_hash': row['transaction_hash'],
                'contract_name': row['contract_name'],
                'constructor_args': _decode_args(row['constructor_args']),
                'created_at': _iso(row['created_at'])
            }
            for row in rows
        ]
