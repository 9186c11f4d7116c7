"""테스트 공용 fake 객체"""

import asyncio
import os

import pytest

from dm_migration.config import MySQLSettings, RunSettings
from dm_migration.extractor import ColumnDefinition
from dm_migration.writer import MySQLWriter


class FakeStream:
    """DMClient.open_stream 대체"""

    def __init__(self, rows: list[tuple]):
        self.rows = list(rows)
        self.fetch_sizes: list[int] = []
        self.closed = False

    def fetch(self, size: int) -> list[tuple]:
        self.fetch_sizes.append(size)
        chunk, self.rows = self.rows[:size], self.rows[size:]
        return chunk

    def close(self):
        self.closed = True


class FakeDMClient:
    """DMClient 대체 (카탈로그 조회를 메모리 데이터로 응답)

    tables: {실제 테이블명: {"columns": [...], "pk": [...], "identity": [...], "rows": [...]}}
    """

    def __init__(self, tables: dict | None = None, identity_error: Exception | None = None):
        self.tables = tables or {}
        self.identity_error = identity_error
        self.queries: list[tuple[str, tuple | None]] = []
        self.streams: list[FakeStream] = []
        self.stream_queries: list[str] = []
        self.closed = False

    def execute(self, query, params=None):
        self.queries.append((query, params))
        if "USER_TABLES" in query:
            names = sorted(self.tables) if "ORDER BY" in query else list(self.tables)
            return [{"TABLE_NAME": name} for name in names]

        table = self.tables.get(params[0]) if params else None
        if "USER_TAB_COLUMNS" in query:
            return list(table["columns"]) if table else []
        if "USER_CONS_COLUMNS" in query:
            return [{"COLUMN_NAME": c} for c in table.get("pk", [])] if table else []
        if "USER_TAB_IDENTITY_COLS" in query:
            if self.identity_error:
                raise self.identity_error
            return [{"COLUMN_NAME": c} for c in table.get("identity", [])] if table else []
        raise AssertionError(f"unexpected query: {query}")

    def open_stream(self, query):
        self.stream_queries.append(query)
        table_name = query.rsplit("FROM ", 1)[1].strip('"')
        stream = FakeStream(self.tables[table_name].get("rows", []))
        self.streams.append(stream)
        return stream

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def column_row(name, data_type, length=0, precision=None, scale=None, nullable="Y", column_id=1):
    """USER_TAB_COLUMNS 결과 row"""
    return {
        "COLUMN_NAME": name,
        "DATA_TYPE": data_type,
        "DATA_LENGTH": length,
        "DATA_PRECISION": precision,
        "DATA_SCALE": scale,
        "NULLABLE": nullable,
        "COLUMN_ID": column_id,
    }


class RecordingWriter(MySQLWriter):
    """실제 DB 대신 실행된 쿼리를 기록하는 라이터

    failures: 순서대로 발생시킬 예외 목록 (소진되면 성공)
    fail_when: 쿼리에 이 문자열이 포함되면 항상 실패
    """

    def __init__(self, version: int = 8, failures=None, fail_when: dict | None = None, **kwargs):
        settings = MySQLSettings(user="tester", password="secret", database="target", version=version)
        super().__init__(settings, **kwargs)
        self.failures = list(failures or [])
        self.fail_when = fail_when or {}
        self.executed: list[tuple[str, object]] = []
        self.attempts = 0

    async def _execute_raw(self, query, args=None):
        self.attempts += 1
        await asyncio.sleep(0)
        for marker, error in self.fail_when.items():
            if marker in query:
                raise error
        if self.failures:
            raise self.failures.pop(0)
        self.executed.append((query, args))
        return 0

    def inserts(self) -> list[tuple[str, list]]:
        return [(q, a) for q, a in self.executed if q.startswith("INSERT")]


async def aiter_rows(rows):
    for row in rows:
        yield row


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """호스트 환경변수가 기본값을 덮어쓰지 않도록 정리"""
    for key in list(os.environ):
        if key.startswith(("DM_", "MYSQL_", "MIGRATE_")):
            monkeypatch.delenv(key)


@pytest.fixture
def run_settings():
    return RunSettings(
        workers=4,
        batch_size=2,
        table_timeout=5.0,
        batch_timeout=5.0,
        report_interval=0.01,
        retry_backoff=0.0,
    )


@pytest.fixture
def sample_columns():
    return [
        ColumnDefinition("ID", "NUMBER", 22, 10, 0, False, 1, is_primary_key=True, is_identity=True),
        ColumnDefinition("NAME", "VARCHAR2", 100, 0, 0, True, 2),
        ColumnDefinition("CREATED_AT", "TIMESTAMP", 8, 0, 0, True, 3),
    ]
