"""
마이그레이션 예외 계층
- 시작 단계 연결 오류는 프로세스 전체를 중단
- 나머지는 테이블 단위로 격리되어 해당 테이블만 실패 처리
"""

import pymysql

# 일시적인 연결 문제로 판단하는 MySQL 클라이언트 에러 코드
# 2003: Can't connect, 2006: server has gone away, 2013: lost connection, 2055: lost connection (system error)
TRANSIENT_MYSQL_ERROR_CODES = frozenset({2003, 2006, 2013, 2055})

TRANSIENT_ERROR_SIGNATURES = (
    "connection refused",
    "broken pipe",
    "invalid connection",
    "connection lost",
    "lost connection",
)


class MigrationError(Exception):
    """마이그레이션 예외 기본 클래스"""

    def __init__(self, message: str, table: str | None = None):
        super().__init__(message)
        self.message = message
        self.table = table


class DatabaseConnectionError(MigrationError):
    """소스/타겟 DB 연결 실패 (시작 단계에서 발생하면 치명적)"""


class SchemaDiscoveryError(MigrationError):
    """소스 테이블 스키마 조회 실패"""


class SchemaWriteError(MigrationError):
    """타겟 테이블 생성 실패 (실행한 DDL 포함)"""

    def __init__(self, message: str, table: str | None = None, sql: str = ""):
        super().__init__(message, table)
        self.sql = sql

    def __str__(self) -> str:
        if self.sql:
            return f"{self.message}, sql: {self.sql}"
        return self.message


class TransferError(MigrationError):
    """데이터 전송 실패 (실패 시점까지 삽입된 row 수 포함)"""

    def __init__(self, message: str, table: str | None = None, rows_inserted: int = 0):
        super().__init__(message, table)
        self.rows_inserted = rows_inserted

    def __str__(self) -> str:
        return f"{self.message} (삽입 완료: {self.rows_inserted}건)"


class TableTimeoutError(MigrationError):
    """테이블 처리 시간 초과"""

    def __init__(self, table: str, timeout: float):
        super().__init__(f"테이블 {table} 처리 시간 초과 ({timeout:g}초)", table)
        self.timeout = timeout


class TransientConnectionError(MigrationError):
    """재시도 가능한 일시적 연결 오류"""


def is_transient_error(exc: BaseException) -> bool:
    """드라이버 예외가 일시적인 연결 문제인지 판별

    Examples:
        >>> is_transient_error(BrokenPipeError())
        True
        >>> is_transient_error(pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query"))
        True
        >>> is_transient_error(pymysql.err.IntegrityError(1062, "Duplicate entry '1' for key 'PRIMARY'"))
        False
    """
    if isinstance(exc, TransientConnectionError):
        return True
    if isinstance(exc, ConnectionError):
        return True
    if isinstance(exc, pymysql.err.OperationalError) and exc.args:
        if exc.args[0] in TRANSIENT_MYSQL_ERROR_CODES:
            return True
    message = str(exc).lower()
    return any(signature in message for signature in TRANSIENT_ERROR_SIGNATURES)
