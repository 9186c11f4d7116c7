"""
DM(Dameng) 클라이언트 래퍼
dmPython(DB-API 2.0) 기반 연결 및 쿼리 실행
"""

from threading import Lock
from typing import Any


def _read_lob(value: Any) -> Any:
    """LOB 객체는 str/bytes 로 읽어서 반환"""
    read = getattr(value, "read", None)
    if callable(read):
        return read()
    return value


class RowStream:
    """전용 커넥션 위의 스트리밍 커서"""

    def __init__(self, conn, cursor):
        self._conn = conn
        self._cursor = cursor

    def fetch(self, size: int) -> list[tuple]:
        """최대 size 개의 row 조회 (끝이면 빈 리스트)"""
        rows = self._cursor.fetchmany(size)
        return [tuple(_read_lob(v) for v in row) for row in rows]

    def close(self):
        try:
            self._cursor.close()
        finally:
            self._conn.close()


class DMClient:
    """DM 클라이언트 래퍼

    메타데이터 조회는 하나의 공유 커넥션을 Lock 으로 직렬화해서 사용하고,
    데이터 스트리밍은 open_stream 호출마다 전용 커넥션을 연다.
    """

    def __init__(self, **connect_kwargs: Any):
        self.connect_kwargs = connect_kwargs
        self._conn = None
        self._lock = Lock()

    def connect(self):
        """새 커넥션 생성"""
        import dmPython

        return dmPython.connect(**self.connect_kwargs)

    def _get_connection(self):
        """공유 커넥션 가져오기 (lazy initialization)"""
        if self._conn is None:
            self._conn = self.connect()
        return self._conn

    def execute(self, query: str, params: tuple | list | None = None) -> list[dict[str, Any]]:
        """쿼리 실행 및 결과 반환"""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                if params:
                    cursor.execute(query, tuple(params))
                else:
                    cursor.execute(query)
                if not cursor.description:
                    return []
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

    def open_stream(self, query: str) -> RowStream:
        """전용 커넥션에서 쿼리를 실행하고 스트림 반환"""
        conn = self.connect()
        try:
            cursor = conn.cursor()
            cursor.execute(query)
        except Exception:
            conn.close()
            raise
        return RowStream(conn, cursor)

    def close(self):
        """연결 종료"""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
