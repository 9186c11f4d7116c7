"""
DM → MySQL 마이그레이션 오케스트레이터
- 고정 개수 워커가 테이블 큐를 소비
- 테이블마다 스키마 조회 → 타입 매핑 → 테이블 생성 → 데이터 적재 순차 실행
- 테이블별 제한 시간, 상태 집계, 주기적 진행 상황 출력
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from threading import Lock

from dm_migration.config import RunSettings
from dm_migration.errors import TableTimeoutError
from dm_migration.extractor import DMSchemaExtractor
from dm_migration.transfer import BatchTransfer
from dm_migration.type_mapper import map_columns
from dm_migration.writer import MySQLWriter, build_create_table_sql

logger = logging.getLogger(__name__)


class TableStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TableStatus.COMPLETED, TableStatus.FAILED)


ALLOWED_TRANSITIONS = {
    TableStatus.PENDING: {TableStatus.IN_PROGRESS, TableStatus.FAILED},
    TableStatus.IN_PROGRESS: {TableStatus.COMPLETED, TableStatus.FAILED},
    TableStatus.COMPLETED: set(),
    TableStatus.FAILED: set(),
}


@dataclass
class TableJob:
    """테이블 작업 상태"""
    table_name: str
    status: TableStatus = TableStatus.PENDING
    rows_inserted: int = 0
    error: str | None = None
    duration: float = 0.0


@dataclass
class StatusCounts:
    completed: int = 0
    failed: int = 0
    in_progress: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.failed + self.in_progress + self.pending


class MigrationStatusMap:
    """워커 간 공유되는 테이블 상태 맵 (단일 Lock 으로 보호)"""

    def __init__(self, table_names: list[str] | None = None):
        self._lock = Lock()
        self._jobs: dict[str, TableJob] = {}
        for name in table_names or []:
            self._jobs[name] = TableJob(table_name=name)

    def transition(self, table_name: str, status: TableStatus, **info) -> bool:
        """상태 전이 (허용되지 않는 전이는 무시하고 False 반환)"""
        with self._lock:
            job = self._jobs.setdefault(table_name, TableJob(table_name=table_name))
            if status not in ALLOWED_TRANSITIONS[job.status]:
                return False
            job.status = status
            for key, value in info.items():
                setattr(job, key, value)
            return True

    def get(self, table_name: str) -> TableJob | None:
        with self._lock:
            job = self._jobs.get(table_name)
            return replace(job) if job else None

    def snapshot(self) -> dict[str, TableStatus]:
        with self._lock:
            return {name: job.status for name, job in self._jobs.items()}

    def jobs(self) -> list[TableJob]:
        """등록 순서대로 작업 복사본 반환"""
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def counts(self) -> StatusCounts:
        counts = StatusCounts()
        for status in self.snapshot().values():
            if status == TableStatus.COMPLETED:
                counts.completed += 1
            elif status == TableStatus.FAILED:
                counts.failed += 1
            elif status == TableStatus.IN_PROGRESS:
                counts.in_progress += 1
            else:
                counts.pending += 1
        return counts


@dataclass
class MigrationSummary:
    """마이그레이션 요약"""
    results: list[TableJob] = field(default_factory=list)
    duration: float = 0.0

    @property
    def total_tables(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return len([r for r in self.results if r.status == TableStatus.COMPLETED])

    @property
    def error_count(self) -> int:
        return len([r for r in self.results if r.status == TableStatus.FAILED])

    @property
    def total_rows(self) -> int:
        return sum(r.rows_inserted for r in self.results)


def dedupe_tables(tables: list[str]) -> list[str]:
    """중복 테이블명 제거 (순서 유지)

    소스 테이블명 매칭과 같이 대소문자를 구분하지 않는다.
    """
    seen = set()
    result = []
    for table in tables:
        key = table.lower()
        if key in seen:
            logger.warning("중복된 테이블 %s 제외", table)
            continue
        seen.add(key)
        result.append(table)
    return result


class DMToMySQLMigrator:
    """DM → MySQL 마이그레이션 오케스트레이터"""

    def __init__(
        self,
        extractor: DMSchemaExtractor,
        writer: MySQLWriter,
        run_settings: RunSettings,
    ):
        self.extractor = extractor
        self.writer = writer
        self.settings = run_settings
        self.transfer = BatchTransfer(
            writer,
            max_placeholders=run_settings.max_placeholders,
            batch_timeout=run_settings.batch_timeout,
        )
        self.status = MigrationStatusMap()
        # 제한 시간 초과 후에도 백그라운드에서 계속 실행 중인 작업
        self._orphans: set[asyncio.Task] = set()

    async def plan_table(self, table_name: str) -> str:
        """스키마 조회 + 타입 매핑 후 생성될 DDL 반환 (타겟 변경 없음)"""
        columns = await self.extractor.get_columns(table_name)
        target_columns = map_columns(columns, self.writer.version)
        return build_create_table_sql(table_name, target_columns, self.writer.version)

    async def migrate_table(self, worker_id: int, table_name: str) -> int:
        """단일 테이블 마이그레이션, 삽입된 row 수 반환"""
        columns = await self.extractor.get_columns(table_name)
        logger.info("[Worker %d] 테이블 %s 컬럼 %d개", worker_id, table_name, len(columns))

        target_columns = map_columns(columns, self.writer.version)

        logger.info("[Worker %d] 테이블 %s 생성 중", worker_id, table_name)
        await self.writer.create_table(table_name, target_columns)

        logger.info("[Worker %d] 테이블 %s 데이터 적재 중", worker_id, table_name)
        rows = self.extractor.stream_rows(table_name, columns)
        try:
            return await self.transfer.transfer(
                table_name, target_columns, rows, self.settings.batch_size
            )
        finally:
            await rows.aclose()

    def _on_orphan_done(self, table_name: str, task: asyncio.Task):
        self._orphans.discard(task)
        if task.cancelled():
            logger.debug("시간 초과된 테이블 %s 백그라운드 작업 취소됨", table_name)
        elif task.exception() is not None:
            logger.info("시간 초과된 테이블 %s 백그라운드 작업 종료 (실패): %s", table_name, task.exception())
        else:
            logger.info("시간 초과된 테이블 %s 백그라운드 작업 종료 (%d행), 결과는 버림", table_name, task.result())

    async def _run_job(self, worker_id: int, table_name: str):
        """제한 시간 안에서 테이블 작업 실행 및 상태 기록"""
        if not self.status.transition(table_name, TableStatus.IN_PROGRESS):
            return

        started = time.monotonic()
        logger.info("[Worker %d] 테이블 %s 처리 시작", worker_id, table_name)

        task = asyncio.create_task(self.migrate_table(worker_id, table_name))
        try:
            # shield: 제한 시간이 지나도 작업 자체는 취소하지 않음
            rows = await asyncio.wait_for(asyncio.shield(task), self.settings.table_timeout)
        except asyncio.TimeoutError:
            error = TableTimeoutError(table_name, self.settings.table_timeout)
            logger.error("[Worker %d] %s", worker_id, error)
            self._orphans.add(task)
            task.add_done_callback(lambda t: self._on_orphan_done(table_name, t))
            self.status.transition(
                table_name,
                TableStatus.FAILED,
                error=str(error),
                duration=time.monotonic() - started,
            )
        except Exception as e:
            logger.error("[Worker %d] 테이블 %s 처리 실패: %s", worker_id, table_name, e)
            self.status.transition(
                table_name,
                TableStatus.FAILED,
                error=str(e),
                rows_inserted=getattr(e, "rows_inserted", 0),
                duration=time.monotonic() - started,
            )
        else:
            duration = time.monotonic() - started
            logger.info(
                "[Worker %d] 테이블 %s 완료 (%d행, %.1f초)", worker_id, table_name, rows, duration
            )
            self.status.transition(
                table_name,
                TableStatus.COMPLETED,
                rows_inserted=rows,
                duration=duration,
            )

    async def _worker(self, worker_id: int, queue: asyncio.Queue):
        while True:
            try:
                table_name = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._run_job(worker_id, table_name)
            finally:
                queue.task_done()

    def _log_progress(self):
        counts = self.status.counts()
        logger.info(
            "진행 상황: 완료 %d, 실패 %d, 진행 중 %d, 전체 %d",
            counts.completed,
            counts.failed,
            counts.in_progress,
            counts.total,
        )

    async def _report_progress(self):
        while True:
            await asyncio.sleep(self.settings.report_interval)
            self._log_progress()

    async def _cancel_orphans(self):
        if not self._orphans:
            return
        logger.warning("시간 초과 후 실행 중인 작업 %d개 취소", len(self._orphans))
        orphans = list(self._orphans)
        for task in orphans:
            task.cancel()
        await asyncio.gather(*orphans, return_exceptions=True)

    async def run(self, tables: list[str]) -> MigrationSummary:
        """설정된 테이블 전체 마이그레이션

        개별 테이블 실패는 요약에 기록되고 예외로 전파되지 않는다.
        """
        started = time.monotonic()
        tables = dedupe_tables(tables)
        self.status = MigrationStatusMap(tables)

        queue: asyncio.Queue = asyncio.Queue()
        for table in tables:
            queue.put_nowait(table)

        logger.info("테이블 %d개 마이그레이션 시작 (워커 %d개)", len(tables), self.settings.workers)

        try:
            await self.writer.disable_constraints()
            logger.info("제약조건 검사 비활성화")
        except Exception as e:
            logger.warning("제약조건 검사 비활성화 실패: %s", e)

        reporter = asyncio.create_task(self._report_progress())
        try:
            workers = [
                asyncio.create_task(self._worker(worker_id, queue))
                for worker_id in range(self.settings.workers)
            ]
            await asyncio.gather(*workers)
        finally:
            reporter.cancel()
            await asyncio.gather(reporter, return_exceptions=True)
            await self._cancel_orphans()
            try:
                await self.writer.enable_constraints()
                logger.info("제약조건 검사 복원")
            except Exception as e:
                logger.error("제약조건 검사 복원 실패: %s", e)

        self._log_progress()
        duration = time.monotonic() - started
        logger.info("마이그레이션 종료, 소요 시간 %.1f초", duration)
        return MigrationSummary(results=self.status.jobs(), duration=duration)
