"""
DM → MySQL 마이그레이션 도구 (비동기 버전)
DM(Dameng) 소스 DB의 지정 테이블 스키마와 데이터를 MySQL 로 복사
aiomysql 기반 비동기 처리 + 워커 풀 병렬 마이그레이션 지원
"""

from dm_migration.migrator import DMToMySQLMigrator

__all__ = ["DMToMySQLMigrator"]
