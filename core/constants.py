"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → shareledger/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent

APP_VERSION: str = "1.0.0"


class Defaults:
    """기본값 상수"""

    WEB_HOST: str = "127.0.0.1"
    WEB_PORT: int = 8000

    LOG_LEVEL: str = "INFO"

    # Store I/O 타임아웃 (초). 만료 시 TransientStoreError
    STORE_TIMEOUT_SEC: float = 10.0
    BUSY_TIMEOUT_MS: int = 30000

    # 포지션 일괄 조회 페이지 크기
    POSITION_PAGE_SIZE: int = 500

    # 거래 목록 조회 기본/최대 건수
    LIST_LIMIT: int = 100
    LIST_LIMIT_MAX: int = 1000

    # 단일 거래/제한 수량 상한 (주식 수)
    MAX_QUANTITY: int = 10**15

    # SQLite INTEGER 범위 (포지션 합계 상한)
    MAX_POSITION: int = 2**63 - 1


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    WEB_LOGS_DIR: Path = LOGS_DIR / "web"
    CLI_LOGS_DIR: Path = LOGS_DIR / "cli"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    PROD_DB: Path = DATA_DIR / "shareledger_prod.db"
    SANDBOX_DB: Path = DATA_DIR / "shareledger_sandbox.db"


class RatioPrecision:
    """Corporate action 비율 정밀도

    비율은 소수점 1자리까지만 허용 (그 이상은 반올림하지 않고 거부)
    """

    MAX_FRACTIONAL_DIGITS: int = 1
