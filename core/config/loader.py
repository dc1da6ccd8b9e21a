"""
설정 로더

settings.yaml 로드 및 배포 설정 생성
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

from core.constants import Defaults, Paths
from core.types import CorrectionStrategy, DeploymentMode


@dataclass(frozen=True)
class DatabaseConfig:
    """DB 설정"""

    path: Path | None
    timeout_sec: float
    busy_timeout_ms: int


@dataclass(frozen=True)
class WebConfig:
    """Web 서버 설정"""

    host: str
    port: int
    expose_internal_errors: bool


@dataclass(frozen=True)
class AppConfig:
    """배포 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    mode: DeploymentMode
    correction_strategy: CorrectionStrategy
    database: DatabaseConfig
    web: WebConfig


class SettingsLoadError(Exception):
    """Settings 로드 실패 예외"""

    pass


def load_config(path: Path | None = None) -> AppConfig:
    """settings.yaml 파일 로드

    Args:
        path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        AppConfig 인스턴스

    Raises:
        SettingsLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 mode / strategy인 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE

    if not path.exists():
        raise SettingsLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SettingsLoadError("settings.yaml이 비어 있습니다")

    if not isinstance(data, dict):
        raise SettingsLoadError("settings.yaml 최상위는 mapping이어야 합니다")

    # mode 검증
    mode_str = data.get("mode")
    if mode_str is None:
        raise SettingsLoadError("settings.yaml에 'mode' 필드가 없습니다")

    try:
        mode = DeploymentMode(str(mode_str).lower())
    except ValueError as e:
        valid_modes = [m.value for m in DeploymentMode]
        raise ValueError(
            f"유효하지 않은 mode입니다: '{mode_str}'. "
            f"유효한 값: {valid_modes}"
        ) from e

    # 정정 방식 (배포 단위로 하나)
    recon_config = data.get("reconciliation") or {}
    strategy_str = recon_config.get("strategy", CorrectionStrategy.OFFSETTING.value)
    try:
        strategy = CorrectionStrategy(str(strategy_str).lower())
    except ValueError as e:
        valid = [s.value for s in CorrectionStrategy]
        raise ValueError(
            f"유효하지 않은 reconciliation.strategy입니다: '{strategy_str}'. "
            f"유효한 값: {valid}"
        ) from e

    db_config = data.get("database") or {}
    db_path = db_config.get("path")
    try:
        timeout_sec = float(db_config.get("timeout_sec", Defaults.STORE_TIMEOUT_SEC))
        busy_timeout_ms = int(db_config.get("busy_timeout_ms", Defaults.BUSY_TIMEOUT_MS))
    except (TypeError, ValueError) as e:
        raise SettingsLoadError(f"settings.yaml의 database 섹션 값이 잘못되었습니다: {e}") from e

    if timeout_sec <= 0:
        raise SettingsLoadError("database.timeout_sec는 0보다 커야 합니다")

    web_config = data.get("web") or {}

    return AppConfig(
        mode=mode,
        correction_strategy=strategy,
        database=DatabaseConfig(
            path=Path(db_path) if db_path else None,
            timeout_sec=timeout_sec,
            busy_timeout_ms=busy_timeout_ms,
        ),
        web=WebConfig(
            host=str(web_config.get("host", Defaults.WEB_HOST)),
            port=int(web_config.get("port", Defaults.WEB_PORT)),
            expose_internal_errors=bool(web_config.get("expose_internal_errors", False)),
        ),
    )


def get_db_path(config: AppConfig) -> Path:
    """모드에 따른 DB 경로 반환

    database.path가 지정되면 우선 사용

    Args:
        config: AppConfig 인스턴스

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if config.database.path is not None:
        return config.database.path
    if config.mode == DeploymentMode.PRODUCTION:
        return Paths.PROD_DB
    else:
        return Paths.SANDBOX_DB


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _config: AppConfig | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._config is None:
            self._config = load_config(settings_path)

    @property
    def mode(self) -> DeploymentMode:
        """현재 배포 모드"""
        assert self._config is not None
        return self._config.mode

    @property
    def correction_strategy(self) -> CorrectionStrategy:
        """부호 오류 정정 방식"""
        assert self._config is not None
        return self._config.correction_strategy

    @property
    def store_timeout_sec(self) -> float:
        """Store I/O 타임아웃"""
        assert self._config is not None
        return self._config.database.timeout_sec

    @property
    def busy_timeout_ms(self) -> int:
        """SQLite busy_timeout"""
        assert self._config is not None
        return self._config.database.busy_timeout_ms

    @property
    def web(self) -> WebConfig:
        """Web 서버 설정"""
        assert self._config is not None
        return self._config.web

    @property
    def db_path(self) -> Path:
        """현재 모드의 DB 경로"""
        assert self._config is not None
        return get_db_path(self._config)

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._config = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(settings_path)
